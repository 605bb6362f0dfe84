# Overview: Flask API routes for health checks of the database and the fiscal queue.

"""
System health endpoint.

Reports database connectivity and the state of the fiscal job queue so a
monitor can alert on jobs stuck in processing or failed for good.
"""

import time
from datetime import timedelta

from flask import Blueprint, current_app
from ..extensions import db
from ..models import Organization, FiscalJob, BridgeToken
from ..models.fiscal import JOB_STATUS_PROCESSING, JOB_STATUS_FAILED
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        org_count = db.session.query(Organization).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"organizations": org_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_fiscal_queue_health() -> dict:
    """
    Degraded when jobs sit in processing past the stuck timeout, or when
    failed jobs are waiting for an operator.
    """
    start_time = time.time()
    try:
        stuck_minutes = int(current_app.config.get("FISCAL_STUCK_JOB_MINUTES", 5))
        cutoff = utcnow() - timedelta(minutes=stuck_minutes)

        stuck = db.session.query(FiscalJob).filter(
            FiscalJob.status == JOB_STATUS_PROCESSING,
            FiscalJob.picked_up_at < cutoff,
        ).count()
        failed = db.session.query(FiscalJob).filter(FiscalJob.status == JOB_STATUS_FAILED).count()
        last_seen = db.session.query(db.func.max(BridgeToken.last_seen_at)).scalar()

        elapsed_ms = (time.time() - start_time) * 1000
        details = {
            "stuck_jobs": stuck,
            "failed_jobs": failed,
            "last_bridge_seen_at": to_utc_z(last_seen),
        }
        if stuck or failed:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"{stuck} stuck and {failed} failed fiscal job(s)",
                "details": details,
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Fiscal queue health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Fiscal queue error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "fiscal_queue": check_fiscal_queue_health(),
    }
    statuses = [check["status"] for check in checks.values()]

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
