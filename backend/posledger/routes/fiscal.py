# Overview: Flask API routes for operators: fiscal job monitoring and shift actions.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import fiscal_job_service, fiscal_service, shift_service
from ..services.fiscal_job_service import FiscalJobError
from ..services.fiscal_providers import UnsupportedProviderError
from ..services.shift_service import ShiftSyncError
from ..decorators import require_org


fiscal_bp = Blueprint("fiscal", __name__, url_prefix="/api/fiscal")


@fiscal_bp.get("/jobs")
@require_org
def list_jobs_route():
    """
    List fiscal jobs, newest first.

    Query params:
        status: pending | processing | completed | failed (optional)
        operation_type: e.g. sale, return, shift_open (optional)
        limit: default 100, max 500
        offset: default 0
    """
    try:
        limit = min(request.args.get("limit", 100, type=int), 500)
        offset = max(request.args.get("offset", 0, type=int), 0)

        jobs = fiscal_job_service.list_jobs(
            g.org_id,
            status=request.args.get("status"),
            operation_type=request.args.get("operation_type"),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "jobs": [job.to_dict() for job in jobs],
            "stats": fiscal_job_service.job_stats(g.org_id),
            "limit": limit,
            "offset": offset,
        }), 200
    except FiscalJobError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list fiscal jobs")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.get("/jobs/<int:job_id>")
@require_org
def get_job_route(job_id: int):
    try:
        job = fiscal_job_service.get_job(job_id, g.org_id)
        return jsonify({"job": job.to_dict()}), 200
    except FiscalJobError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load fiscal job")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.get("/shift")
@require_org
def shift_status_route():
    """
    Cached shift state.

    With ?refresh=1 also queues a shift_status job so the device's answer
    replaces the cached state once the bridge reports back.
    """
    try:
        if request.args.get("refresh") in ("1", "true"):
            return jsonify(fiscal_service.get_shift_status(g.org_id)), 200

        config = shift_service.get_config(g.org_id)
        if not config:
            return jsonify({"error": "Fiscal printer is not configured"}), 404
        return jsonify(config.shift_to_dict()), 200
    except (ShiftSyncError, FiscalJobError, UnsupportedProviderError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to load shift status")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.post("/shift/<operation>")
@require_org
def shift_operation_route(operation: str):
    """Queue a shift operation: open, close, status or x-report."""
    operations = {
        "open": "shift_open",
        "close": "shift_close",
        "status": "shift_status",
        "x-report": "shift_x_report",
    }
    if operation not in operations:
        return jsonify({"error": f"Unknown shift operation: {operation}"}), 404

    try:
        job = fiscal_service.queue_shift_operation(g.org_id, operations[operation])
        return jsonify({"job": job.to_dict()}), 202
    except (ShiftSyncError, FiscalJobError, UnsupportedProviderError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to queue shift operation")
        return jsonify({"error": "Internal server error"}), 500
