# Overview: Flask API routes used by the fiscal printer bridge; polling and job reporting.

"""
Fiscal Printer Bridge API

WHY: The bridge is an agent on the shop PC wired to the fiscal printer.
It registers, polls for due jobs, executes them on the device and reports
the outcome. Everything it does is scoped to its token's tenant.

FLOW:
POST /register            -> poll interval
GET  /poll                -> up to FISCAL_POLL_BATCH_SIZE claimed jobs
POST /jobs/<id>/complete  -> fiscal number attached to sale / return
POST /jobs/<id>/complete-shift -> shift state reconciled from the device
POST /jobs/<id>/fail      -> classified, retried with backoff or left failed
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import bridge_token_service, fiscal_job_service, shift_service
from ..services.fiscal_job_service import FiscalJobError, FiscalJobNotFoundError, FiscalJobStateError
from ..services.shift_service import ShiftSyncError
from ..decorators import require_bridge
from ..time_utils import utcnow, to_utc_z


bridge_bp = Blueprint("bridge", __name__, url_prefix="/api/bridge")


def _job_error_response(e: FiscalJobError):
    if isinstance(e, FiscalJobNotFoundError):
        return jsonify({"success": False, "error": "Job not found"}), 404
    if isinstance(e, FiscalJobStateError):
        return jsonify({"success": False, "error": str(e)}), 409
    return jsonify({"success": False, "error": str(e)}), 400


@bridge_bp.post("/register")
@require_bridge
def register_route():
    """
    Register (or re-register) a bridge.

    Request body: {"version": "1.4.0", "info": {...}}  (both optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        token = bridge_token_service.record_heartbeat(g.bridge, data.get("version"), data.get("info"))

        current_app.logger.info(
            "Fiscal printer bridge registered (org=%s bridge=%s version=%s)",
            g.org_id, token.name, data.get("version"),
        )

        return jsonify({
            "success": True,
            "org_id": g.org_id,
            "bridge_name": token.name,
            "poll_interval": current_app.config.get("FISCAL_POLL_INTERVAL_MS", 2000),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to register bridge")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bridge_bp.post("/heartbeat")
@require_bridge
def heartbeat_route():
    try:
        data = request.get_json(silent=True) or {}
        bridge_token_service.record_heartbeat(g.bridge, data.get("version"), data.get("info"))
        return jsonify({"success": True, "timestamp": to_utc_z(utcnow())}), 200
    except Exception:
        current_app.logger.exception("Failed to record bridge heartbeat")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bridge_bp.get("/poll")
@require_bridge
def poll_route():
    """
    Claim the next due jobs for this bridge's tenant.

    Query params: provider (optional) to restrict to one fiscal vendor.
    """
    try:
        bridge_token_service.record_heartbeat(g.bridge)
        jobs = fiscal_job_service.poll(g.org_id, provider=request.args.get("provider"))
        return jsonify({
            "success": True,
            "jobs": [job.to_bridge_dict() for job in jobs],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to poll fiscal jobs")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bridge_bp.post("/jobs/<int:job_id>/complete")
@require_bridge
def complete_job_route(job_id: int):
    """
    Request body:
    {
        "fiscal_number": "000123",          (required)
        "fiscal_document_id": "9f3a...",    (optional)
        "response": {...}                   (optional, raw device response)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        fiscal_number = data.get("fiscal_number")
        if not fiscal_number or not isinstance(fiscal_number, str):
            return jsonify({"success": False, "error": "fiscal_number is required"}), 400

        response = data.get("response")
        if response is not None and not isinstance(response, dict):
            return jsonify({"success": False, "error": "response must be an object"}), 400

        job = fiscal_job_service.complete(
            job_id,
            fiscal_number,
            data.get("fiscal_document_id"),
            response,
            org_id=g.org_id,
        )
        return jsonify({"success": True, "message": "Job marked as completed", "job": job.to_dict()}), 200
    except FiscalJobError as e:
        return _job_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete fiscal job")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bridge_bp.post("/jobs/<int:job_id>/complete-shift")
@require_bridge
def complete_shift_job_route(job_id: int):
    """Request body: {"response": {...}} (raw device response)."""
    try:
        data = request.get_json(silent=True) or {}
        response = data.get("response")
        if response is not None and not isinstance(response, dict):
            return jsonify({"success": False, "error": "response must be an object"}), 400

        job = fiscal_job_service.complete_shift_operation(job_id, response, org_id=g.org_id)
        config = shift_service.get_config(g.org_id)
        return jsonify({
            "success": True,
            "message": "Shift operation completed",
            "job": job.to_dict(),
            "shift": config.shift_to_dict() if config else None,
        }), 200
    except FiscalJobError as e:
        return _job_error_response(e)
    except ShiftSyncError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to complete fiscal shift job")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bridge_bp.post("/jobs/<int:job_id>/fail")
@require_bridge
def fail_job_route(job_id: int):
    """
    Request body: {"error": "device message"}

    Returns whether the job was re-queued (can_retry) and how the error
    was classified (is_retriable).
    """
    try:
        data = request.get_json(silent=True) or {}
        error_message = data.get("error")
        if not error_message or not isinstance(error_message, str):
            return jsonify({"success": False, "error": "error is required"}), 400

        result = fiscal_job_service.handle_failure(job_id, error_message, org_id=g.org_id)
        return jsonify({
            "success": True,
            "message": "Job failure recorded",
            "can_retry": result["can_retry"],
            "is_retriable": result["is_retriable"],
            "job": result["job"].to_dict(),
        }), 200
    except FiscalJobError as e:
        return _job_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record fiscal job failure")
        return jsonify({"success": False, "error": "Internal server error"}), 500
