# Overview: Flask API routes for read-only customer and supplier credit queries.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import credit_service
from ..services.credit_service import CreditError
from ..decorators import require_org


credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


@credits_bp.get("/<kind>")
@require_org
def list_credits_route(kind: str):
    """
    List credits of one kind (customer | supplier) with totals.

    Query params:
        status: pending | partial | paid (optional)
        counterparty_id: customer or supplier id (optional)
    """
    try:
        model = credit_service.resolve_model(kind)
        counterparty_id = request.args.get("counterparty_id", type=int)
        credits = credit_service.list_credits(
            model,
            g.org_id,
            status=request.args.get("status"),
            counterparty_id=counterparty_id,
        )
        return jsonify({
            "credits": [c.to_dict() for c in credits],
            "summary": credit_service.credit_summary(model, g.org_id, counterparty_id=counterparty_id),
        }), 200
    except CreditError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list credits")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/<kind>/<int:credit_id>")
@require_org
def get_credit_route(kind: str, credit_id: int):
    try:
        model = credit_service.resolve_model(kind)
        credit = credit_service.get_credit(model, credit_id, g.org_id)
        data = credit.to_dict()
        data["history_consistent"] = credit_service.replay_history(credit) == credit.remaining_cents
        return jsonify({"credit": data}), 200
    except CreditError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load credit")
        return jsonify({"error": "Internal server error"}), 500
