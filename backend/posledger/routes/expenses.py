# Overview: Flask API routes for expenses; deletion runs the supplier credit reversal cascade.

from flask import Blueprint, jsonify, g, current_app

from ..services import expense_service
from ..services.expense_service import ExpenseError, ExpenseNotFoundError
from ..services.credit_service import CreditError
from ..decorators import require_org


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("/<int:expense_id>")
@require_org
def get_expense_route(expense_id: int):
    try:
        expense = expense_service.get_expense(g.org_id, expense_id)
        return jsonify({"expense": expense.to_dict()}), 200
    except ExpenseError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.delete("/<int:expense_id>")
@require_org
def delete_expense_route(expense_id: int):
    """
    Delete an expense.

    Any supplier credit payment the expense made is reversed and the
    linked goods receipt status recomputed in the same transaction.

    Returns:
        200: {"deleted": {...reversal summary...}}
        400: reversal could not be applied (nothing deleted)
        404: expense not found
    """
    try:
        summary = expense_service.delete_expense(g.org_id, expense_id)
        return jsonify({"deleted": summary}), 200
    except ExpenseNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ExpenseError as e:
        return jsonify({"error": str(e)}), 400
    except CreditError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"error": "Internal server error"}), 500
