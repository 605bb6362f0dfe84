# Overview: Expenses, supplier credit payments made through them, and the delete cascade.

"""
Expense Service

WHY: Paying a supplier is recorded as an expense that also pays down the
supplier's credit (and through it the goods receipt). Deleting such an
expense must give the money back to exactly that credit.

CASCADE (delete_expense), one transaction:
1. Reverse credit_payment_amount_cents on the supplier credit
2. Credit status re-derived from the restored balance
3. Linked goods receipt payment_status re-derived from the credit
4. Delete the expense
Any failure rolls back all four.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Expense, GoodsReceipt, SupplierCredit
from ..models.purchasing import RECEIPT_PAYMENT_PAID
from ..time_utils import today
from .concurrency import lock_for_update, run_with_retry
from .credit_service import (
    CreditError,
    apply_payment_locked,
    apply_reversal_locked,
    derive_receipt_status,
    get_credit_locked,
)
from .sequence_service import yearly_reference


class ExpenseError(Exception):
    """Raised for expense errors."""
    pass


class ExpenseNotFoundError(ExpenseError):
    """Raised when an expense does not exist for the tenant."""
    pass


EXPENSE_PREFIX = "EXP"

VALID_PAYMENT_METHODS = ["cash", "card", "transfer"]


def _pay_credit_locked(credit: SupplierCredit, amount_cents: int, expense: Expense) -> None:
    applied = apply_payment_locked(credit, amount_cents, f"Expense payment: {expense.reference_number}")
    if not applied:
        raise ExpenseError(
            f"Payment of {amount_cents} exceeds remaining balance {credit.remaining_cents} "
            f"on {credit.reference_number}"
        )


def create_expense(
    *,
    org_id: int,
    amount_cents: int,
    description: str | None = None,
    expense_date: date | None = None,
    payment_method: str = "cash",
    branch_id: int | None = None,
    supplier_id: int | None = None,
    supplier_credit_id: int | None = None,
    credit_payment_amount_cents: int | None = None,
    goods_receipt_id: int | None = None,
    notes: str | None = None,
) -> Expense:
    """
    Record an expense; optionally pay down a supplier credit with it.

    The credit payment defaults to the full expense amount. Expense and
    payment commit together or not at all.
    """
    def _op():
        if amount_cents is None or amount_cents <= 0:
            raise ExpenseError("Expense amount must be positive")
        if payment_method not in VALID_PAYMENT_METHODS:
            raise ExpenseError(f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}")

        credit = None
        payment_cents = None
        if supplier_credit_id:
            try:
                credit = get_credit_locked(SupplierCredit, supplier_credit_id, org_id)
            except CreditError as e:
                raise ExpenseError(str(e))
            if supplier_id and credit.supplier_id != supplier_id:
                raise ExpenseError("Supplier credit belongs to a different supplier")
            payment_cents = amount_cents if credit_payment_amount_cents is None else credit_payment_amount_cents
            if payment_cents <= 0:
                raise ExpenseError("Credit payment must be positive")
            if payment_cents > amount_cents:
                raise ExpenseError("Credit payment cannot exceed the expense amount")

        expense = Expense(
            org_id=org_id,
            branch_id=branch_id,
            amount_cents=amount_cents,
            description=description,
            expense_date=expense_date or today(),
            reference_number=yearly_reference(org_id, EXPENSE_PREFIX),
            payment_method=payment_method,
            supplier_id=credit.supplier_id if credit else supplier_id,
            supplier_credit_id=credit.id if credit else None,
            credit_payment_amount_cents=payment_cents,
            goods_receipt_id=goods_receipt_id,
            notes=notes,
        )
        db.session.add(expense)

        if credit:
            _pay_credit_locked(credit, payment_cents, expense)

        db.session.commit()
        return expense

    return run_with_retry(_op)


def pay_goods_receipt(
    *,
    org_id: int,
    receipt_id: int,
    amount_cents: int,
    payment_method: str = "cash",
    branch_id: int | None = None,
    notes: str | None = None,
) -> Expense:
    """
    Pay (part of) a goods receipt bought on credit.

    Creates the payment expense and applies it to the receipt's supplier
    credit in one transaction; the receipt status follows the credit.
    """
    def _op():
        if amount_cents is None or amount_cents <= 0:
            raise ExpenseError("Payment amount must be positive")
        if payment_method not in VALID_PAYMENT_METHODS:
            raise ExpenseError(f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}")

        receipt = lock_for_update(
            db.session.query(GoodsReceipt).filter_by(id=receipt_id, org_id=org_id)
        ).first()
        if not receipt:
            raise ExpenseError(f"Goods receipt {receipt_id} not found")
        if receipt.payment_status == RECEIPT_PAYMENT_PAID:
            raise ExpenseError(f"Goods receipt {receipt.receipt_number} is already paid")
        if not receipt.supplier_credit_id:
            raise ExpenseError(f"Goods receipt {receipt.receipt_number} has no supplier credit")

        credit = get_credit_locked(SupplierCredit, receipt.supplier_credit_id, org_id)
        if amount_cents > credit.remaining_cents:
            raise ExpenseError(
                f"Payment of {amount_cents} exceeds remaining balance {credit.remaining_cents}"
            )

        expense = Expense(
            org_id=org_id,
            branch_id=branch_id if branch_id is not None else receipt.branch_id,
            amount_cents=amount_cents,
            description=f"Goods receipt payment {receipt.receipt_number}",
            expense_date=today(),
            reference_number=yearly_reference(org_id, EXPENSE_PREFIX),
            payment_method=payment_method,
            supplier_id=receipt.supplier_id,
            supplier_credit_id=credit.id,
            credit_payment_amount_cents=amount_cents,
            goods_receipt_id=receipt.id,
            notes=notes,
        )
        db.session.add(expense)
        _pay_credit_locked(credit, amount_cents, expense)

        db.session.commit()
        return expense

    return run_with_retry(_op)


def delete_expense(org_id: int, expense_id: int) -> dict:
    """
    Delete an expense, reversing any supplier credit payment it made.

    Returns a summary of what was reversed.

    Raises:
        ExpenseError: expense not found, or the reversal cannot be applied
            (nothing is deleted in that case)
    """
    def _op():
        expense = lock_for_update(
            db.session.query(Expense).filter_by(id=expense_id, org_id=org_id)
        ).first()
        if not expense:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")

        summary = {
            "expense_id": expense.id,
            "reference_number": expense.reference_number,
            "reversed_cents": 0,
            "supplier_credit_id": expense.supplier_credit_id,
            "credit_status": None,
            "goods_receipt_id": expense.goods_receipt_id,
            "receipt_payment_status": None,
        }

        credit = None
        if expense.supplier_credit_id and (expense.credit_payment_amount_cents or 0) > 0:
            try:
                credit = get_credit_locked(SupplierCredit, expense.supplier_credit_id, org_id)
                summary["reversed_cents"] = apply_reversal_locked(
                    credit,
                    expense.credit_payment_amount_cents,
                    f"Payment reversed: {expense.reference_number} (expense deleted)",
                )
            except CreditError as e:
                raise ExpenseError(str(e))
            summary["credit_status"] = credit.status

        if expense.goods_receipt_id:
            receipt = lock_for_update(
                db.session.query(GoodsReceipt).filter_by(id=expense.goods_receipt_id, org_id=org_id)
            ).first()
            if receipt and receipt.supplier_credit_id:
                receipt_credit = credit
                if receipt_credit is None or receipt_credit.id != receipt.supplier_credit_id:
                    receipt_credit = get_credit_locked(SupplierCredit, receipt.supplier_credit_id, org_id)
                new_status = derive_receipt_status(receipt_credit.remaining_cents, receipt_credit.amount_cents)
                if receipt.payment_status != new_status:
                    receipt.payment_status = new_status
            if receipt:
                summary["receipt_payment_status"] = receipt.payment_status

        db.session.delete(expense)
        db.session.commit()
        return summary

    return run_with_retry(_op)


def get_expense(org_id: int, expense_id: int) -> Expense:
    expense = db.session.query(Expense).filter_by(id=expense_id, org_id=org_id).first()
    if not expense:
        raise ExpenseNotFoundError(f"Expense {expense_id} not found")
    return expense
