# Overview: Customer and supplier credit ledger; payments, reversals and linked receipt status.

"""
Credit Ledger Service

WHY: Sales on credit and unpaid goods receipts create debts that are paid
down over time. Money must never leak: every change to a balance is
paired with an audit entry, and the audit trail alone must reproduce the
balance.

DESIGN PRINCIPLES:
- amount_cents is immutable; remaining_cents moves only through
  add_payment / reverse_payment
- Every mutation appends to payment_history (+x payment, -x reversal)
- status is derived from remaining_cents, never set directly
- A SupplierCredit linked to a GoodsReceipt pushes its state to the
  receipt explicitly (propagate_to_linked_receipt), in the same transaction
- Invalid payment amounts are a False return, not an exception

TRANSACTIONS:
Public functions commit. The *_locked helpers do not; the expense and goods
receipt services use them to fold a ledger change into a larger unit of work.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import CustomerCredit, SupplierCredit, GoodsReceipt
from ..models.credits import (
    CREDIT_STATUS_PENDING,
    CREDIT_STATUS_PARTIAL,
    CREDIT_STATUS_PAID,
    ENTRY_TYPE_CREDIT,
    ENTRY_TYPE_PAYMENT,
)
from ..models.purchasing import RECEIPT_PAYMENT_UNPAID, RECEIPT_PAYMENT_PARTIAL, RECEIPT_PAYMENT_PAID
from ..time_utils import today
from .concurrency import lock_for_update, run_with_retry
from .sequence_service import yearly_reference


class CreditError(Exception):
    """Raised for credit ledger errors (not for rejected payment amounts)."""
    pass


CREDIT_MODELS = {
    "customer": CustomerCredit,
    "supplier": SupplierCredit,
}

VALID_ENTRY_TYPES = [ENTRY_TYPE_CREDIT, ENTRY_TYPE_PAYMENT]


def resolve_model(kind: str):
    try:
        return CREDIT_MODELS[kind]
    except KeyError:
        raise CreditError(f"Invalid credit kind: {kind}. Must be one of {sorted(CREDIT_MODELS)}")


# =============================================================================
# DERIVED STATUS
# =============================================================================

def derive_status(remaining_cents: int, amount_cents: int) -> str:
    """Untouched -> pending, partly paid -> partial, zero -> paid."""
    if remaining_cents <= 0:
        return CREDIT_STATUS_PAID
    if remaining_cents >= amount_cents:
        return CREDIT_STATUS_PENDING
    return CREDIT_STATUS_PARTIAL


def derive_receipt_status(remaining_cents: int, amount_cents: int) -> str:
    """Receipt payment_status from its credit: unpaid / partial / paid."""
    if remaining_cents <= 0:
        return RECEIPT_PAYMENT_PAID
    if remaining_cents >= amount_cents:
        return RECEIPT_PAYMENT_UNPAID
    return RECEIPT_PAYMENT_PARTIAL


def _history_entry(amount_cents: int, description: str | None) -> dict:
    return {
        "amount_cents": amount_cents,
        "date": today().isoformat(),
        "description": description,
    }


def _append_history(credit, entry: dict) -> None:
    # JSON columns only track reassignment; never mutate the list in place
    credit.payment_history = list(credit.payment_history or []) + [entry]


def replay_history(credit) -> int:
    """
    Recompute the remaining balance from the audit trail alone.

    Equals credit.remaining_cents for every consistent entry. A payment
    entry opens already settled, so its trail starts from zero.
    """
    opening = credit.amount_cents if credit.entry_type == ENTRY_TYPE_CREDIT else 0
    return opening - sum(int(e.get("amount_cents", 0)) for e in (credit.payment_history or []))


# =============================================================================
# LINKED RECEIPT
# =============================================================================

def propagate_to_linked_receipt(credit) -> GoodsReceipt | None:
    """
    Recompute the linked goods receipt's payment_status from the credit.

    Writes only when the derived value changed. Returns the receipt, or None
    when the credit has no linked receipt (customer credits never do).
    """
    if not isinstance(credit, SupplierCredit):
        return None

    receipt = (
        db.session.query(GoodsReceipt)
        .filter_by(supplier_credit_id=credit.id, org_id=credit.org_id)
        .first()
    )
    if not receipt:
        return None

    new_status = derive_receipt_status(credit.remaining_cents, credit.amount_cents)
    if receipt.payment_status != new_status:
        receipt.payment_status = new_status
    return receipt


# =============================================================================
# CREATION
# =============================================================================

def create_credit_locked(
    model,
    *,
    org_id: int,
    counterparty_id: int,
    amount_cents: int,
    entry_type: str = ENTRY_TYPE_CREDIT,
    due_date: date | None = None,
    description: str | None = None,
    branch_id: int | None = None,
    sale_id: int | None = None,
    credit_date: date | None = None,
):
    """Add a new credit entry to the current transaction (no commit)."""
    if entry_type not in VALID_ENTRY_TYPES:
        raise CreditError(f"Invalid entry type: {entry_type}. Must be one of {VALID_ENTRY_TYPES}")
    if amount_cents is None or amount_cents <= 0:
        raise CreditError("Credit amount must be positive")
    if not counterparty_id:
        raise CreditError("Counterparty is required")

    fields = dict(
        org_id=org_id,
        branch_id=branch_id,
        entry_type=entry_type,
        amount_cents=amount_cents,
        # A payment entry records money already settled
        remaining_cents=amount_cents if entry_type == ENTRY_TYPE_CREDIT else 0,
        description=description,
        credit_date=credit_date or today(),
        due_date=due_date,
        payment_history=[],
        reference_number=yearly_reference(org_id, model.REFERENCE_PREFIX),
    )
    fields["status"] = derive_status(fields["remaining_cents"], amount_cents)

    if model is CustomerCredit:
        credit = CustomerCredit(customer_id=counterparty_id, sale_id=sale_id, **fields)
    elif model is SupplierCredit:
        if sale_id:
            raise CreditError("Supplier credits cannot reference a sale")
        credit = SupplierCredit(supplier_id=counterparty_id, **fields)
    else:
        raise CreditError(f"Unsupported credit model: {model}")

    db.session.add(credit)
    db.session.flush()
    return credit


def create_credit(model, **kwargs):
    """Create a credit entry and commit. See create_credit_locked for arguments."""
    def _op():
        credit = create_credit_locked(model, **kwargs)
        db.session.commit()
        return credit

    return run_with_retry(_op)


# =============================================================================
# PAYMENTS / REVERSALS
# =============================================================================

def get_credit_locked(model, credit_id: int, org_id: int | None = None):
    query = db.session.query(model).filter(model.id == credit_id)
    if org_id is not None:
        query = query.filter(model.org_id == org_id)
    credit = lock_for_update(query).first()
    if not credit:
        raise CreditError(f"Credit {credit_id} not found")
    return credit


def apply_payment_locked(credit, amount_cents: int, description: str | None = None) -> bool:
    """
    Pay down a locked credit (no commit).

    Returns False without touching anything when the amount is not positive
    or exceeds the remaining balance.
    """
    if amount_cents is None or amount_cents <= 0:
        return False
    if amount_cents > credit.remaining_cents:
        return False

    credit.remaining_cents = credit.remaining_cents - amount_cents
    credit.status = derive_status(credit.remaining_cents, credit.amount_cents)
    _append_history(credit, _history_entry(amount_cents, description))
    propagate_to_linked_receipt(credit)
    return True


def apply_reversal_locked(credit, amount_cents: int, description: str | None = None) -> int:
    """
    Restore a previously applied payment on a locked credit (no commit).

    The balance never rises above the original amount. The history records
    the amount actually restored so that replay stays exact. Returns that
    amount.
    """
    if amount_cents is None or amount_cents <= 0:
        raise CreditError("Reversal amount must be positive")

    restored = min(amount_cents, credit.amount_cents - credit.remaining_cents)
    if restored <= 0:
        raise CreditError(f"Credit {credit.reference_number} has no payments to reverse")

    credit.remaining_cents = credit.remaining_cents + restored
    credit.status = derive_status(credit.remaining_cents, credit.amount_cents)
    _append_history(credit, _history_entry(-restored, description))
    propagate_to_linked_receipt(credit)
    return restored


def add_payment(model, credit_id: int, amount_cents: int, description: str | None = None, *, org_id: int | None = None) -> bool:
    """
    Record a payment against a credit.

    Returns:
        True when applied and committed; False (no mutation) for a
        non-positive amount or an overpayment.

    Raises:
        CreditError: credit not found
    """
    def _op():
        credit = get_credit_locked(model, credit_id, org_id)
        applied = apply_payment_locked(credit, amount_cents, description)
        if applied:
            db.session.commit()
        else:
            db.session.rollback()
        return applied

    return run_with_retry(_op)


def reverse_payment(model, credit_id: int, amount_cents: int, description: str | None = None, *, org_id: int | None = None):
    """Reverse a payment and commit. Returns the credit."""
    def _op():
        credit = get_credit_locked(model, credit_id, org_id)
        apply_reversal_locked(credit, amount_cents, description)
        db.session.commit()
        return credit

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_credit(model, credit_id: int, org_id: int):
    credit = db.session.query(model).filter_by(id=credit_id, org_id=org_id).first()
    if not credit:
        raise CreditError(f"Credit {credit_id} not found")
    return credit


def list_credits(model, org_id: int, *, status: str | None = None, counterparty_id: int | None = None) -> list:
    query = db.session.query(model).filter(model.org_id == org_id)
    if status:
        query = query.filter(model.status == status)
    if counterparty_id:
        column = model.customer_id if model is CustomerCredit else model.supplier_id
        query = query.filter(column == counterparty_id)
    return query.order_by(model.credit_date.desc(), model.id.desc()).all()


def credit_summary(model, org_id: int, *, counterparty_id: int | None = None) -> dict:
    """Totals for open and settled credit entries of one kind."""
    credits = list_credits(model, org_id, counterparty_id=counterparty_id)
    credit_entries = [c for c in credits if c.entry_type == ENTRY_TYPE_CREDIT]

    by_status = {CREDIT_STATUS_PENDING: 0, CREDIT_STATUS_PARTIAL: 0, CREDIT_STATUS_PAID: 0}
    for credit in credit_entries:
        by_status[credit.status] = by_status.get(credit.status, 0) + 1

    today_date = today()
    return {
        "count": len(credit_entries),
        "total_amount_cents": sum(c.amount_cents for c in credit_entries),
        "total_remaining_cents": sum(c.remaining_cents for c in credit_entries),
        "overdue_count": sum(
            1 for c in credit_entries
            if c.remaining_cents > 0 and c.due_date and c.due_date < today_date
        ),
        "by_status": by_status,
    }
