# Overview: Sales on credit; the sale and its customer credit move together.

"""
Sale Credit Service

WHY: A sale left partly or wholly unpaid becomes a customer debt. The
Sale and its CustomerCredit describe the same money, so they are written
in the same transaction and never drift apart.

DESIGN:
- The credit covers total_cents - paid_cents at the time of the sale
- Sale.paid_cents and Sale.payment_status are derived from the credit's
  remaining balance after every payment or reversal
- A rejected payment amount is a False return, as in the credit ledger
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Customer, CustomerCredit, Sale
from .concurrency import lock_for_update, run_with_retry
from .credit_service import (
    CreditError,
    apply_payment_locked,
    apply_reversal_locked,
    create_credit_locked,
)
from .sequence_service import daily_reference


class SaleCreditError(Exception):
    """Raised for sale-on-credit errors (not for rejected payment amounts)."""
    pass


SALE_PREFIX = "S"

SALE_PAYMENT_PAID = "paid"
SALE_PAYMENT_PARTIAL = "partial"
SALE_PAYMENT_CREDIT = "credit"


def derive_sale_payment_status(paid_cents: int, total_cents: int) -> str:
    """Nothing paid -> credit, partly paid -> partial, fully paid -> paid."""
    if paid_cents >= total_cents:
        return SALE_PAYMENT_PAID
    if paid_cents > 0:
        return SALE_PAYMENT_PARTIAL
    return SALE_PAYMENT_CREDIT


def _sync_sale_locked(sale: Sale, credit: CustomerCredit) -> None:
    paid = sale.total_cents - credit.remaining_cents
    if sale.paid_cents != paid:
        sale.paid_cents = paid
    status = derive_sale_payment_status(paid, sale.total_cents)
    if sale.payment_status != status:
        sale.payment_status = status


def _get_locked(org_id: int, sale_id: int) -> tuple[Sale, CustomerCredit]:
    sale = lock_for_update(
        db.session.query(Sale).filter_by(id=sale_id, org_id=org_id)
    ).first()
    if not sale:
        raise SaleCreditError(f"Sale {sale_id} not found")

    credit = lock_for_update(
        db.session.query(CustomerCredit).filter_by(sale_id=sale.id, org_id=org_id)
    ).first()
    if not credit:
        raise SaleCreditError(f"Sale {sale.reference_number} has no credit")
    return sale, credit


def create_credit_sale(
    *,
    org_id: int,
    customer_id: int,
    total_cents: int,
    paid_cents: int = 0,
    branch_id: int | None = None,
    due_date: date | None = None,
    description: str | None = None,
) -> tuple[Sale, CustomerCredit]:
    """
    Record a sale whose unpaid part becomes a customer credit.

    Returns (sale, credit), both committed in one transaction.

    Raises:
        SaleCreditError: unknown customer, or amounts that leave nothing on credit
    """
    def _op():
        if total_cents is None or total_cents <= 0:
            raise SaleCreditError("Sale total must be positive")
        if paid_cents is None or paid_cents < 0:
            raise SaleCreditError("Paid amount cannot be negative")
        if paid_cents >= total_cents:
            raise SaleCreditError("A fully paid sale has nothing to put on credit")

        customer = db.session.query(Customer).filter_by(id=customer_id, org_id=org_id).first()
        if not customer:
            raise SaleCreditError(f"Customer {customer_id} not found")

        sale = Sale(
            org_id=org_id,
            branch_id=branch_id,
            customer_id=customer.id,
            reference_number=daily_reference(org_id, SALE_PREFIX),
            total_cents=total_cents,
            paid_cents=paid_cents,
            payment_status=derive_sale_payment_status(paid_cents, total_cents),
        )
        db.session.add(sale)
        db.session.flush()

        try:
            credit = create_credit_locked(
                CustomerCredit,
                org_id=org_id,
                counterparty_id=customer.id,
                amount_cents=total_cents - paid_cents,
                due_date=due_date,
                description=description or f"Sale debt: {sale.reference_number}",
                branch_id=branch_id,
                sale_id=sale.id,
            )
        except CreditError as e:
            raise SaleCreditError(str(e))

        db.session.commit()
        return sale, credit

    return run_with_retry(_op)


def pay_sale_credit(org_id: int, sale_id: int, amount_cents: int, description: str | None = None) -> bool:
    """
    Pay down the credit of a sale and re-derive the sale's payment fields.

    Returns:
        True when applied and committed; False (no mutation) for a
        non-positive amount or one above the remaining debt.

    Raises:
        SaleCreditError: sale not found or not sold on credit
    """
    def _op():
        sale, credit = _get_locked(org_id, sale_id)
        applied = apply_payment_locked(
            credit, amount_cents, description or f"Sale credit payment: {sale.reference_number}"
        )
        if not applied:
            db.session.rollback()
            return False

        _sync_sale_locked(sale, credit)
        db.session.commit()
        return True

    return run_with_retry(_op)


def reverse_sale_credit_payment(
    org_id: int, sale_id: int, amount_cents: int, description: str | None = None
) -> Sale:
    """Undo a payment on a sale's credit; the sale follows the restored balance."""
    def _op():
        sale, credit = _get_locked(org_id, sale_id)
        try:
            apply_reversal_locked(
                credit, amount_cents, description or f"Sale credit reversal: {sale.reference_number}"
            )
        except CreditError as e:
            raise SaleCreditError(str(e))

        _sync_sale_locked(sale, credit)
        db.session.commit()
        return sale

    return run_with_retry(_op)
