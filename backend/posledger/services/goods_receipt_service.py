# Overview: Goods receipts and the supplier credit created for unpaid deliveries.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import GoodsReceipt, Supplier, SupplierCredit
from ..models.purchasing import RECEIPT_PAYMENT_UNPAID, RECEIPT_PAYMENT_PAID
from ..time_utils import today
from .concurrency import run_with_retry
from .credit_service import create_credit_locked, derive_receipt_status
from .sequence_service import yearly_reference


class GoodsReceiptError(Exception):
    """Raised for goods receipt errors."""
    pass


RECEIPT_PREFIX = "GR"

VALID_PAYMENT_METHODS = ["cash", "card", "transfer", "credit"]


def create_goods_receipt(
    *,
    org_id: int,
    supplier_id: int,
    total_cost_cents: int,
    paid: bool = False,
    payment_method: str | None = None,
    invoice_number: str | None = None,
    branch_id: int | None = None,
) -> GoodsReceipt:
    """
    Record a delivery from a supplier.

    An unpaid receipt gets a SupplierCredit for its full cost, created in
    the same transaction, due after the supplier's payment terms. Its
    payment_status is derived from that credit from then on.
    """
    def _op():
        if total_cost_cents is None or total_cost_cents <= 0:
            raise GoodsReceiptError("Total cost must be positive")
        if payment_method and payment_method not in VALID_PAYMENT_METHODS:
            raise GoodsReceiptError(f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}")

        supplier = db.session.query(Supplier).filter_by(id=supplier_id, org_id=org_id).first()
        if not supplier:
            raise GoodsReceiptError(f"Supplier {supplier_id} not found")

        due_date = None
        if not paid:
            due_date = today() + timedelta(days=supplier.payment_terms_days or 0)

        receipt = GoodsReceipt(
            org_id=org_id,
            branch_id=branch_id,
            supplier_id=supplier.id,
            receipt_number=yearly_reference(org_id, RECEIPT_PREFIX),
            invoice_number=invoice_number,
            total_cost_cents=total_cost_cents,
            payment_status=RECEIPT_PAYMENT_PAID if paid else RECEIPT_PAYMENT_UNPAID,
            payment_method=payment_method or ("cash" if paid else "credit"),
            due_date=due_date,
        )
        db.session.add(receipt)

        if not paid:
            credit = create_credit_locked(
                SupplierCredit,
                org_id=org_id,
                counterparty_id=supplier.id,
                amount_cents=total_cost_cents,
                due_date=due_date,
                description=f"Goods receipt {receipt.receipt_number}",
                branch_id=branch_id,
            )
            receipt.supplier_credit_id = credit.id
            receipt.payment_status = derive_receipt_status(credit.remaining_cents, credit.amount_cents)

        db.session.commit()
        return receipt

    return run_with_retry(_op)


def get_goods_receipt(org_id: int, receipt_id: int) -> GoodsReceipt:
    receipt = db.session.query(GoodsReceipt).filter_by(id=receipt_id, org_id=org_id).first()
    if not receipt:
        raise GoodsReceiptError(f"Goods receipt {receipt_id} not found")
    return receipt
