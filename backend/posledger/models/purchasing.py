from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z, to_date_str


RECEIPT_PAYMENT_UNPAID = "unpaid"
RECEIPT_PAYMENT_PARTIAL = "partial"
RECEIPT_PAYMENT_PAID = "paid"


class Supplier(db.Model):
    """Supplier master data (counterparty for supplier credit)."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_suppliers_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    # 0 means payment is due on receipt
    payment_terms_days = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("suppliers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "payment_terms_days": self.payment_terms_days,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class GoodsReceipt(db.Model):
    """
    Goods received from a supplier.

    payment_status is a derived fact: when a SupplierCredit is linked it is
    recomputed from the credit's remaining balance after every credit
    mutation (unpaid / partial / paid). It is never edited on its own.
    """
    __tablename__ = "goods_receipts"
    __table_args__ = (
        db.UniqueConstraint("org_id", "receipt_number", name="uq_goods_receipts_org_number"),
        db.UniqueConstraint("supplier_credit_id", name="uq_goods_receipts_supplier_credit"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    # Human-readable number (e.g., "GR-2025-000012")
    receipt_number = db.Column(db.String(32), nullable=False)
    invoice_number = db.Column(db.String(64), nullable=True)

    total_cost_cents = db.Column(db.Integer, nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=RECEIPT_PAYMENT_UNPAID, index=True)
    payment_method = db.Column(db.String(16), nullable=True)  # cash, card, transfer, credit

    supplier_credit_id = db.Column(db.Integer, db.ForeignKey("supplier_credits.id"), nullable=True, index=True)
    due_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("goods_receipts", lazy=True))
    supplier_credit = db.relationship(
        "SupplierCredit",
        backref=db.backref("goods_receipt", uselist=False, lazy=True),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "supplier_id": self.supplier_id,
            "receipt_number": self.receipt_number,
            "invoice_number": self.invoice_number,
            "total_cost_cents": self.total_cost_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "supplier_credit_id": self.supplier_credit_id,
            "due_date": to_date_str(self.due_date),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class Expense(db.Model):
    """
    Expense record. May carry a payment against a supplier credit.

    When credit_payment_amount_cents is set, deleting the expense must
    reverse exactly that amount on the supplier credit.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference_number", name="uq_expenses_org_reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    expense_date = db.Column(db.Date, nullable=False)
    reference_number = db.Column(db.String(32), nullable=False)
    payment_method = db.Column(db.String(16), nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    supplier_credit_id = db.Column(db.Integer, db.ForeignKey("supplier_credits.id"), nullable=True, index=True)
    credit_payment_amount_cents = db.Column(db.Integer, nullable=True)
    goods_receipt_id = db.Column(db.Integer, db.ForeignKey("goods_receipts.id"), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier_credit = db.relationship("SupplierCredit", backref=db.backref("expenses", lazy=True))
    goods_receipt = db.relationship("GoodsReceipt", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "expense_date": to_date_str(self.expense_date),
            "reference_number": self.reference_number,
            "payment_method": self.payment_method,
            "supplier_id": self.supplier_id,
            "supplier_credit_id": self.supplier_credit_id,
            "credit_payment_amount_cents": self.credit_payment_amount_cents,
            "goods_receipt_id": self.goods_receipt_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
