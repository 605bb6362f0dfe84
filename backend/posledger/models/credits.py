from __future__ import annotations

from sqlalchemy.orm import declared_attr

from ..extensions import db
from posledger.time_utils import to_utc_z, to_date_str


CREDIT_STATUS_PENDING = "pending"
CREDIT_STATUS_PARTIAL = "partial"
CREDIT_STATUS_PAID = "paid"

ENTRY_TYPE_CREDIT = "credit"
ENTRY_TYPE_PAYMENT = "payment"


class CreditEntryMixin:
    """
    Shared shape of customer and supplier credit entries.

    INVARIANTS:
    - amount_cents is immutable after creation
    - remaining_cents starts at amount_cents and stays within [0, amount_cents]
    - status is derived from remaining_cents (pending / partial / paid)
    - every change to remaining_cents appends to payment_history; replaying
      the history from amount_cents reproduces remaining_cents

    Mutations go through credit_service only.
    """

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def org_id(cls):
        return db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    @declared_attr
    def branch_id(cls):
        return db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    entry_type = db.Column(db.String(16), nullable=False, default=ENTRY_TYPE_CREDIT)  # credit, payment
    amount_cents = db.Column(db.Integer, nullable=False)
    remaining_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=CREDIT_STATUS_PENDING, index=True)

    description = db.Column(db.String(255), nullable=True)
    credit_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)

    # Append-only list of {"amount_cents", "date", "description"}
    payment_history = db.Column(db.JSON, nullable=False, default=list)

    reference_number = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    @declared_attr
    def __mapper_args__(cls):
        return {"version_id_col": cls.version_id}

    @property
    def counterparty_id(self) -> int:
        raise NotImplementedError

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "counterparty_id": self.counterparty_id,
            "entry_type": self.entry_type,
            "amount_cents": self.amount_cents,
            "remaining_cents": self.remaining_cents,
            "status": self.status,
            "description": self.description,
            "credit_date": to_date_str(self.credit_date),
            "due_date": to_date_str(self.due_date),
            "payment_history": list(self.payment_history or []),
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class CustomerCredit(CreditEntryMixin, db.Model):
    """Sale-on-credit debt owed by a customer (reference CC-YYYY-000001)."""
    __tablename__ = "customer_credits"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference_number", name="uq_customer_credits_org_reference"),
        {"sqlite_autoincrement": True},
    )

    REFERENCE_PREFIX = "CC"

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    customer = db.relationship("Customer", backref=db.backref("credits", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("customer_credit", uselist=False, lazy=True))

    @property
    def counterparty_id(self) -> int:
        return self.customer_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["customer_id"] = self.customer_id
        data["sale_id"] = self.sale_id
        return data


class SupplierCredit(CreditEntryMixin, db.Model):
    """
    Debt owed to a supplier (reference SC-YYYY-000001).

    May be linked 1:1 to a GoodsReceipt; the receipt's payment_status is
    derived from this entry's remaining_cents.
    """
    __tablename__ = "supplier_credits"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference_number", name="uq_supplier_credits_org_reference"),
        {"sqlite_autoincrement": True},
    )

    REFERENCE_PREFIX = "SC"

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    supplier = db.relationship("Supplier", backref=db.backref("credits", lazy=True))

    @property
    def counterparty_id(self) -> int:
        return self.supplier_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["supplier_id"] = self.supplier_id
        data["goods_receipt_id"] = self.goods_receipt.id if self.goods_receipt else None
        return data
