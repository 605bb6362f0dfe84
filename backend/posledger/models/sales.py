from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z

class Sale(db.Model):
    """
    Completed sale as seen by the fiscal and credit subsystems.

    fiscal_number / fiscal_document_id are attached when the bridge
    confirms the sale receipt was fiscalized.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference_number", name="uq_sales_org_reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Human-readable number (e.g., "S202501140001")
    reference_number = db.Column(db.String(64), nullable=False)

    # Amounts in cents
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="paid", index=True)  # paid, partial, credit

    fiscal_number = db.Column(db.String(64), nullable=True)
    fiscal_document_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "reference_number": self.reference_number,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "payment_status": self.payment_status,
            "fiscal_number": self.fiscal_number,
            "fiscal_document_id": self.fiscal_document_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }

class SaleReturn(db.Model):
    """Return issued against a sale; fiscalized separately from the sale."""
    __tablename__ = "sale_returns"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference_number", name="uq_sale_returns_org_reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    reference_number = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.Text, nullable=True)

    fiscal_number = db.Column(db.String(64), nullable=True)
    fiscal_document_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sale_id": self.sale_id,
            "reference_number": self.reference_number,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "fiscal_number": self.fiscal_number,
            "fiscal_document_id": self.fiscal_document_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
