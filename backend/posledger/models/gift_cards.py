from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z, to_date_str


CARD_STATUS_FREE = "free"
CARD_STATUS_CONFIGURED = "configured"
CARD_STATUS_ACTIVE = "active"
CARD_STATUS_DEPLETED = "depleted"
CARD_STATUS_EXPIRED = "expired"
CARD_STATUS_INACTIVE = "inactive"

TXN_ISSUE = "issue"
TXN_ACTIVATE = "activate"
TXN_REDEEM = "redeem"
TXN_REFUND = "refund"
TXN_ADJUST = "adjust"
TXN_EXPIRE = "expire"
TXN_CANCEL = "cancel"
TXN_RESET = "reset"


class GiftCard(db.Model):
    """
    Stored-value gift card.

    LIFECYCLE:
    free -> configured -> active -> depleted | expired | inactive
    active / depleted / expired -> configured (reset for resale)

    current_balance_cents only changes together with a GiftCardTransaction
    recording balance_before and balance_after.
    """
    __tablename__ = "gift_cards"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    # NULL while the card sits in the free pool
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    card_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    denomination_cents = db.Column(db.Integer, nullable=True)
    initial_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=CARD_STATUS_FREE, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    activated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    fiscal_number = db.Column(db.String(64), nullable=True)
    fiscal_document_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "card_number": self.card_number,
            "denomination_cents": self.denomination_cents,
            "initial_balance_cents": self.initial_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "status": self.status,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "activated_at": to_utc_z(self.activated_at),
            "expiry_date": to_date_str(self.expiry_date),
            "fiscal_number": self.fiscal_number,
            "fiscal_document_id": self.fiscal_document_id,
            "version_id": self.version_id,
        }


class GiftCardTransaction(db.Model):
    """Append-only balance ledger for gift cards."""
    __tablename__ = "gift_card_transactions"
    __table_args__ = (
        db.Index("ix_gift_card_txns_card_created", "gift_card_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gift_card_id = db.Column(db.Integer, db.ForeignKey("gift_cards.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    gift_card = db.relationship("GiftCard", backref=db.backref("transactions", lazy=True, order_by="GiftCardTransaction.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gift_card_id": self.gift_card_id,
            "sale_id": self.sale_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "user_id": self.user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
