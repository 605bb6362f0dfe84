from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data (counterparty for customer credit and cards).

    MULTI-TENANT: Customers are scoped to organizations via org_id.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("customers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyProgram(db.Model):
    """
    Loyalty program settings, one per organization.

    points_per_unit: points earned per 1.00 of sale amount.
    """
    __tablename__ = "loyalty_programs"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_loyalty_programs_org"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    points_per_unit = db.Column(db.Integer, nullable=False, default=1)
    min_redemption_points = db.Column(db.Integer, nullable=False, default=0)
    points_expiry_days = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def calculate_points_earned(self, amount_cents: int) -> int:
        return (amount_cents * self.points_per_unit) // 100

    def can_redeem(self, points: int) -> bool:
        return points >= (self.min_redemption_points or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "points_per_unit": self.points_per_unit,
            "min_redemption_points": self.min_redemption_points,
            "points_expiry_days": self.points_expiry_days,
            "is_active": self.is_active,
        }


class LoyaltyAccount(db.Model):
    """
    Loyalty card for a customer.

    WHY: Tracks points balance and lifetime earning.
    points_balance is only changed together with a LoyaltyTransaction.
    """
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_loyalty_accounts_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    card_number = db.Column(db.String(32), nullable=True, index=True)

    points_balance = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("loyalty_account", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "org_id": self.org_id,
            "card_number": self.card_number,
            "points_balance": self.points_balance,
            "lifetime_points": self.lifetime_points,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - earned: Points earned from a sale
    - redeemed: Points spent on a sale
    - reversed: Earn/redeem undone by a refund
    - adjusted: Manual adjustment
    - expired: Points expired per program policy

    IMMUTABLE: Records are never updated or deleted, except that an
    earned row's expires_at is cleared once its expiry has been processed.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_txns_account_created", "account_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("loyalty_accounts.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)  # Positive for earn, negative for redeem/expire
    balance_before = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    account = db.relationship("LoyaltyAccount", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "sale_id": self.sale_id,
            "description": self.description,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }
