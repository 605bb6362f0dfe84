from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


class ReferenceSequence(db.Model):
    """
    Atomic per-tenant reference number counters.

    WHY: "read max then insert" numbering races under concurrent writers.
    One counter row per (org, prefix, scope) is incremented with a single
    UPDATE, which takes the row lock for the rest of the transaction.

    scope is "" for unscoped sequences, "2025" for yearly sequences,
    "20250114" for daily ones.
    """
    __tablename__ = "reference_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "prefix", "scope", name="uq_reference_sequences_org_prefix_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    prefix = db.Column(db.String(16), nullable=False)
    scope = db.Column(db.String(16), nullable=False, default="")
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "prefix": self.prefix,
            "scope": self.scope,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
