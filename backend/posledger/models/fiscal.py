from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


# =============================================================================
# FISCAL JOB STATUS / OPERATION TYPES (CONSTANTS)
# =============================================================================

JOB_STATUS_PENDING = "pending"
JOB_STATUS_PROCESSING = "processing"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

JOB_STATUSES = (
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
)

OP_SALE = "sale"
OP_RETURN = "return"
OP_SHIFT_OPEN = "shift_open"
OP_SHIFT_CLOSE = "shift_close"
OP_SHIFT_STATUS = "shift_status"
OP_SHIFT_X_REPORT = "shift_x_report"

SHIFT_OPERATIONS = (OP_SHIFT_OPEN, OP_SHIFT_CLOSE, OP_SHIFT_STATUS, OP_SHIFT_X_REPORT)

OPERATION_TYPES = (
    OP_SALE,
    OP_RETURN,
    *SHIFT_OPERATIONS,
    "credit_pay",
    "advance_sale",
    "advance_sale_items",
    "advance_pay",
    "deposit",
    "withdraw",
    "open_cashbox",
    "correction",
    "rollback",
    "print_last",
    "printer_connection",
    "periodic_report",
    "control_tape",
    "logout",
)


class FiscalPrinterConfig(db.Model):
    """
    Per-tenant fiscal printer configuration aggregate.

    Shift fields mirror the device's own shift state. They are written
    only by the shift synchronizer; the device is authoritative.
    """
    __tablename__ = "fiscal_printer_configs"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_fiscal_printer_configs_org"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    provider = db.Column(db.String(32), nullable=False)  # caspos, omnitech
    endpoint_url = db.Column(db.String(255), nullable=True)
    username = db.Column(db.String(128), nullable=True)
    password = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    shift_open = db.Column(db.Boolean, nullable=False, default=False)
    shift_opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_z_report_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("fiscal_printer_config", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def is_configured(self) -> bool:
        return bool(self.is_active and self.provider)

    def shift_to_dict(self) -> dict:
        return {
            "shift_open": self.shift_open,
            "shift_opened_at": to_utc_z(self.shift_opened_at),
            "last_z_report_at": to_utc_z(self.last_z_report_at),
        }

    def to_dict(self) -> dict:
        # Credentials are never serialized
        return {
            "id": self.id,
            "org_id": self.org_id,
            "provider": self.provider,
            "endpoint_url": self.endpoint_url,
            "is_active": self.is_active,
            **self.shift_to_dict(),
            "version_id": self.version_id,
        }


class FiscalJob(db.Model):
    """
    One request to a fiscal device, awaiting pickup by the bridge.

    LIFECYCLE:
    pending -> processing -> completed | failed
    failed -> pending (retry) while retriable and under the retry ceiling

    request_data/response_data are opaque, vendor-specific payloads.
    fiscal_number is the printed receipt number; fiscal_document_id is the
    vendor's document hash. They are distinct and never interchanged.
    """
    __tablename__ = "fiscal_jobs"
    __table_args__ = (
        db.UniqueConstraint("org_id", "fiscal_document_id", name="uq_fiscal_jobs_org_document"),
        # Poll query: tenant + status, oldest first
        db.Index("ix_fiscal_jobs_org_status_created", "org_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("sale_returns.id"), nullable=True, index=True)

    operation_type = db.Column(db.String(32), nullable=False, default=OP_SALE, index=True)
    status = db.Column(db.String(16), nullable=False, default=JOB_STATUS_PENDING, index=True)
    provider = db.Column(db.String(32), nullable=True)

    request_data = db.Column(db.JSON, nullable=True)
    response_data = db.Column(db.JSON, nullable=True)

    fiscal_number = db.Column(db.String(64), nullable=True)
    fiscal_document_id = db.Column(db.String(128), nullable=True)

    error_message = db.Column(db.Text, nullable=True)
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    is_retriable = db.Column(db.Boolean, nullable=False, default=True)
    next_retry_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    picked_up_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("fiscal_jobs", lazy=True))
    sale_return = db.relationship("SaleReturn", backref=db.backref("fiscal_jobs", lazy=True))

    def __repr__(self) -> str:
        return f"<FiscalJob id={self.id} op={self.operation_type} status={self.status}>"

    def to_bridge_dict(self) -> dict:
        """Payload handed to the bridge on poll."""
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "return_id": self.return_id,
            "operation_type": self.operation_type,
            "provider": self.provider,
            "request_data": self.request_data,
            "retry_count": self.retry_count,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sale_id": self.sale_id,
            "return_id": self.return_id,
            "operation_type": self.operation_type,
            "status": self.status,
            "provider": self.provider,
            "request_data": self.request_data,
            "response_data": self.response_data,
            "fiscal_number": self.fiscal_number,
            "fiscal_document_id": self.fiscal_document_id,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "is_retriable": self.is_retriable,
            "next_retry_at": to_utc_z(self.next_retry_at),
            "picked_up_at": to_utc_z(self.picked_up_at),
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
        }


class BridgeToken(db.Model):
    """
    Credential for an external fiscal printer bridge.

    SECURITY: Only the SHA-256 hash of the token is stored. The plaintext
    is shown once at creation time.
    """
    __tablename__ = "bridge_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, revoked

    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)
    bridge_version = db.Column(db.String(32), nullable=True)
    info = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    organization = db.relationship("Organization", backref=db.backref("bridge_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "status": self.status,
            "last_seen_at": to_utc_z(self.last_seen_at),
            "bridge_version": self.bridge_version,
            "created_at": to_utc_z(self.created_at),
            "revoked_at": to_utc_z(self.revoked_at),
        }


class IdempotencyKey(db.Model):
    """
    Dedup record for fiscal submissions.

    key is a hash of the logical request; a live record (expires_at in the
    future) means the same request was already accepted.
    """
    __tablename__ = "idempotency_keys"
    __table_args__ = (
        db.UniqueConstraint("org_id", "key", name="uq_idempotency_keys_org_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    key = db.Column(db.String(64), nullable=False)
    fiscal_job_id = db.Column(db.Integer, db.ForeignKey("fiscal_jobs.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    fiscal_job = db.relationship("FiscalJob")
