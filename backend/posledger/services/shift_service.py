# Overview: Reconciles fiscal device shift state into the tenant's printer configuration.

"""
Shift Synchronizer

WHY: Fiscal devices refuse sales outside an open shift and force a Z-report
when the shift closes. The back office shows cashiers whether the shift is
open, but the device is the only source of truth. Local state is a cache
that every completed shift job overwrites (last writer wins).

DESIGN:
- FiscalPrinterConfig shift fields are written only here
- Device open-times are local wall-clock strings in the tenant's business
  timezone; they are stored as UTC
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import FiscalPrinterConfig, Organization
from ..models.fiscal import OP_SHIFT_OPEN, OP_SHIFT_CLOSE, OP_SHIFT_STATUS, OP_SHIFT_X_REPORT
from ..time_utils import utcnow, parse_device_datetime
from .concurrency import lock_for_update
from .fiscal_providers import get_provider, FiscalProvider, UnsupportedProviderError


class ShiftSyncError(Exception):
    """Raised when shift state cannot be reconciled."""
    pass


def _business_timezone(org_id: int) -> str:
    org = db.session.get(Organization, org_id)
    if org and org.timezone:
        return org.timezone
    return current_app.config.get("BUSINESS_TIMEZONE", "Asia/Baku")


def get_config(org_id: int, *, for_update: bool = False) -> FiscalPrinterConfig | None:
    query = db.session.query(FiscalPrinterConfig).filter_by(org_id=org_id)
    if for_update:
        query = lock_for_update(query)
    return query.first()


def reconcile(config: FiscalPrinterConfig, is_open: bool | None, opened_at_raw: str | None, tz_name: str) -> bool:
    """
    Overwrite local shift state with the device's report.

    Returns True when anything changed. A report without shift state
    (is_open None) leaves local state untouched.
    """
    if is_open is None:
        return False

    if is_open:
        opened_at = parse_device_datetime(opened_at_raw, tz_name)
        if opened_at is None:
            # Device says open but gave no usable time: keep what we know
            opened_at = config.shift_opened_at or utcnow()
    else:
        opened_at = None

    changed = config.shift_open != is_open or config.shift_opened_at != opened_at
    config.shift_open = is_open
    config.shift_opened_at = opened_at
    return changed


def apply_shift_result(job, response: dict | None) -> FiscalPrinterConfig:
    """
    Apply a completed shift job to the tenant's configuration (no commit).

    shift_open  -> open, opened now
    shift_close -> closed, Z-report taken now
    shift_status / shift_x_report -> whatever the device reports
    """
    config = get_config(job.org_id, for_update=True)
    if not config:
        raise ShiftSyncError(f"No fiscal printer configured for org {job.org_id}")

    now = utcnow()
    if job.operation_type == OP_SHIFT_OPEN:
        config.shift_open = True
        config.shift_opened_at = now
    elif job.operation_type == OP_SHIFT_CLOSE:
        config.shift_open = False
        config.shift_opened_at = None
        config.last_z_report_at = now
    elif job.operation_type in (OP_SHIFT_STATUS, OP_SHIFT_X_REPORT):
        try:
            provider = get_provider(job.provider or config.provider)
        except UnsupportedProviderError:
            provider = FiscalProvider()
        is_open, opened_at_raw = provider.parse_shift_status(response)
        reconcile(config, is_open, opened_at_raw, _business_timezone(job.org_id))
    else:
        raise ShiftSyncError(f"Not a shift operation: {job.operation_type}")

    return config
