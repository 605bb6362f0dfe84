# Overview: Business-event entry points that turn sales, returns and shift actions into fiscal jobs.

from __future__ import annotations

from ..extensions import db
from ..models import Sale, SaleReturn
from ..models.fiscal import OP_SALE, OP_RETURN, OP_SHIFT_STATUS, SHIFT_OPERATIONS
from .concurrency import run_with_retry
from .fiscal_job_service import FiscalJobError, create_job, enqueue, find_open_document_job
from .fiscal_providers import get_provider
from .shift_service import ShiftSyncError, get_config
from . import idempotency_service


def _active_config(org_id: int):
    config = get_config(org_id)
    if not config or not config.is_configured():
        raise FiscalJobError("Fiscal printer is not configured")
    return config


def _queue_document(org_id: int, operation_type: str, payload: dict, key: str, **refs):
    """
    Enqueue a sale/return job unless the same request is already live
    or the document still has an open job.

    Returns (job, created).
    """
    config = _active_config(org_id)
    provider = get_provider(config.provider)

    def _op():
        live = idempotency_service.find_live(org_id, key)
        if live and live.fiscal_job:
            return live.fiscal_job, False

        # A job that may still fiscalize this document blocks a second one
        open_job = find_open_document_job(org_id, operation_type, **refs)
        if open_job:
            return open_job, False

        job = create_job(
            org_id=org_id,
            operation_type=operation_type,
            request_data=provider.document_request(config, operation_type, payload),
            provider=config.provider,
            **refs,
        )
        record, created = idempotency_service.claim(org_id, key)
        if not created:
            db.session.rollback()
            return record.fiscal_job, False

        record.fiscal_job_id = job.id
        db.session.commit()
        return job, True

    return run_with_retry(_op)


def queue_sale_receipt(org_id: int, sale_id: int, *, user_id: int | None = None):
    """Queue fiscalization of a sale. Returns (job, created)."""
    sale = db.session.query(Sale).filter_by(id=sale_id, org_id=org_id).first()
    if not sale:
        raise FiscalJobError(f"Sale {sale_id} not found")
    if sale.fiscal_number:
        raise FiscalJobError(f"Sale {sale.reference_number} is already fiscalized")

    key = idempotency_service.request_key(
        org_id=org_id, user_id=user_id, extra={"operation": OP_SALE, "sale_id": sale_id}
    )
    payload = {
        "sale_id": sale.id,
        "reference_number": sale.reference_number,
        "total_cents": sale.total_cents,
        "paid_cents": sale.paid_cents,
    }
    return _queue_document(org_id, OP_SALE, payload, key, sale_id=sale.id)


def queue_return_receipt(org_id: int, return_id: int, *, user_id: int | None = None):
    """
    Queue fiscalization of a return. Returns (job, created).

    The device refunds against the original receipt, so the original sale
    must have been fiscalized first.
    """
    sale_return = db.session.query(SaleReturn).filter_by(id=return_id, org_id=org_id).first()
    if not sale_return:
        raise FiscalJobError(f"Return {return_id} not found")
    if sale_return.fiscal_number:
        raise FiscalJobError(f"Return {sale_return.reference_number} is already fiscalized")

    sale = sale_return.sale
    if not sale or not sale.fiscal_number:
        raise FiscalJobError("Original sale has no fiscal number; cannot fiscalize the return")

    key = idempotency_service.request_key(
        org_id=org_id, user_id=user_id, extra={"operation": OP_RETURN, "return_id": return_id}
    )
    payload = {
        "return_id": sale_return.id,
        "reference_number": sale_return.reference_number,
        "amount_cents": sale_return.amount_cents,
        "original_fiscal_number": sale.fiscal_number,
        "original_fiscal_document_id": sale.fiscal_document_id,
    }
    return _queue_document(org_id, OP_RETURN, payload, key, return_id=sale_return.id)


def queue_shift_operation(org_id: int, operation: str):
    """Queue shift_open / shift_close / shift_status / shift_x_report."""
    if operation not in SHIFT_OPERATIONS:
        raise FiscalJobError(f"Invalid shift operation: {operation}")

    config = get_config(org_id)
    if not config or not config.is_configured():
        raise ShiftSyncError("Fiscal printer is not configured")

    provider = get_provider(config.provider)
    return enqueue(
        org_id=org_id,
        operation_type=operation,
        request_data=provider.shift_operation_request(config, operation),
        provider=config.provider,
    )


def get_shift_status(org_id: int) -> dict:
    """
    Return the cached shift state and ask the device for a fresh one.

    The answer arrives asynchronously through the shift_status job.
    """
    job = queue_shift_operation(org_id, OP_SHIFT_STATUS)
    config = get_config(org_id)
    return {**config.shift_to_dict(), "status_job_id": job.id}
