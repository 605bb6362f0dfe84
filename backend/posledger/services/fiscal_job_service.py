# Overview: Durable fiscal job queue and its state machine (enqueue, pickup, completion, retry).

"""
Fiscal Job Queue

WHY: Every sale, return and shift operation must reach the fiscal printer
exactly once, even though the printer sits behind an unreliable bridge
that polls over the internet. Jobs are durable rows; the bridge claims,
executes and reports them.

LIFECYCLE:
pending -> processing (pick_up) -> completed (complete)
                                -> failed (fail) -> pending (retry, with backoff)

DESIGN:
- Pickup is a conditional UPDATE ... WHERE status='pending'; only one
  claimer sees rowcount 1
- A completed job is terminal; nothing transitions out of it
- Retry scheduling is passive: next_retry_at is a filter in poll, no timers
- Non-retriable device errors (duplicate sale, already printed) are never
  retried, since a retry would fiscalize the same document twice
- fiscal_number goes to the Sale OR the SaleReturn, never both
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import update, or_

from ..extensions import db
from ..models import FiscalJob, Sale, SaleReturn
from ..models.fiscal import (
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUSES,
    OP_SALE,
    OP_RETURN,
    OPERATION_TYPES,
    SHIFT_OPERATIONS,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .fiscal_providers import classify_error, get_provider, UnsupportedProviderError


class FiscalJobError(Exception):
    """Raised for fiscal job validation errors."""
    pass


class FiscalJobNotFoundError(FiscalJobError):
    """Raised when a job does not exist for the tenant."""
    pass


class FiscalJobStateError(FiscalJobError):
    """Raised when a transition is not allowed from the job's current status."""
    pass


# =============================================================================
# RETRY SETTINGS
# =============================================================================

def retry_settings(provider_name: str | None) -> tuple[int, int]:
    """
    Return (max_retries, base_seconds) for a provider.

    Application config supplies the defaults; a provider adapter may
    override either value.
    """
    max_retries = int(current_app.config.get("FISCAL_MAX_RETRIES", 3))
    base_seconds = int(current_app.config.get("FISCAL_RETRY_BASE_SECONDS", 30))
    try:
        provider = get_provider(provider_name)
    except UnsupportedProviderError:
        return max_retries, base_seconds
    if provider.max_retries is not None:
        max_retries = provider.max_retries
    if provider.retry_base_seconds is not None:
        base_seconds = provider.retry_base_seconds
    return max_retries, base_seconds


def backoff_seconds(job: FiscalJob) -> int:
    """
    Delay before the next attempt of a failed job.

    retry_count has already been incremented by fail(), so the first retry
    waits base, the second 2*base, the third 4*base (30s, 60s, 120s).
    """
    _, base = retry_settings(job.provider)
    return base * (2 ** max(job.retry_count - 1, 0))


def can_retry(job: FiscalJob) -> bool:
    max_retries, _ = retry_settings(job.provider)
    return bool(job.is_retriable) and job.retry_count < max_retries


# =============================================================================
# LOOKUP
# =============================================================================

def _job_query(job_id: int, org_id: int | None):
    query = db.session.query(FiscalJob).filter(FiscalJob.id == job_id)
    if org_id is not None:
        query = query.filter(FiscalJob.org_id == org_id)
    return query


def _get_locked(job_id: int, org_id: int | None) -> FiscalJob:
    job = lock_for_update(_job_query(job_id, org_id)).first()
    if not job:
        raise FiscalJobNotFoundError(f"Fiscal job {job_id} not found")
    return job


def get_job(job_id: int, org_id: int | None = None) -> FiscalJob:
    job = _job_query(job_id, org_id).first()
    if not job:
        raise FiscalJobNotFoundError(f"Fiscal job {job_id} not found")
    return job


def find_open_document_job(
    org_id: int,
    operation_type: str,
    *,
    sale_id: int | None = None,
    return_id: int | None = None,
) -> FiscalJob | None:
    """
    The job that may still fiscalize this sale / return, if any.

    Open means pending, processing, or failed but still retriable.
    """
    query = db.session.query(FiscalJob).filter(
        FiscalJob.org_id == org_id,
        FiscalJob.operation_type == operation_type,
        FiscalJob.status.in_((JOB_STATUS_PENDING, JOB_STATUS_PROCESSING, JOB_STATUS_FAILED)),
    )
    if return_id is not None:
        query = query.filter(FiscalJob.return_id == return_id)
    else:
        query = query.filter(FiscalJob.sale_id == sale_id, FiscalJob.return_id.is_(None))

    for job in query.order_by(FiscalJob.id).all():
        if job.status != JOB_STATUS_FAILED or can_retry(job):
            return job
    return None


# =============================================================================
# ENQUEUE
# =============================================================================

def create_job(
    *,
    org_id: int,
    operation_type: str,
    sale_id: int | None = None,
    return_id: int | None = None,
    request_data: dict | None = None,
    provider: str | None = None,
) -> FiscalJob:
    """
    Validate and add a pending job to the current transaction (no commit).

    Sale jobs reference exactly one Sale; return jobs exactly one SaleReturn.
    Referenced rows must belong to the same tenant.
    """
    if operation_type not in OPERATION_TYPES:
        raise FiscalJobError(f"Invalid operation type: {operation_type}")

    if operation_type == OP_SALE and (not sale_id or return_id):
        raise FiscalJobError("Sale jobs require sale_id and no return_id")
    if operation_type == OP_RETURN and (not return_id or sale_id):
        raise FiscalJobError("Return jobs require return_id and no sale_id")
    if sale_id and return_id:
        raise FiscalJobError("A job may reference a sale or a return, not both")

    if sale_id:
        if not db.session.query(Sale.id).filter_by(id=sale_id, org_id=org_id).first():
            raise FiscalJobError(f"Sale {sale_id} not found")
    if return_id:
        if not db.session.query(SaleReturn.id).filter_by(id=return_id, org_id=org_id).first():
            raise FiscalJobError(f"Return {return_id} not found")

    job = FiscalJob(
        org_id=org_id,
        operation_type=operation_type,
        sale_id=sale_id,
        return_id=return_id,
        request_data=request_data,
        provider=provider,
        status=JOB_STATUS_PENDING,
        retry_count=0,
        is_retriable=True,
    )
    db.session.add(job)
    db.session.flush()
    return job


def enqueue(
    *,
    org_id: int,
    operation_type: str,
    sale_id: int | None = None,
    return_id: int | None = None,
    request_data: dict | None = None,
    provider: str | None = None,
) -> FiscalJob:
    """Create a pending job and commit it."""
    def _op():
        job = create_job(
            org_id=org_id,
            operation_type=operation_type,
            sale_id=sale_id,
            return_id=return_id,
            request_data=request_data,
            provider=provider,
        )
        db.session.commit()
        return job

    return run_with_retry(_op)


# =============================================================================
# PICKUP / POLL
# =============================================================================

def pick_up(job_id: int) -> bool:
    """
    Claim a pending job for processing.

    Returns False when the job is not pending (already claimed by a
    concurrent poller, or in any other status). Never raises for a lost race.
    """
    def _op():
        now = utcnow()
        stmt = (
            update(FiscalJob)
            .where(FiscalJob.id == job_id, FiscalJob.status == JOB_STATUS_PENDING)
            .values(status=JOB_STATUS_PROCESSING, picked_up_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.commit()
        return result.rowcount == 1

    return run_with_retry(_op)


def reset_stuck_jobs(org_id: int | None = None) -> int:
    """
    Return jobs stuck in processing back to pending.

    A job is stuck when the bridge claimed it more than
    FISCAL_STUCK_JOB_MINUTES ago and never reported back (crash, network
    loss). It becomes eligible again after the base retry delay.
    """
    stuck_minutes = int(current_app.config.get("FISCAL_STUCK_JOB_MINUTES", 5))
    base_seconds = int(current_app.config.get("FISCAL_RETRY_BASE_SECONDS", 30))

    def _op():
        now = utcnow()
        stmt = (
            update(FiscalJob)
            .where(
                FiscalJob.status == JOB_STATUS_PROCESSING,
                FiscalJob.picked_up_at < now - timedelta(minutes=stuck_minutes),
            )
            .values(
                status=JOB_STATUS_PENDING,
                picked_up_at=None,
                next_retry_at=now + timedelta(seconds=base_seconds),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if org_id is not None:
            stmt = stmt.where(FiscalJob.org_id == org_id)
        result = db.session.execute(stmt)
        db.session.commit()
        return result.rowcount

    count = run_with_retry(_op)
    if count:
        current_app.logger.warning("Reset %s stuck fiscal job(s) to pending (org=%s)", count, org_id)
    return count


def poll(org_id: int, provider: str | None = None, limit: int | None = None) -> list[FiscalJob]:
    """
    Hand the bridge the next batch of due jobs, oldest first.

    Each candidate is claimed individually with pick_up(); candidates lost
    to a concurrent poller are skipped.
    """
    if limit is None:
        limit = int(current_app.config.get("FISCAL_POLL_BATCH_SIZE", 5))

    reset_stuck_jobs(org_id)

    now = utcnow()
    query = (
        db.session.query(FiscalJob.id)
        .filter(
            FiscalJob.org_id == org_id,
            FiscalJob.status == JOB_STATUS_PENDING,
            or_(FiscalJob.next_retry_at.is_(None), FiscalJob.next_retry_at <= now),
        )
    )
    if provider:
        query = query.filter(FiscalJob.provider == provider)
    candidate_ids = [row.id for row in query.order_by(FiscalJob.created_at.asc(), FiscalJob.id.asc()).limit(limit)]

    claimed_ids = [job_id for job_id in candidate_ids if pick_up(job_id)]
    if not claimed_ids:
        return []

    jobs = db.session.query(FiscalJob).filter(FiscalJob.id.in_(claimed_ids)).all()
    jobs.sort(key=lambda job: claimed_ids.index(job.id))
    return jobs


# =============================================================================
# COMPLETION
# =============================================================================

def _lock_fiscal_document(job: FiscalJob):
    """
    Lock the return (return_id set) or the sale a document job fiscalizes.

    Returns None for jobs that carry no document (shift and cash operations).

    Raises:
        FiscalJobStateError: the document already has a fiscal number, or
            another job already fiscalized it
    """
    if job.return_id:
        document = lock_for_update(
            db.session.query(SaleReturn).filter_by(id=job.return_id, org_id=job.org_id)
        ).first()
        if not document:
            raise FiscalJobError(f"Return {job.return_id} not found")
        same_document = FiscalJob.return_id == job.return_id
    elif job.sale_id and job.operation_type == OP_SALE:
        document = lock_for_update(
            db.session.query(Sale).filter_by(id=job.sale_id, org_id=job.org_id)
        ).first()
        if not document:
            raise FiscalJobError(f"Sale {job.sale_id} not found")
        same_document = FiscalJob.sale_id == job.sale_id
    else:
        return None

    if document.fiscal_number:
        raise FiscalJobStateError(
            f"{document.reference_number} is already fiscalized ({document.fiscal_number})"
        )
    completed = (
        db.session.query(FiscalJob.id)
        .filter(
            FiscalJob.org_id == job.org_id,
            same_document,
            FiscalJob.operation_type == job.operation_type,
            FiscalJob.status == JOB_STATUS_COMPLETED,
            FiscalJob.id != job.id,
        )
        .first()
    )
    if completed:
        raise FiscalJobStateError(
            f"{document.reference_number} was already fiscalized by job {completed.id}"
        )
    return document


def _require_processing(job: FiscalJob, action: str) -> None:
    if job.status != JOB_STATUS_PROCESSING:
        raise FiscalJobStateError(
            f"Cannot {action} fiscal job {job.id} with status {job.status}"
        )


def complete(
    job_id: int,
    fiscal_number: str,
    fiscal_document_id: str | None = None,
    response: dict | None = None,
    *,
    org_id: int | None = None,
) -> FiscalJob:
    """
    Mark a processing job completed and attach its fiscal identifiers.

    The job update and the Sale/SaleReturn update commit together.

    Raises:
        FiscalJobStateError: job is not processing (completed jobs are terminal),
            or its sale / return is already fiscalized
        FiscalJobError: missing fiscal_number or duplicate fiscal_document_id
    """
    if not fiscal_number:
        raise FiscalJobError("fiscal_number is required")

    def _op():
        job = _get_locked(job_id, org_id)
        _require_processing(job, "complete")

        if fiscal_document_id:
            duplicate = (
                db.session.query(FiscalJob.id)
                .filter(
                    FiscalJob.org_id == job.org_id,
                    FiscalJob.fiscal_document_id == fiscal_document_id,
                    FiscalJob.id != job.id,
                )
                .first()
            )
            if duplicate:
                raise FiscalJobError(f"Fiscal document {fiscal_document_id} is already recorded")

        document = _lock_fiscal_document(job)

        now = utcnow()
        job.status = JOB_STATUS_COMPLETED
        job.fiscal_number = fiscal_number
        job.fiscal_document_id = fiscal_document_id
        job.response_data = response
        job.error_message = None
        job.completed_at = now
        job.next_retry_at = None

        if document is not None:
            document.fiscal_number = fiscal_number
            document.fiscal_document_id = fiscal_document_id

        db.session.commit()
        return job

    job = run_with_retry(_op)
    current_app.logger.info(
        "Fiscal job %s completed (sale=%s return=%s fiscal_number=%s)",
        job.id, job.sale_id, job.return_id, fiscal_number,
    )
    return job


def complete_shift_operation(job_id: int, response: dict | None, *, org_id: int | None = None) -> FiscalJob:
    """Complete a shift job and reconcile the tenant's shift state from the device response."""
    from . import shift_service

    def _op():
        job = _get_locked(job_id, org_id)
        _require_processing(job, "complete")
        if job.operation_type not in SHIFT_OPERATIONS:
            raise FiscalJobError(f"Fiscal job {job.id} is not a shift operation")

        job.status = JOB_STATUS_COMPLETED
        job.response_data = response
        job.error_message = None
        job.completed_at = utcnow()
        job.next_retry_at = None

        shift_service.apply_shift_result(job, response)

        db.session.commit()
        return job

    job = run_with_retry(_op)
    current_app.logger.info("Fiscal shift job %s (%s) completed", job.id, job.operation_type)
    return job


# =============================================================================
# FAILURE / RETRY
# =============================================================================

def _record_failure_locked(job: FiscalJob, error_message: str, is_retriable: bool) -> None:
    _require_processing(job, "fail")
    job.status = JOB_STATUS_FAILED
    job.error_message = error_message
    job.completed_at = utcnow()
    job.retry_count = (job.retry_count or 0) + 1
    job.is_retriable = bool(is_retriable)


def _requeue_locked(job: FiscalJob) -> None:
    if job.status != JOB_STATUS_FAILED:
        raise FiscalJobStateError(f"Cannot retry fiscal job {job.id} with status {job.status}")
    if not can_retry(job):
        raise FiscalJobStateError(f"Fiscal job {job.id} cannot be retried")

    job.status = JOB_STATUS_PENDING
    job.error_message = None
    job.picked_up_at = None
    job.completed_at = None
    job.next_retry_at = utcnow() + timedelta(seconds=backoff_seconds(job))


def fail(job_id: int, error_message: str, is_retriable: bool = True, *, org_id: int | None = None) -> FiscalJob:
    """Record a failed attempt. retry_count counts failed attempts."""
    def _op():
        job = _get_locked(job_id, org_id)
        _record_failure_locked(job, error_message, is_retriable)
        db.session.commit()
        return job

    return run_with_retry(_op)


def retry(job_id: int, *, org_id: int | None = None) -> FiscalJob:
    """
    Re-queue a failed job after its backoff delay.

    Raises:
        FiscalJobStateError: job is not failed, not retriable, or out of retries
    """
    def _op():
        job = _get_locked(job_id, org_id)
        _requeue_locked(job)
        db.session.commit()
        return job

    return run_with_retry(_op)


def handle_failure(job_id: int, error_message: str, *, org_id: int | None = None) -> dict:
    """
    Process a failure report from the bridge.

    Classifies the error with the job's provider, records the failure and
    re-queues the job when it may still be retried. Both happen in one
    transaction, so a retriable job is never left behind as failed.

    Returns:
        {"job": FiscalJob, "is_retriable": bool, "can_retry": bool}
    """
    job = get_job(job_id, org_id)
    is_retriable = classify_error(job.provider, error_message)

    def _op():
        job = _get_locked(job_id, org_id)
        _record_failure_locked(job, error_message, is_retriable)
        retrying = can_retry(job)
        if retrying:
            _requeue_locked(job)
        db.session.commit()
        return job, retrying

    job, retrying = run_with_retry(_op)
    current_app.logger.error(
        "Fiscal job %s failed (sale=%s retry_count=%s retriable=%s): %s",
        job.id, job.sale_id, job.retry_count, is_retriable, error_message,
    )
    if retrying:
        current_app.logger.info(
            "Fiscal job %s queued for retry %s at %s",
            job.id, job.retry_count, job.next_retry_at,
        )
    else:
        reason = "non-retriable error" if not is_retriable else "max retries reached"
        current_app.logger.warning("Fiscal job %s will not be retried: %s", job.id, reason)

    return {"job": job, "is_retriable": is_retriable, "can_retry": retrying}


# =============================================================================
# OPERATOR QUERIES
# =============================================================================

def list_jobs(
    org_id: int,
    *,
    status: str | None = None,
    operation_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[FiscalJob]:
    if status and status not in JOB_STATUSES:
        raise FiscalJobError(f"Invalid status: {status}")

    query = db.session.query(FiscalJob).filter(FiscalJob.org_id == org_id)
    if status:
        query = query.filter(FiscalJob.status == status)
    if operation_type:
        query = query.filter(FiscalJob.operation_type == operation_type)
    return query.order_by(FiscalJob.created_at.desc(), FiscalJob.id.desc()).offset(offset).limit(limit).all()


def job_stats(org_id: int) -> dict:
    """Job counts per status for the tenant (every status present, zero when empty)."""
    rows = (
        db.session.query(FiscalJob.status, db.func.count(FiscalJob.id))
        .filter(FiscalJob.org_id == org_id)
        .group_by(FiscalJob.status)
        .all()
    )
    stats = {status: 0 for status in JOB_STATUSES}
    stats.update({status: count for status, count in rows})
    return stats
