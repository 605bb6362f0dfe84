# Overview: Pytest coverage for the fiscal job queue state machine and retry policy.

"""
Fiscal Job Queue Tests

Covers:
1. Enqueue validation (sale XOR return, tenant ownership)
2. Pickup race: only one claimer wins
3. Completion is terminal and writes the fiscal number to sale OR return
4. Retry ceiling and exponential backoff (30s, 60s, 120s)
5. Non-retriable device errors are terminal immediately
6. Stuck jobs handed back to the queue
"""

from datetime import timedelta

import pytest

from posledger.extensions import db
from posledger.models import FiscalJob, Sale, SaleReturn
from posledger.services import fiscal_job_service
from posledger.services.fiscal_job_service import (
    FiscalJobError,
    FiscalJobNotFoundError,
    FiscalJobStateError,
)
from posledger.time_utils import utcnow


def _sale_job(org, sale, provider="omnitech"):
    return fiscal_job_service.enqueue(
        org_id=org.id,
        operation_type="sale",
        sale_id=sale.id,
        request_data={"sale_id": sale.id},
        provider=provider,
    )


def _processing_job(org, sale, provider="omnitech"):
    job = _sale_job(org, sale, provider)
    assert fiscal_job_service.pick_up(job.id) is True
    return job


def _seconds_until(moment):
    return (moment - utcnow()).total_seconds()


class TestEnqueue:
    def test_sale_job_starts_pending(self, db_session, org_a, sale_a):
        job = _sale_job(org_a, sale_a)

        assert job.status == "pending"
        assert job.retry_count == 0
        assert job.is_retriable is True
        assert job.sale_id == sale_a.id
        assert job.return_id is None

    def test_sale_job_requires_sale(self, db_session, org_a):
        with pytest.raises(FiscalJobError):
            fiscal_job_service.enqueue(org_id=org_a.id, operation_type="sale")

    def test_job_cannot_reference_sale_and_return(self, db_session, org_a, sale_a, return_a):
        with pytest.raises(FiscalJobError):
            fiscal_job_service.enqueue(
                org_id=org_a.id, operation_type="return", sale_id=sale_a.id, return_id=return_a.id
            )
        assert db_session.query(FiscalJob).count() == 0

    def test_invalid_operation_type_rejected(self, db_session, org_a):
        with pytest.raises(FiscalJobError):
            fiscal_job_service.enqueue(org_id=org_a.id, operation_type="print_everything")

    def test_cross_tenant_sale_rejected(self, db_session, org_a, sale_b):
        with pytest.raises(FiscalJobError):
            fiscal_job_service.enqueue(org_id=org_a.id, operation_type="sale", sale_id=sale_b.id)

    def test_shift_job_needs_no_document(self, db_session, org_a):
        job = fiscal_job_service.enqueue(org_id=org_a.id, operation_type="shift_open", provider="caspos")
        assert job.sale_id is None
        assert job.return_id is None


class TestPickUp:
    def test_pick_up_claims_pending_job(self, db_session, org_a, sale_a):
        job = _sale_job(org_a, sale_a)

        assert fiscal_job_service.pick_up(job.id) is True

        job = fiscal_job_service.get_job(job.id)
        assert job.status == "processing"
        assert job.picked_up_at is not None

    def test_second_pick_up_loses(self, db_session, org_a, sale_a):
        job = _sale_job(org_a, sale_a)

        assert fiscal_job_service.pick_up(job.id) is True
        assert fiscal_job_service.pick_up(job.id) is False

    def test_pick_up_unknown_job_returns_false(self, db_session):
        assert fiscal_job_service.pick_up(999999) is False

    def test_poll_returns_due_jobs_oldest_first(self, db_session, org_a, org_b, sale_a, sale_b):
        first = _sale_job(org_a, sale_a)
        second = fiscal_job_service.enqueue(org_id=org_a.id, operation_type="shift_status", provider="omnitech")
        _sale_job(org_b, sale_b)

        jobs = fiscal_job_service.poll(org_a.id)

        assert [j.id for j in jobs] == [first.id, second.id]
        assert all(j.status == "processing" for j in jobs)

    def test_poll_skips_jobs_waiting_for_backoff(self, db_session, org_a, sale_a):
        job = _sale_job(org_a, sale_a)
        job.next_retry_at = utcnow() + timedelta(seconds=30)
        db_session.commit()

        assert fiscal_job_service.poll(org_a.id) == []

    def test_poll_respects_limit(self, db_session, org_a):
        for _ in range(3):
            fiscal_job_service.enqueue(org_id=org_a.id, operation_type="shift_status", provider="caspos")

        assert len(fiscal_job_service.poll(org_a.id, limit=2)) == 2
        assert len(fiscal_job_service.poll(org_a.id, limit=2)) == 1

    def test_poll_filters_by_provider(self, db_session, org_a):
        fiscal_job_service.enqueue(org_id=org_a.id, operation_type="shift_status", provider="caspos")
        omnitech = fiscal_job_service.enqueue(org_id=org_a.id, operation_type="shift_status", provider="omnitech")

        jobs = fiscal_job_service.poll(org_a.id, provider="omnitech")
        assert [j.id for j in jobs] == [omnitech.id]


class TestComplete:
    def test_complete_writes_fiscal_number_to_sale(self, db_session, org_a, sale_a):
        job = _processing_job(org_a, sale_a)

        fiscal_job_service.complete(job.id, "000123", "doc-abc", {"code": 0}, org_id=org_a.id)

        job = fiscal_job_service.get_job(job.id)
        sale = db_session.get(Sale, sale_a.id)
        assert job.status == "completed"
        assert job.completed_at is not None
        assert sale.fiscal_number == "000123"
        assert sale.fiscal_document_id == "doc-abc"

    def test_complete_return_job_leaves_sale_untouched(self, db_session, org_a, sale_a, return_a):
        job = fiscal_job_service.enqueue(org_id=org_a.id, operation_type="return", return_id=return_a.id)
        fiscal_job_service.pick_up(job.id)

        fiscal_job_service.complete(job.id, "000777", "doc-ret", org_id=org_a.id)

        sale_return = db_session.get(SaleReturn, return_a.id)
        sale = db_session.get(Sale, sale_a.id)
        assert sale_return.fiscal_number == "000777"
        assert sale.fiscal_number is None

    def test_completed_job_is_terminal(self, db_session, org_a, sale_a):
        job = _processing_job(org_a, sale_a)
        fiscal_job_service.complete(job.id, "000123", org_id=org_a.id)

        with pytest.raises(FiscalJobStateError):
            fiscal_job_service.complete(job.id, "000124", org_id=org_a.id)
        with pytest.raises(FiscalJobStateError):
            fiscal_job_service.fail(job.id, "late error", org_id=org_a.id)
        with pytest.raises(FiscalJobStateError):
            fiscal_job_service.retry(job.id, org_id=org_a.id)
        assert fiscal_job_service.pick_up(job.id) is False

        assert db_session.get(Sale, sale_a.id).fiscal_number == "000123"

    def test_complete_requires_processing(self, db_session, org_a, sale_a):
        job = _sale_job(org_a, sale_a)
        with pytest.raises(FiscalJobStateError):
            fiscal_job_service.complete(job.id, "000123", org_id=org_a.id)

    def test_complete_requires_fiscal_number(self, db_session, org_a, sale_a):
        job = _processing_job(org_a, sale_a)
        with pytest.raises(FiscalJobError):
            fiscal_job_service.complete(job.id, "", org_id=org_a.id)

    def test_duplicate_fiscal_document_rejected(self, db_session, org_a, sale_a, return_a):
        job = _processing_job(org_a, sale_a)
        fiscal_job_service.complete(job.id, "000123", "doc-1", org_id=org_a.id)

        other = fiscal_job_service.enqueue(org_id=org_a.id, operation_type="return", return_id=return_a.id)
        fiscal_job_service.pick_up(other.id)
        with pytest.raises(FiscalJobError):
            fiscal_job_service.complete(other.id, "000124", "doc-1", org_id=org_a.id)

        assert fiscal_job_service.get_job(other.id).status == "processing"

    def test_other_tenant_cannot_complete(self, db_session, org_a, org_b, sale_a):
        job = _processing_job(org_a, sale_a)
        with pytest.raises(FiscalJobNotFoundError):
            fiscal_job_service.complete(job.id, "000123", org_id=org_b.id)

    def test_sale_is_fiscalized_only_once(self, db_session, org_a, sale_a):
        first = _processing_job(org_a, sale_a)
        second = _processing_job(org_a, sale_a)
        fiscal_job_service.complete(first.id, "FN-1", "DOC-1", org_id=org_a.id)

        with pytest.raises(FiscalJobStateError):
            fiscal_job_service.complete(second.id, "FN-2", "DOC-2", org_id=org_a.id)

        sale = db_session.get(Sale, sale_a.id)
        assert sale.fiscal_number == "FN-1"
        assert sale.fiscal_document_id == "DOC-1"
        assert fiscal_job_service.get_job(second.id).status == "processing"

    def test_return_is_fiscalized_only_once(self, db_session, org_a, return_a):
        jobs = []
        for _ in range(2):
            job = fiscal_job_service.enqueue(org_id=org_a.id, operation_type="return", return_id=return_a.id)
            fiscal_job_service.pick_up(job.id)
            jobs.append(job)
        fiscal_job_service.complete(jobs[0].id, "000777", org_id=org_a.id)

        with pytest.raises(FiscalJobStateError):
            fiscal_job_service.complete(jobs[1].id, "000778", org_id=org_a.id)

        assert db_session.get(SaleReturn, return_a.id).fiscal_number == "000777"

    def test_open_document_job_lookup(self, db_session, org_a, sale_a):
        assert fiscal_job_service.find_open_document_job(org_a.id, "sale", sale_id=sale_a.id) is None

        job = _processing_job(org_a, sale_a)
        found = fiscal_job_service.find_open_document_job(org_a.id, "sale", sale_id=sale_a.id)
        assert found.id == job.id

        fiscal_job_service.handle_failure(job.id, "Təkrar satış: already exists", org_id=org_a.id)
        assert fiscal_job_service.find_open_document_job(org_a.id, "sale", sale_id=sale_a.id) is None


class TestRetryPolicy:
    def test_backoff_doubles_per_attempt(self, db_session, org_a, sale_a):
        job = _sale_job(org_a, sale_a)
        delays = []
        for count in (1, 2, 3):
            job.retry_count = count
            delays.append(fiscal_job_service.backoff_seconds(job))

        assert delays == [30, 60, 120]

    def test_transient_failures_retry_until_ceiling(self, db_session, org_a, sale_a):
        job = _sale_job(org_a, sale_a)

        expected_delays = [30, 60]
        for attempt, delay in enumerate(expected_delays, start=1):
            assert fiscal_job_service.pick_up(job.id) is True
            result = fiscal_job_service.handle_failure(job.id, "network timeout", org_id=org_a.id)

            job = result["job"]
            assert result["is_retriable"] is True
            assert result["can_retry"] is True
            assert job.status == "pending"
            assert job.retry_count == attempt
            assert delay - 5 <= _seconds_until(job.next_retry_at) <= delay + 1

        assert fiscal_job_service.pick_up(job.id) is True
        result = fiscal_job_service.handle_failure(job.id, "network timeout", org_id=org_a.id)

        job = result["job"]
        assert result["can_retry"] is False
        assert job.status == "failed"
        assert job.retry_count == 3
        assert fiscal_job_service.can_retry(job) is False
        with pytest.raises(FiscalJobStateError):
            fiscal_job_service.retry(job.id, org_id=org_a.id)

    def test_non_retriable_error_is_terminal_immediately(self, db_session, org_a, sale_a):
        job = _processing_job(org_a, sale_a)

        result = fiscal_job_service.handle_failure(job.id, "Təkrar satış: already exists", org_id=org_a.id)

        job = result["job"]
        assert result["is_retriable"] is False
        assert result["can_retry"] is False
        assert job.status == "failed"
        assert job.is_retriable is False
        assert job.retry_count == 1

    def test_failure_and_requeue_share_one_transaction(self, db_session, org_a, sale_a, monkeypatch):
        job = _processing_job(org_a, sale_a)

        def _broken_backoff(_job):
            raise RuntimeError("backoff unavailable")

        monkeypatch.setattr(fiscal_job_service, "backoff_seconds", _broken_backoff)
        with pytest.raises(RuntimeError):
            fiscal_job_service.handle_failure(job.id, "network timeout", org_id=org_a.id)

        # The recorded failure rolled back with the re-queue
        job = db_session.get(FiscalJob, job.id)
        assert job.status == "processing"
        assert job.retry_count == 0
        assert job.error_message is None

    def test_handle_failure_does_not_go_through_retry(self, db_session, org_a, sale_a, monkeypatch):
        job = _processing_job(org_a, sale_a)

        def _no_second_transaction(*args, **kwargs):
            raise AssertionError("re-queue must not run in its own transaction")

        monkeypatch.setattr(fiscal_job_service, "retry", _no_second_transaction)
        monkeypatch.setattr(fiscal_job_service, "fail", _no_second_transaction)

        result = fiscal_job_service.handle_failure(job.id, "network timeout", org_id=org_a.id)

        assert result["can_retry"] is True
        assert result["job"].status == "pending"
        assert result["job"].retry_count == 1

    def test_retry_requires_failed_status(self, db_session, org_a, sale_a):
        job = _sale_job(org_a, sale_a)
        with pytest.raises(FiscalJobStateError):
            fiscal_job_service.retry(job.id, org_id=org_a.id)

    def test_provider_override_changes_ceiling(self, db_session, org_a, sale_a, monkeypatch):
        from posledger.services.fiscal_providers import get_provider

        monkeypatch.setattr(get_provider("caspos"), "max_retries", 1)
        job = _processing_job(org_a, sale_a, provider="caspos")

        result = fiscal_job_service.handle_failure(job.id, "network timeout", org_id=org_a.id)
        assert result["can_retry"] is False
        assert result["job"].status == "failed"


class TestStuckJobs:
    def test_stuck_processing_job_reset_to_pending(self, db_session, org_a, sale_a):
        job = _processing_job(org_a, sale_a)
        job = fiscal_job_service.get_job(job.id)
        job.picked_up_at = utcnow() - timedelta(minutes=10)
        db_session.commit()

        assert fiscal_job_service.reset_stuck_jobs(org_a.id) == 1

        job = fiscal_job_service.get_job(job.id)
        assert job.status == "pending"
        assert job.picked_up_at is None
        assert job.next_retry_at is not None

    def test_recent_processing_job_left_alone(self, db_session, org_a, sale_a):
        job = _processing_job(org_a, sale_a)

        assert fiscal_job_service.reset_stuck_jobs(org_a.id) == 0
        assert fiscal_job_service.get_job(job.id).status == "processing"


class TestOperatorQueries:
    def test_job_stats_counts_every_status(self, db_session, org_a, sale_a):
        _sale_job(org_a, sale_a)
        fiscal_job_service.enqueue(org_id=org_a.id, operation_type="shift_status", provider="caspos")

        stats = fiscal_job_service.job_stats(org_a.id)
        assert stats == {"pending": 2, "processing": 0, "completed": 0, "failed": 0}

    def test_list_jobs_rejects_unknown_status(self, db_session, org_a):
        with pytest.raises(FiscalJobError):
            fiscal_job_service.list_jobs(org_a.id, status="exploded")

    def test_list_jobs_is_tenant_scoped(self, db_session, org_a, org_b, sale_a, sale_b):
        _sale_job(org_a, sale_a)
        _sale_job(org_b, sale_b)

        jobs = fiscal_job_service.list_jobs(org_b.id)
        assert len(jobs) == 1
        assert jobs[0].org_id == org_b.id
