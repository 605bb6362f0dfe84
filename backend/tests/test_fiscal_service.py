# Overview: Pytest coverage for fiscal entry points and short-window request deduplication.

from datetime import timedelta

import pytest

from posledger.models import FiscalJob, IdempotencyKey, Sale
from posledger.services import fiscal_job_service, fiscal_service, idempotency_service
from posledger.services.fiscal_job_service import FiscalJobError
from posledger.time_utils import utcnow


class TestRequestKey:
    def test_item_order_does_not_matter(self):
        first = idempotency_service.request_key(org_id=1, user_id=7, location_id=3, items=[(10, 2), (11, 1)])
        second = idempotency_service.request_key(org_id=1, user_id=7, location_id=3, items=[(11, 1), (10, 2)])

        assert first == second
        assert len(first) == 64

    def test_different_quantity_changes_key(self):
        first = idempotency_service.request_key(org_id=1, items=[(10, 2)])
        second = idempotency_service.request_key(org_id=1, items=[(10, 3)])

        assert first != second

    def test_tenant_is_part_of_key(self):
        assert idempotency_service.request_key(org_id=1) != idempotency_service.request_key(org_id=2)


class TestClaim:
    def test_second_claim_inside_window_returns_existing(self, db_session, org_a):
        record, created = idempotency_service.claim(org_a.id, "k" * 64)
        db_session.commit()

        again, created_again = idempotency_service.claim(org_a.id, "k" * 64)

        assert created is True
        assert created_again is False
        assert again.id == record.id

    def test_expired_key_is_recycled(self, db_session, org_a):
        record, _ = idempotency_service.claim(org_a.id, "e" * 64)
        record.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        recycled, created = idempotency_service.claim(org_a.id, "e" * 64)
        db_session.commit()

        assert created is True
        assert recycled.id == record.id
        assert recycled.expires_at > utcnow()
        assert db_session.query(IdempotencyKey).count() == 1

    def test_purge_expired(self, db_session, org_a):
        record, _ = idempotency_service.claim(org_a.id, "p" * 64)
        record.expires_at = utcnow() - timedelta(seconds=1)
        idempotency_service.claim(org_a.id, "q" * 64)
        db_session.commit()

        assert idempotency_service.purge_expired() == 1
        assert db_session.query(IdempotencyKey).count() == 1


class TestQueueSaleReceipt:
    def test_queues_job_with_vendor_request(self, db_session, org_a, printer_a, sale_a):
        job, created = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id, user_id=7)

        assert created is True
        assert job.status == "pending"
        assert job.provider == "omnitech"
        assert job.request_data["url"] == "http://192.168.1.50:8989"
        assert job.request_data["body"]["data"]["reference_number"] == "S202501140001"

    def test_double_submit_returns_same_job(self, db_session, org_a, printer_a, sale_a):
        job, _ = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id, user_id=7)

        again, created = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id, user_id=7)

        assert created is False
        assert again.id == job.id
        assert db_session.query(FiscalJob).count() == 1

    def test_pending_job_blocks_second_after_key_expires(self, db_session, org_a, printer_a, sale_a):
        job, _ = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id, user_id=7)
        for record in db_session.query(IdempotencyKey).all():
            record.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        again, created = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id, user_id=7)

        assert created is False
        assert again.id == job.id
        assert db_session.query(FiscalJob).count() == 1

    def test_terminally_failed_job_allows_new_one(self, db_session, org_a, printer_a, sale_a):
        job, _ = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id, user_id=7)
        fiscal_job_service.pick_up(job.id)
        fiscal_job_service.fail(job.id, "Paper jam", is_retriable=False, org_id=org_a.id)

        # Another cashier resubmits outside the first request's dedup key
        again, created = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id, user_id=8)

        assert created is True
        assert again.id != job.id

    def test_fiscalized_sale_rejected(self, db_session, org_a, printer_a, sale_a):
        sale = db_session.get(Sale, sale_a.id)
        sale.fiscal_number = "000001"
        db_session.commit()

        with pytest.raises(FiscalJobError):
            fiscal_service.queue_sale_receipt(org_a.id, sale_a.id)

    def test_requires_configured_printer(self, db_session, org_a, sale_a):
        with pytest.raises(FiscalJobError):
            fiscal_service.queue_sale_receipt(org_a.id, sale_a.id)


class TestQueueReturnReceipt:
    def test_return_requires_fiscalized_sale(self, db_session, org_a, printer_a, return_a):
        with pytest.raises(FiscalJobError):
            fiscal_service.queue_return_receipt(org_a.id, return_a.id)

    def test_return_references_original_receipt(self, db_session, org_a, printer_a, sale_a, return_a):
        sale_job, _ = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id)
        fiscal_job_service.pick_up(sale_job.id)
        fiscal_job_service.complete(sale_job.id, "000123", "doc-sale", org_id=org_a.id)

        job, created = fiscal_service.queue_return_receipt(org_a.id, return_a.id)

        assert created is True
        assert job.return_id == return_a.id
        assert job.sale_id is None
        body = job.request_data["body"]["data"]
        assert body["original_fiscal_number"] == "000123"
        assert body["original_fiscal_document_id"] == "doc-sale"

    def test_processing_return_job_blocks_second(self, db_session, org_a, printer_a, sale_a, return_a):
        sale_job, _ = fiscal_service.queue_sale_receipt(org_a.id, sale_a.id)
        fiscal_job_service.pick_up(sale_job.id)
        fiscal_job_service.complete(sale_job.id, "000123", org_id=org_a.id)
        job, _ = fiscal_service.queue_return_receipt(org_a.id, return_a.id, user_id=1)
        fiscal_job_service.pick_up(job.id)

        again, created = fiscal_service.queue_return_receipt(org_a.id, return_a.id, user_id=2)

        assert created is False
        assert again.id == job.id
