# Overview: Pytest coverage for reference number formats and uniqueness under concurrency.

import threading

import pytest

from posledger import create_app
from posledger.extensions import db
from posledger.models import Organization, ReferenceSequence
from posledger.services import sequence_service
from posledger.services.concurrency import run_with_retry
from posledger.services.sequence_service import SequenceError
from posledger.time_utils import utcnow


class TestFormats:
    def test_yearly_reference_format(self, db_session, org_a):
        ref = sequence_service.yearly_reference(org_a.id, "SC")
        db_session.commit()

        assert ref == f"SC-{utcnow().year}-000001"

    def test_daily_reference_format(self, db_session, org_a):
        ref = sequence_service.daily_reference(org_a.id, "S")
        db_session.commit()

        assert ref == f"S{utcnow().strftime('%Y%m%d')}0001"

    def test_custom_padding_and_separator(self, db_session, org_a):
        ref = sequence_service.next_reference(org_id=org_a.id, prefix="GC", pad=3, separator="/")
        db_session.commit()

        assert ref == "GC/001"

    def test_numbers_increase_per_scope(self, db_session, org_a):
        refs = [sequence_service.next_reference(org_id=org_a.id, prefix="R", scope="2025") for _ in range(3)]
        other = sequence_service.next_reference(org_id=org_a.id, prefix="R", scope="2026")
        db_session.commit()

        assert refs == ["R000001", "R000002", "R000003"]
        assert other == "R000001"

    def test_tenants_have_independent_counters(self, db_session, org_a, org_b):
        a = sequence_service.next_reference(org_id=org_a.id, prefix="EXP")
        b = sequence_service.next_reference(org_id=org_b.id, prefix="EXP")
        db_session.commit()

        assert a == b == "EXP000001"

    def test_rolled_back_number_is_handed_back(self, db_session, org_a):
        sequence_service.next_reference(org_id=org_a.id, prefix="T")
        db_session.commit()
        sequence_service.next_reference(org_id=org_a.id, prefix="T")
        db_session.rollback()

        assert sequence_service.next_reference(org_id=org_a.id, prefix="T") == "T000002"

    def test_prefix_required(self, db_session, org_a):
        with pytest.raises(SequenceError):
            sequence_service.next_reference(org_id=org_a.id, prefix="")


class TestConcurrentAllocation:
    def test_concurrent_allocations_are_distinct(self, tmp_path):
        """Threads on a file-backed database each get a different number."""
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'sequences.sqlite3'}",
            'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        })
        with app.app_context():
            db.create_all()
            org = Organization(name="Concurrent Org", code="CONC")
            db.session.add(org)
            db.session.commit()
            org_id = org.id
            # Counter row exists before the race starts
            seed = sequence_service.next_reference(org_id=org_id, prefix="P", scope="race")
            db.session.commit()

        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            with app.app_context():
                for _ in range(10):
                    def _op():
                        ref = sequence_service.next_reference(org_id=org_id, prefix="P", scope="race")
                        db.session.commit()
                        return ref
                    try:
                        ref = run_with_retry(_op, attempts=15, backoff_base=0.01)
                    except Exception as exc:
                        with lock:
                            errors.append(exc)
                        return
                    with lock:
                        results.append(ref)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(results) == 40
        assert len(set(results)) == 40
        assert seed not in results

        with app.app_context():
            counter = db.session.query(ReferenceSequence).filter_by(org_id=org_id, prefix="P", scope="race").one()
            assert counter.next_number == 42
            db.drop_all()
