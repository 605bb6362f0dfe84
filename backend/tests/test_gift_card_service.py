# Overview: Pytest coverage for the gift card lifecycle and its balance ledger.

from datetime import timedelta

import pytest

from posledger.extensions import db
from posledger.models import GiftCard, GiftCardTransaction
from posledger.services import gift_card_service
from posledger.services.gift_card_service import GiftCardError
from posledger.time_utils import today


@pytest.fixture
def active_card(db_session, org_a, customer_a, sale_a):
    card = gift_card_service.create_card("GC-0001")
    gift_card_service.configure(org_a.id, card.id, 5000)
    return gift_card_service.activate(card.id, org_id=org_a.id, customer_id=customer_a.id, sale_id=sale_a.id)


def _transaction_types(card_id):
    rows = (
        db.session.query(GiftCardTransaction)
        .filter_by(gift_card_id=card_id)
        .order_by(GiftCardTransaction.id)
        .all()
    )
    return [row.transaction_type for row in rows]


class TestLifecycle:
    def test_activation_loads_denomination(self, db_session, active_card):
        card = db_session.get(GiftCard, active_card.id)

        assert card.status == "active"
        assert card.current_balance_cents == 5000
        assert card.initial_balance_cents == 5000
        assert card.expiry_date == today() + timedelta(days=365)
        assert _transaction_types(card.id) == ["issue", "activate"]

    def test_duplicate_card_number_rejected(self, db_session, active_card):
        with pytest.raises(GiftCardError):
            gift_card_service.create_card("GC-0001")

    def test_card_cannot_be_activated_twice(self, db_session, org_a, active_card):
        with pytest.raises(GiftCardError):
            gift_card_service.activate(active_card.id, org_id=org_a.id)

    def test_configure_requires_positive_denomination(self, db_session, org_a):
        card = gift_card_service.create_card("GC-0002")
        with pytest.raises(GiftCardError):
            gift_card_service.configure(org_a.id, card.id, 0)

    def test_other_tenant_cannot_configure_assigned_card(self, db_session, org_a, org_b):
        card = gift_card_service.create_card("GC-0003")
        gift_card_service.configure(org_a.id, card.id, 1000)

        with pytest.raises(GiftCardError):
            gift_card_service.configure(org_b.id, card.id, 1000)


class TestBalance:
    def test_redeem_to_zero_depletes(self, db_session, org_a, active_card):
        gift_card_service.redeem(active_card.id, 2000, org_id=org_a.id)
        gift_card_service.redeem(active_card.id, 3000, org_id=org_a.id)

        card = db_session.get(GiftCard, active_card.id)
        assert card.current_balance_cents == 0
        assert card.status == "depleted"

    def test_redeem_more_than_balance_rejected(self, db_session, org_a, active_card):
        with pytest.raises(GiftCardError):
            gift_card_service.redeem(active_card.id, 5001, org_id=org_a.id)

        assert db_session.get(GiftCard, active_card.id).current_balance_cents == 5000

    def test_refund_reactivates_depleted_card(self, db_session, org_a, active_card):
        gift_card_service.redeem(active_card.id, 5000, org_id=org_a.id)

        gift_card_service.refund(active_card.id, 1500, org_id=org_a.id)

        card = db_session.get(GiftCard, active_card.id)
        assert card.status == "active"
        assert card.current_balance_cents == 1500

    def test_refund_cannot_exceed_initial_balance(self, db_session, org_a, active_card):
        with pytest.raises(GiftCardError):
            gift_card_service.refund(active_card.id, 1, org_id=org_a.id)

    def test_adjustment_requires_reason(self, db_session, org_a, active_card):
        with pytest.raises(GiftCardError):
            gift_card_service.adjust(active_card.id, 100, "", org_id=org_a.id)

    def test_ledger_replays_to_balance(self, db_session, org_a, active_card):
        gift_card_service.redeem(active_card.id, 1200, org_id=org_a.id)
        gift_card_service.refund(active_card.id, 200, org_id=org_a.id)
        gift_card_service.adjust(active_card.id, -500, "Manager correction", org_id=org_a.id)

        card = db_session.get(GiftCard, active_card.id)
        assert card.current_balance_cents == 3500
        assert gift_card_service.replay_balance(card) == card.current_balance_cents

    def test_redeem_past_expiry_rejected(self, db_session, org_a, active_card):
        card = db_session.get(GiftCard, active_card.id)
        card.expiry_date = today() - timedelta(days=1)
        db_session.commit()

        with pytest.raises(GiftCardError):
            gift_card_service.redeem(active_card.id, 100, org_id=org_a.id)


class TestExpiryAndResale:
    def test_expire_due_cards(self, db_session, org_a, active_card):
        card = db_session.get(GiftCard, active_card.id)
        card.expiry_date = today() - timedelta(days=1)
        db_session.commit()

        assert gift_card_service.expire_due_cards(org_a.id) == 1

        card = db_session.get(GiftCard, active_card.id)
        assert card.status == "expired"
        assert card.current_balance_cents == 0
        assert gift_card_service.replay_balance(card) == 0

    def test_reset_for_resale_keeps_history(self, db_session, org_a, active_card):
        gift_card_service.redeem(active_card.id, 5000, org_id=org_a.id)

        gift_card_service.reset_for_resale(active_card.id, org_id=org_a.id)

        card = db_session.get(GiftCard, active_card.id)
        assert card.status == "configured"
        assert card.sale_id is None
        assert card.customer_id is None
        assert card.denomination_cents == 5000
        assert _transaction_types(card.id) == ["issue", "activate", "redeem", "reset"]

        gift_card_service.activate(card.id, org_id=org_a.id)
        assert db_session.get(GiftCard, card.id).current_balance_cents == 5000

    def test_cancel_writes_off_balance(self, db_session, org_a, active_card):
        gift_card_service.cancel(active_card.id, org_id=org_a.id, reason="Lost card")

        card = db_session.get(GiftCard, active_card.id)
        assert card.status == "inactive"
        assert card.current_balance_cents == 0
        assert gift_card_service.replay_balance(card) == 0
