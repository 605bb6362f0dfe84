# Overview: Gift card lifecycle and its append-only balance ledger.

"""
Gift Card Service

WHY: A gift card is stored value. Its balance must be explainable from its
transactions alone, across issue, redemption, refunds, expiry and resale.

LIFECYCLE:
free -> configured (assigned to a tenant with a denomination)
configured -> active (sold; balance loaded, expiry set)
active -> depleted (balance reached zero) | expired | inactive (cancelled)
active / depleted / expired -> configured (reset for resale)

Every balance change goes through _record_transaction, which writes
balance_before / balance_after next to the new balance.
"""

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import GiftCard, GiftCardTransaction
from ..models.gift_cards import (
    CARD_STATUS_FREE,
    CARD_STATUS_CONFIGURED,
    CARD_STATUS_ACTIVE,
    CARD_STATUS_DEPLETED,
    CARD_STATUS_EXPIRED,
    CARD_STATUS_INACTIVE,
    TXN_ISSUE,
    TXN_ACTIVATE,
    TXN_REDEEM,
    TXN_REFUND,
    TXN_ADJUST,
    TXN_EXPIRE,
    TXN_CANCEL,
    TXN_RESET,
)
from ..time_utils import utcnow, today
from .concurrency import lock_for_update, run_with_retry


class GiftCardError(Exception):
    """Raised for invalid gift card operations."""
    pass


VALIDITY_DAYS = 365

RESETTABLE_STATUSES = (CARD_STATUS_ACTIVE, CARD_STATUS_DEPLETED, CARD_STATUS_EXPIRED)


def _get_locked(card_id: int, org_id: int | None = None) -> GiftCard:
    query = db.session.query(GiftCard).filter(GiftCard.id == card_id)
    if org_id is not None:
        query = query.filter(GiftCard.org_id == org_id)
    card = lock_for_update(query).first()
    if not card:
        raise GiftCardError(f"Gift card {card_id} not found")
    return card


def _record_transaction(
    card: GiftCard,
    transaction_type: str,
    new_balance_cents: int,
    *,
    sale_id: int | None = None,
    user_id: int | None = None,
    notes: str | None = None,
) -> GiftCardTransaction:
    """Move the balance and write the matching ledger row (no commit)."""
    if new_balance_cents < 0:
        raise GiftCardError("Gift card balance cannot go negative")

    before = card.current_balance_cents or 0
    txn = GiftCardTransaction(
        gift_card_id=card.id,
        sale_id=sale_id,
        transaction_type=transaction_type,
        amount_cents=new_balance_cents - before,
        balance_before_cents=before,
        balance_after_cents=new_balance_cents,
        user_id=user_id,
        notes=notes,
    )
    card.current_balance_cents = new_balance_cents
    db.session.add(txn)
    return txn


def _require_status(card: GiftCard, allowed: tuple, action: str) -> None:
    if card.status not in allowed:
        raise GiftCardError(f"Cannot {action} gift card {card.card_number} with status {card.status}")


def _is_past_expiry(card: GiftCard) -> bool:
    return bool(card.expiry_date and card.expiry_date < today())


def replay_balance(card: GiftCard) -> int:
    """Balance implied by the ledger; equals current_balance_cents when consistent."""
    txns = db.session.query(GiftCardTransaction).filter_by(gift_card_id=card.id).order_by(GiftCardTransaction.id).all()
    return sum(t.amount_cents for t in txns)


# =============================================================================
# ISSUE / CONFIGURE
# =============================================================================

def create_card(card_number: str) -> GiftCard:
    """Add a blank card to the free pool."""
    def _op():
        if not card_number:
            raise GiftCardError("card_number is required")
        if db.session.query(GiftCard.id).filter_by(card_number=card_number).first():
            raise GiftCardError(f"Gift card {card_number} already exists")
        card = GiftCard(card_number=card_number, status=CARD_STATUS_FREE, current_balance_cents=0)
        db.session.add(card)
        db.session.commit()
        return card

    return run_with_retry(_op)


def configure(org_id: int, card_id: int, denomination_cents: int) -> GiftCard:
    """Assign a free card to a tenant with a face value."""
    def _op():
        if denomination_cents is None or denomination_cents <= 0:
            raise GiftCardError("Denomination must be positive")
        card = _get_locked(card_id)
        if card.org_id not in (None, org_id):
            raise GiftCardError(f"Gift card {card_id} not found")
        _require_status(card, (CARD_STATUS_FREE, CARD_STATUS_CONFIGURED), "configure")

        card.org_id = org_id
        card.denomination_cents = denomination_cents
        card.status = CARD_STATUS_CONFIGURED
        db.session.commit()
        return card

    return run_with_retry(_op)


def activate(
    card_id: int,
    *,
    org_id: int,
    customer_id: int | None = None,
    sale_id: int | None = None,
    user_id: int | None = None,
) -> GiftCard:
    """
    Sell a configured card: load its denomination and start the validity period.

    Writes an issue transaction (balance 0 -> denomination) and an activate
    marker transaction.
    """
    def _op():
        card = _get_locked(card_id, org_id)
        _require_status(card, (CARD_STATUS_CONFIGURED,), "activate")
        if not card.denomination_cents:
            raise GiftCardError(f"Gift card {card.card_number} has no denomination")

        now = utcnow()
        _record_transaction(card, TXN_ISSUE, card.denomination_cents, sale_id=sale_id, user_id=user_id, notes="Card issued")
        _record_transaction(card, TXN_ACTIVATE, card.current_balance_cents, sale_id=sale_id, user_id=user_id, notes="Card activated")

        card.initial_balance_cents = card.denomination_cents
        card.status = CARD_STATUS_ACTIVE
        card.customer_id = customer_id
        card.sale_id = sale_id
        card.activated_at = now
        card.expiry_date = (now + timedelta(days=VALIDITY_DAYS)).date()
        db.session.commit()
        return card

    return run_with_retry(_op)


# =============================================================================
# BALANCE MOVEMENTS
# =============================================================================

def redeem(card_id: int, amount_cents: int, *, org_id: int, sale_id: int | None = None, user_id: int | None = None) -> GiftCardTransaction:
    """Spend from the card; a zero balance depletes it."""
    def _op():
        if amount_cents is None or amount_cents <= 0:
            raise GiftCardError("Redemption amount must be positive")
        card = _get_locked(card_id, org_id)
        _require_status(card, (CARD_STATUS_ACTIVE,), "redeem")
        if _is_past_expiry(card):
            raise GiftCardError(f"Gift card {card.card_number} has expired")
        if amount_cents > card.current_balance_cents:
            raise GiftCardError(
                f"Insufficient gift card balance: {card.current_balance_cents} available, {amount_cents} requested"
            )

        txn = _record_transaction(card, TXN_REDEEM, card.current_balance_cents - amount_cents, sale_id=sale_id, user_id=user_id)
        if card.current_balance_cents == 0:
            card.status = CARD_STATUS_DEPLETED
        db.session.commit()
        return txn

    return run_with_retry(_op)


def refund(card_id: int, amount_cents: int, *, org_id: int, sale_id: int | None = None, user_id: int | None = None) -> GiftCardTransaction:
    """Put money back on a card (a returned purchase); a depleted card becomes active again."""
    def _op():
        if amount_cents is None or amount_cents <= 0:
            raise GiftCardError("Refund amount must be positive")
        card = _get_locked(card_id, org_id)
        _require_status(card, (CARD_STATUS_ACTIVE, CARD_STATUS_DEPLETED), "refund to")
        new_balance = card.current_balance_cents + amount_cents
        if new_balance > card.initial_balance_cents:
            raise GiftCardError("Refund would exceed the card's initial balance")

        txn = _record_transaction(card, TXN_REFUND, new_balance, sale_id=sale_id, user_id=user_id)
        card.status = CARD_STATUS_ACTIVE
        db.session.commit()
        return txn

    return run_with_retry(_op)


def adjust(card_id: int, delta_cents: int, reason: str, *, org_id: int, user_id: int | None = None) -> GiftCardTransaction:
    """Manual correction by an operator."""
    def _op():
        if not delta_cents:
            raise GiftCardError("Adjustment must be non-zero")
        if not reason:
            raise GiftCardError("Adjustment reason is required")
        card = _get_locked(card_id, org_id)
        _require_status(card, (CARD_STATUS_ACTIVE, CARD_STATUS_DEPLETED), "adjust")

        txn = _record_transaction(card, TXN_ADJUST, card.current_balance_cents + delta_cents, user_id=user_id, notes=reason)
        card.status = CARD_STATUS_DEPLETED if card.current_balance_cents == 0 else CARD_STATUS_ACTIVE
        db.session.commit()
        return txn

    return run_with_retry(_op)


def cancel(card_id: int, *, org_id: int, user_id: int | None = None, reason: str | None = None) -> GiftCard:
    """Deactivate a card; any remaining balance is written off."""
    def _op():
        card = _get_locked(card_id, org_id)
        _require_status(card, (CARD_STATUS_ACTIVE, CARD_STATUS_DEPLETED), "cancel")
        _record_transaction(card, TXN_CANCEL, 0, user_id=user_id, notes=reason or "Card cancelled")
        card.status = CARD_STATUS_INACTIVE
        db.session.commit()
        return card

    return run_with_retry(_op)


def expire_due_cards(org_id: int | None = None) -> int:
    """Expire active cards past their expiry date. Returns the number expired."""
    def _op():
        query = db.session.query(GiftCard).filter(
            GiftCard.status == CARD_STATUS_ACTIVE,
            GiftCard.expiry_date.isnot(None),
            GiftCard.expiry_date < today(),
        )
        if org_id is not None:
            query = query.filter(GiftCard.org_id == org_id)

        expired = 0
        for card in lock_for_update(query).all():
            _record_transaction(card, TXN_EXPIRE, 0, notes="Card expired")
            card.status = CARD_STATUS_EXPIRED
            expired += 1
        db.session.commit()
        return expired

    return run_with_retry(_op)


# =============================================================================
# RESALE
# =============================================================================

def reset_for_resale(card_id: int, *, org_id: int, user_id: int | None = None) -> GiftCard:
    """
    Return a used card to the configured pool so it can be sold again.

    The reset transaction is recorded before the card's sale, customer and
    fiscal linkage are cleared, so the ledger keeps the card's history.
    """
    def _op():
        card = _get_locked(card_id, org_id)
        _require_status(card, RESETTABLE_STATUSES, "reset")

        _record_transaction(card, TXN_RESET, 0, user_id=user_id, notes="Reset for resale")
        card.status = CARD_STATUS_CONFIGURED
        card.initial_balance_cents = 0
        card.customer_id = None
        card.sale_id = None
        card.activated_at = None
        card.expiry_date = None
        card.fiscal_number = None
        card.fiscal_document_id = None
        db.session.commit()
        return card

    return run_with_retry(_op)


def get_card(org_id: int, card_id: int) -> GiftCard:
    card = db.session.query(GiftCard).filter_by(id=card_id, org_id=org_id).first()
    if not card:
        raise GiftCardError(f"Gift card {card_id} not found")
    return card
