# Overview: Loyalty points ledger (earn, redeem, reverse, adjust, expire).

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import LoyaltyAccount, LoyaltyProgram, LoyaltyTransaction, Sale
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


class LoyaltyError(Exception):
    """Raised for loyalty operation errors."""
    pass


TXN_EARNED = "earned"
TXN_REDEEMED = "redeemed"
TXN_REVERSED = "reversed"
TXN_ADJUSTED = "adjusted"
TXN_EXPIRED = "expired"


def get_program(org_id: int) -> LoyaltyProgram | None:
    return db.session.query(LoyaltyProgram).filter_by(org_id=org_id).first()


def _active_program(org_id: int) -> LoyaltyProgram:
    program = get_program(org_id)
    if not program or not program.is_active:
        raise LoyaltyError("Loyalty program is not active")
    return program


def _get_account_locked(org_id: int, customer_id: int) -> LoyaltyAccount:
    account = lock_for_update(
        db.session.query(LoyaltyAccount).filter_by(org_id=org_id, customer_id=customer_id)
    ).first()
    if not account:
        raise LoyaltyError(f"Customer {customer_id} has no loyalty card")
    return account


def _record(
    account: LoyaltyAccount,
    transaction_type: str,
    points: int,
    *,
    sale_id: int | None = None,
    description: str | None = None,
    expires_at=None,
) -> LoyaltyTransaction:
    before = account.points_balance or 0
    after = before + points
    if after < 0:
        raise LoyaltyError("Points balance cannot go negative")

    txn = LoyaltyTransaction(
        account_id=account.id,
        transaction_type=transaction_type,
        points=points,
        balance_before=before,
        balance_after=after,
        sale_id=sale_id,
        description=description,
        expires_at=expires_at,
    )
    account.points_balance = after
    db.session.add(txn)
    return txn


def open_account(org_id: int, customer_id: int, card_number: str | None = None) -> LoyaltyAccount:
    def _op():
        existing = db.session.query(LoyaltyAccount).filter_by(customer_id=customer_id).first()
        if existing:
            raise LoyaltyError(f"Customer {customer_id} already has a loyalty card")
        account = LoyaltyAccount(org_id=org_id, customer_id=customer_id, card_number=card_number)
        db.session.add(account)
        db.session.commit()
        return account

    return run_with_retry(_op)


def earn_points(org_id: int, customer_id: int, sale_id: int, amount_cents: int, description: str | None = None) -> LoyaltyTransaction | None:
    """
    Award points for a purchase.

    Returns None when there is no active program or the amount earns nothing.
    """
    program = get_program(org_id)
    if not program or not program.is_active:
        return None
    points = program.calculate_points_earned(amount_cents)
    if points <= 0:
        return None

    def _op():
        account = _get_account_locked(org_id, customer_id)
        expires_at = None
        if program.points_expiry_days:
            expires_at = utcnow() + timedelta(days=program.points_expiry_days)

        txn = _record(
            account, TXN_EARNED, points,
            sale_id=sale_id,
            description=description or f"Earned from sale #{sale_id}",
            expires_at=expires_at,
        )
        account.lifetime_points = (account.lifetime_points or 0) + points
        db.session.commit()
        return txn

    return run_with_retry(_op)


def redeem_points(org_id: int, customer_id: int, points: int, sale_id: int | None = None, description: str | None = None) -> LoyaltyTransaction:
    """
    Spend points.

    Raises:
        LoyaltyError: no active program, insufficient balance, or below the
            program's minimum redemption
    """
    program = _active_program(org_id)
    if points is None or points <= 0:
        raise LoyaltyError("Points to redeem must be positive")
    if not program.can_redeem(points):
        raise LoyaltyError(f"Minimum {program.min_redemption_points} points required to redeem")

    def _op():
        account = _get_account_locked(org_id, customer_id)
        if points > account.points_balance:
            raise LoyaltyError("Insufficient points balance")
        txn = _record(
            account, TXN_REDEEMED, -points,
            sale_id=sale_id,
            description=description or (f"Redeemed for sale #{sale_id}" if sale_id else "Redeemed"),
        )
        db.session.commit()
        return txn

    return run_with_retry(_op)


def reverse_points(org_id: int, sale_id: int) -> list[LoyaltyTransaction]:
    """
    Undo the points a refunded sale earned or spent.

    A sale is reversed at most once; a second call returns [].
    Reversing earned points is capped at the current balance.
    """
    def _op():
        sale = db.session.query(Sale.id).filter_by(id=sale_id, org_id=org_id).first()
        if not sale:
            raise LoyaltyError(f"Sale {sale_id} not found")

        txns = (
            db.session.query(LoyaltyTransaction)
            .join(LoyaltyAccount, LoyaltyAccount.id == LoyaltyTransaction.account_id)
            .filter(LoyaltyAccount.org_id == org_id, LoyaltyTransaction.sale_id == sale_id)
            .order_by(LoyaltyTransaction.id)
            .all()
        )
        if any(t.transaction_type == TXN_REVERSED for t in txns):
            return []

        # Restore spent points before taking back earned ones
        originals = [t for t in txns if t.transaction_type == TXN_REDEEMED]
        originals += [t for t in txns if t.transaction_type == TXN_EARNED]

        reversals = []
        for original in originals:
            account = lock_for_update(db.session.query(LoyaltyAccount).filter_by(id=original.account_id)).one()
            points = -original.points
            if points < 0:
                points = -min(-points, account.points_balance)
            reversals.append(_record(
                account, TXN_REVERSED, points,
                sale_id=sale_id,
                description=f"Reversed from sale #{sale_id}",
            ))
            if original.transaction_type == TXN_EARNED:
                account.lifetime_points = max(0, (account.lifetime_points or 0) - abs(original.points))
            # Reversed earnings must not expire later
            original.expires_at = None

        db.session.commit()
        return reversals

    return run_with_retry(_op)


def adjust_points(org_id: int, customer_id: int, points: int, reason: str) -> LoyaltyTransaction:
    """Manual correction; positive adjustments count toward lifetime points."""
    if not points:
        raise LoyaltyError("Adjustment must be non-zero")
    if not reason:
        raise LoyaltyError("Adjustment reason is required")

    def _op():
        account = _get_account_locked(org_id, customer_id)
        txn = _record(account, TXN_ADJUSTED, points, description=f"Manual adjustment: {reason}")
        if points > 0:
            account.lifetime_points = (account.lifetime_points or 0) + points
        db.session.commit()
        return txn

    return run_with_retry(_op)


def expire_points(org_id: int | None = None) -> int:
    """
    Expire earned points past their expires_at.

    Points already spent cannot expire, so at most the current balance is
    taken. Each earned row's expires_at is cleared once processed so it is
    never expired twice. Returns the number of expiry transactions written.
    """
    def _op():
        query = (
            db.session.query(LoyaltyTransaction)
            .join(LoyaltyAccount, LoyaltyAccount.id == LoyaltyTransaction.account_id)
            .filter(
                LoyaltyTransaction.transaction_type == TXN_EARNED,
                LoyaltyTransaction.expires_at.isnot(None),
                LoyaltyTransaction.expires_at <= utcnow(),
            )
        )
        if org_id is not None:
            query = query.filter(LoyaltyAccount.org_id == org_id)

        expired = 0
        for earned in query.order_by(LoyaltyTransaction.id).all():
            account = lock_for_update(db.session.query(LoyaltyAccount).filter_by(id=earned.account_id)).one()
            points = min(abs(earned.points), account.points_balance)
            if points > 0:
                _record(
                    account, TXN_EXPIRED, -points,
                    description=f"Points expired from transaction #{earned.id}",
                )
                expired += 1
            earned.expires_at = None
        db.session.commit()
        return expired

    return run_with_retry(_op)


def history(org_id: int, customer_id: int, limit: int = 50) -> list[LoyaltyTransaction]:
    return (
        db.session.query(LoyaltyTransaction)
        .join(LoyaltyAccount, LoyaltyAccount.id == LoyaltyTransaction.account_id)
        .filter(LoyaltyAccount.org_id == org_id, LoyaltyAccount.customer_id == customer_id)
        .order_by(LoyaltyTransaction.id.desc())
        .limit(limit)
        .all()
    )
