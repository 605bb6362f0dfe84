# Overview: Tenant-scoped reference number allocation (sales, returns, credits, receipts, expenses).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ReferenceSequence
from ..time_utils import utcnow


class SequenceError(Exception):
    """Raised when reference sequence operations fail."""
    pass


def _allocate(org_id: int, prefix: str, scope: str) -> int:
    """
    Reserve the next number for (org, prefix, scope) in the current transaction.

    The UPDATE takes the counter row lock and holds it until the caller's
    transaction ends, so the record insert and the lock release are atomic.
    A rolled-back caller hands its number back; no two callers ever share one.
    """
    stmt = (
        update(ReferenceSequence)
        .where(
            ReferenceSequence.org_id == org_id,
            ReferenceSequence.prefix == prefix,
            ReferenceSequence.scope == scope,
        )
        .values(next_number=ReferenceSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    def _read_allocated() -> int:
        current = (
            db.session.query(ReferenceSequence.next_number)
            .filter_by(org_id=org_id, prefix=prefix, scope=scope)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        return _read_allocated()

    # First use of this scope: create the counter row
    try:
        with db.session.begin_nested():
            db.session.add(ReferenceSequence(org_id=org_id, prefix=prefix, scope=scope, next_number=2))
        return 1
    except IntegrityError:
        # Lost the race to create the row; the winner's row now exists
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _read_allocated()


def next_reference(
    *,
    org_id: int,
    prefix: str,
    scope: str = "",
    pad: int = 6,
    separator: str = "",
    date_token: str | None = None,
) -> str:
    """
    Allocate the next reference number.

    Format: PREFIX + [separator + date_token] + separator + zero-padded sequence,
    e.g. "SC-2025-000123" (prefix "SC", separator "-", date_token "2025") or
    "S202501140007" (prefix "S", date_token "20250114", no separator).

    Does not commit: the number belongs to the caller's transaction, and the
    caller's run_with_retry wrapper handles lock contention.
    """
    if not org_id:
        raise SequenceError("org_id is required")
    if not prefix:
        raise SequenceError("prefix is required")

    number = _allocate(org_id, prefix, scope)

    parts = [prefix]
    if date_token:
        parts.append(date_token)
    parts.append(f"{number:0{pad}d}")
    return separator.join(parts)


def yearly_reference(org_id: int, prefix: str, *, pad: int = 6) -> str:
    """PREFIX-YYYY-000001, numbering restarts every year."""
    year = str(utcnow().year)
    return next_reference(org_id=org_id, prefix=prefix, scope=year, pad=pad, separator="-", date_token=year)


def daily_reference(org_id: int, prefix: str, *, pad: int = 4) -> str:
    """PREFIXYYYYMMDD0001, numbering restarts every day."""
    day = utcnow().strftime("%Y%m%d")
    return next_reference(org_id=org_id, prefix=prefix, scope=day, pad=pad, date_token=day)
