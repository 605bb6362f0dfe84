# Overview: Short-window deduplication of fiscal submissions.

"""
Idempotency Keys

WHY: A double-clicked "complete sale" or a client retry after a timeout
must not create a second fiscal job (a second printed receipt is a tax
event). Requests are identified by a hash of their logical content and
remembered for a short window.
"""

from __future__ import annotations

import hashlib
import json
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import IdempotencyKey
from ..time_utils import utcnow


def request_key(
    *,
    org_id: int,
    user_id: int | None = None,
    location_id: int | None = None,
    items: list[tuple] | None = None,
    extra: dict | None = None,
) -> str:
    """
    SHA-256 of the canonical request: tenant, user, warehouse/supplier and
    the sorted (product, quantity) list. Item order does not matter.
    """
    canonical = {
        "org": org_id,
        "user": user_id,
        "location": location_id,
        "items": sorted([list(item) for item in (items or [])], key=lambda item: [str(v) for v in item]),
        "extra": extra or {},
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def find_live(org_id: int, key: str) -> IdempotencyKey | None:
    return (
        db.session.query(IdempotencyKey)
        .filter(
            IdempotencyKey.org_id == org_id,
            IdempotencyKey.key == key,
            IdempotencyKey.expires_at > utcnow(),
        )
        .first()
    )


def claim(org_id: int, key: str, window_seconds: int | None = None) -> tuple[IdempotencyKey, bool]:
    """
    Claim a key in the current transaction (no commit).

    Returns (record, created). created is False when a live record already
    exists; the caller should then return the original result
    (record.fiscal_job) instead of doing the work again. An expired record
    is recycled.
    """
    if window_seconds is None:
        window_seconds = int(current_app.config.get("IDEMPOTENCY_WINDOW_SECONDS", 60))

    now = utcnow()
    existing = db.session.query(IdempotencyKey).filter_by(org_id=org_id, key=key).first()
    if existing and existing.expires_at > now:
        return existing, False

    if existing:
        existing.created_at = now
        existing.expires_at = now + timedelta(seconds=window_seconds)
        existing.fiscal_job_id = None
        db.session.flush()
        return existing, True

    record = IdempotencyKey(
        org_id=org_id,
        key=key,
        created_at=now,
        expires_at=now + timedelta(seconds=window_seconds),
    )
    try:
        with db.session.begin_nested():
            db.session.add(record)
    except IntegrityError:
        # Concurrent claimer won
        return db.session.query(IdempotencyKey).filter_by(org_id=org_id, key=key).one(), False
    return record, True


def purge_expired() -> int:
    deleted = (
        db.session.query(IdempotencyKey)
        .filter(IdempotencyKey.expires_at <= utcnow())
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
