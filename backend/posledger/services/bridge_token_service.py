# Overview: Credentials and heartbeat tracking for fiscal printer bridges.

"""
Bridge Token Service

WHY: The bridge runs on a shop PC next to the fiscal printer and polls
this server for work. It authenticates with a long-lived bearer token
bound to one tenant; every job it sees or reports on is scoped to that
tenant.

SECURITY:
- Tokens are 32 random bytes from secrets.token_hex
- Only the SHA-256 hash is stored; the plaintext is returned once
- Revoked tokens are rejected immediately
"""

import secrets
import hashlib
from dataclasses import dataclass

from ..extensions import db
from ..models import BridgeToken, Organization
from ..time_utils import utcnow


class BridgeTokenError(Exception):
    """Raised for bridge token management errors."""
    pass


TOKEN_STATUS_ACTIVE = "active"
TOKEN_STATUS_REVOKED = "revoked"


@dataclass
class BridgeContext:
    """Authenticated bridge: its token record and tenant."""
    token: BridgeToken
    org_id: int


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_token(org_id: int, name: str) -> tuple[BridgeToken, str]:
    """
    Issue a token for a tenant's bridge.

    Returns (record, plaintext_token). Only the hash is persisted.
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org or not org.is_active:
        raise BridgeTokenError("Organization is not active")
    if not name:
        raise BridgeTokenError("Bridge name is required")

    plaintext = generate_token()
    record = BridgeToken(
        org_id=org_id,
        name=name,
        token_hash=hash_token(plaintext),
        status=TOKEN_STATUS_ACTIVE,
    )
    db.session.add(record)
    db.session.commit()
    return record, plaintext


def revoke_token(token_id: int, org_id: int | None = None) -> BridgeToken:
    query = db.session.query(BridgeToken).filter_by(id=token_id)
    if org_id is not None:
        query = query.filter_by(org_id=org_id)
    record = query.first()
    if not record:
        raise BridgeTokenError(f"Bridge token {token_id} not found")

    if record.status != TOKEN_STATUS_REVOKED:
        record.status = TOKEN_STATUS_REVOKED
        record.revoked_at = utcnow()
        db.session.commit()
    return record


def authenticate(plaintext_token: str | None) -> BridgeContext | None:
    """Return the bridge context for an active token, or None."""
    if not plaintext_token:
        return None

    record = (
        db.session.query(BridgeToken)
        .filter_by(token_hash=hash_token(plaintext_token), status=TOKEN_STATUS_ACTIVE)
        .first()
    )
    if not record:
        return None

    org = db.session.query(Organization).filter_by(id=record.org_id).first()
    if not org or not org.is_active:
        return None

    return BridgeContext(token=record, org_id=record.org_id)


def record_heartbeat(token: BridgeToken, version: str | None = None, info: dict | None = None) -> BridgeToken:
    """Mark the bridge as seen; version and info are kept when not sent."""
    token.last_seen_at = utcnow()
    if version:
        token.bridge_version = version
    if info is not None:
        token.info = info
    db.session.commit()
    return token


def list_tokens(org_id: int) -> list[BridgeToken]:
    return db.session.query(BridgeToken).filter_by(org_id=org_id).order_by(BridgeToken.id).all()
