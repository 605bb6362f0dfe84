# Overview: Request decorators that establish tenant context for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Organization
from .services import bridge_token_service


def require_bridge(f):
    """
    Require a fiscal printer bridge token.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.bridge: The BridgeToken record
    - g.org_id: The tenant the token belongs to

    Returns 401 for a missing, unknown or revoked token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "error": "Invalid or revoked token"}), 401

        token = auth_header.split(" ", 1)[1]
        context = bridge_token_service.authenticate(token)
        if not context:
            return jsonify({"success": False, "error": "Invalid or revoked token"}), 401

        g.bridge = context.token
        g.org_id = context.org_id

        return f(*args, **kwargs)

    return decorated_function


def require_org(f):
    """
    Establish tenant context for back-office routes.

    The upstream gateway authenticates the user and forwards the tenant in
    the X-Org-Id header. Sets g.org_id; 400 when missing or malformed,
    404 for an unknown or inactive organization.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-Org-Id")
        if not raw:
            return jsonify({"error": "X-Org-Id header required"}), 400
        try:
            org_id = int(raw)
        except (TypeError, ValueError):
            return jsonify({"error": "X-Org-Id must be an integer"}), 400

        org = db.session.query(Organization).filter_by(id=org_id).first()
        if not org or not org.is_active:
            return jsonify({"error": "Organization not found"}), 404

        g.org_id = org.id

        return f(*args, **kwargs)

    return decorated_function
