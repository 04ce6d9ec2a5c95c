# File: salesdesk/api/common.py

import secrets
from functools import wraps

from flask import current_app, g, jsonify, request, session

from salesdesk.core.tokens import verify_csrf_token
from salesdesk.db.models import User
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.api.common", "salesdesk.log")

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")
REVIEWER_ROLES = ("admin", "super_admin")


def services():
    return current_app.extensions["salesdesk"]


def client_ip():
    return request.headers.get("X-Forwarded-For", request.remote_addr or "").split(",")[0].strip() or None


def request_metadata():
    return {"ip_address": client_ip(), "user_agent": request.headers.get("User-Agent", "")}


def session_id():
    """The CSRF binding for this browser session, created on first use."""
    if "sid" not in session:
        session["sid"] = secrets.token_hex(16)
    return session["sid"]


def login_required(roles=None):
    """
    Require a logged-in user (``session["user_id"]``) and, for unsafe
    methods, a valid ``X-CSRF-Token`` header. ``roles`` restricts the route
    to users holding one of the given roles.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            user_id = session.get("user_id")
            user = services().gateway.read(User, user_id) if user_id else None
            if user is None:
                return jsonify({"error": "Authentication required"}), 401

            if request.method in UNSAFE_METHODS:
                token = request.headers.get("X-CSRF-Token", "")
                if not verify_csrf_token(token, session.get("sid"), services().settings.csrf_secret):
                    logger.warning("CSRF check failed for user %s on %s", user.id, request.path)
                    return jsonify({"error": "Invalid CSRF token"}), 403

            if roles and user.role not in roles:
                return jsonify({"error": "Forbidden"}), 403

            g.user = user
            return view(*args, **kwargs)
        return wrapper
    return decorator


def json_body():
    return request.get_json(silent=True) or {}
