"""Caller identity resolution.

Authentication itself happens upstream (the gateway or session layer); this
service only trusts the identity header that layer forwards.
"""
from fastapi import Request

from workout_insight.config import get_settings
from workout_insight.exceptions import UnauthorizedError


def get_current_user_id(request: Request) -> str:
    """FastAPI dependency returning the authenticated user id or raising UnauthorizedError."""

    header = get_settings().identity_header
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        raise UnauthorizedError("Authentication required")
    return user_id
