"""JWT helper utilities for encoding/decoding tokens and enforcing auth."""

from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, has_app_context, request

from auditlog.config import Config, get_config
from auditlog.routes.helpers import error_response

VIEW_PERMISSION = "auditlog.view"


def _config() -> Config:
    """Return the active application configuration."""

    if has_app_context():
        app_config = current_app.config.get("APP_CONFIG")
        if isinstance(app_config, Config):
            return app_config
    return get_config()


def encode_jwt(subject, permissions=(), ttl_minutes: int = 60) -> str:
    """Encode a JWT for ``subject`` carrying ``permissions``.

    Args:
        subject: The user id placed in the ``sub`` claim.
        permissions: Permission names granted to the bearer.
        ttl_minutes: Lifetime of the token.

    Returns:
        str: The encoded JWT.
    """
    config = _config()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(subject),
        "permissions": list(permissions),
        "iat": now,
        "exp": now + timedelta(minutes=ttl_minutes),
    }
    return jwt.encode(
        payload,
        config.jwt_secret,
        algorithm=config.jwt_algorithm,
    )


def decode_jwt(token: str):
    """Decode a JWT.

    Args:
        token (str): The JWT to decode.

    Returns:
        dict: The decoded JWT payload.
    """
    config = _config()
    return jwt.decode(
        token,
        config.jwt_secret,
        algorithms=[config.jwt_algorithm],
    )


def current_actor_id():
    """Return the ``sub`` claim of the authenticated request, if any."""

    payload = getattr(request, "user", None) or {}
    return payload.get("sub")


def require_permission(permission: str):
    """Decorator requiring a bearer JWT that grants ``permission``.

    The check is skipped entirely when authentication is disabled in the
    application configuration.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not _config().require_auth:
                request.user = None
                return fn(*args, **kwargs)
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                return error_response(401, "missing token")
            token = auth.split(" ", 1)[1]
            try:
                payload = decode_jwt(token)
            except jwt.PyJWTError as exc:
                return error_response(401, str(exc))
            if permission not in (payload.get("permissions") or []):
                return error_response(
                    403, "forbidden", {"permission": permission}
                )
            request.user = payload
            return fn(*args, **kwargs)

        return wrapper

    return decorator
