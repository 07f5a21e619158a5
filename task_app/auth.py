"""
JWT Verification and Role Guards for the Task Service.

The service never issues tokens; it verifies RS256 bearer tokens against
``JWT_PUBLIC_KEY`` and checks the ``roles`` claim.  Guards are plain
decorators wrapped around view functions:

  * ``require_auth`` -- any valid token (401 otherwise).
  * ``require_role("ADMIN")`` -- a valid token holding one of the roles
    (403 otherwise).

With ``AUTH_ENABLED`` off both guards let every request through as
``anonymous`` holding all roles.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

import jwt
from flask import current_app, g, request

from .errors import AccessDeniedError, AuthenticationError

DEFAULT_ALLOWED_ALGORITHMS = ["RS256"]
REQUIRED_TOKEN_CLAIMS = ["sub", "iat", "exp"]

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
ALL_ROLES = frozenset({ROLE_USER, ROLE_ADMIN})


def verify_token(
    token: str,
    public_key: str,
    algorithms: list[str] | None = None,
    leeway: int = 30,
) -> dict[str, Any] | None:
    """
    Decode and validate a JWT, returning the payload on success.

    Checks signature, ``exp``/``iat``, the presence of every required
    claim, a non-empty ``sub`` and a ``roles`` claim that is a list of
    strings (missing ``roles`` is treated as no roles).

    Args:
        token: The encoded JWT string.
        public_key: RSA public key in PEM format.
        algorithms: Acceptable algorithms; defaults to ``["RS256"]`` so
            ``none``/HMAC tokens are rejected.
        leeway: Allowed clock skew in seconds.

    Returns:
        The decoded payload, or ``None`` if verification fails.
    """
    try:
        decoded = jwt.decode(
            token,
            public_key,
            algorithms=algorithms or DEFAULT_ALLOWED_ALGORITHMS,
            options={"require": REQUIRED_TOKEN_CLAIMS},
            leeway=leeway,
        )
    except jwt.InvalidTokenError:
        return None

    subject = decoded.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        return None

    roles = decoded.get("roles", [])
    if not isinstance(roles, list) or not all(isinstance(role, str) for role in roles):
        return None
    return decoded


def _authenticate() -> None:
    """Populate ``g.username`` and ``g.roles`` or raise ``AuthenticationError``."""
    if not current_app.config.get("AUTH_ENABLED", True):
        g.username = "anonymous"
        g.roles = set(ALL_ROLES)
        return

    auth_header = request.headers.get("Authorization", "")
    token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else ""
    if not token:
        raise AuthenticationError("Missing or invalid Authorization header")

    payload = verify_token(
        token,
        current_app.config["JWT_PUBLIC_KEY"],
        algorithms=DEFAULT_ALLOWED_ALGORITHMS,
        leeway=int(current_app.config.get("JWT_CLOCK_SKEW_SECONDS", 30)),
    )
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    g.username = payload["sub"]
    g.roles = {role.upper() for role in payload.get("roles", [])}


def require_auth(view_func: Callable):
    """Reject requests without a valid bearer token (401)."""

    @wraps(view_func)
    def wrapper(*args, **kwargs):
        _authenticate()
        return view_func(*args, **kwargs)

    return wrapper


def require_role(*roles: str):
    """
    Reject requests whose token holds none of ``roles``.

    Authentication runs first, so a missing token is still a 401; a valid
    token without the role is a 403.
    """
    wanted = {role.upper() for role in roles}

    def decorator(view_func: Callable):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            _authenticate()
            if not wanted & g.roles:
                raise AccessDeniedError(
                    f"Requires one of roles {sorted(wanted)}"
                )
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
