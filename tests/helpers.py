"""Token and header helpers shared by the test suites."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

DEFAULT_TEST_USERNAME = "test_user"


def _generate_rsa_key_pair() -> tuple[str, str]:
    """Generate an in-memory RSA private/public key pair as PEM strings."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


# Generated once per test process.
TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = _generate_rsa_key_pair()


def generate_throwaway_key_pair() -> tuple[str, str]:
    """Generate a fresh RSA key pair for negative-path tests."""
    return _generate_rsa_key_pair()


def token_claims(
    subject: str = DEFAULT_TEST_USERNAME,
    roles: Iterable[str] = ("USER",),
    expired: bool = False,
) -> dict[str, Any]:
    """Build a claim set with ``sub``, ``roles``, ``iat`` and a one-hour ``exp``."""
    now = datetime.now(timezone.utc)
    expiry_time = now - timedelta(hours=1) if expired else now + timedelta(hours=1)
    issued_at = now - timedelta(hours=2) if expired else now
    return {
        "sub": subject,
        "roles": list(roles),
        "iat": int(issued_at.timestamp()),
        "exp": int(expiry_time.timestamp()),
    }


def create_test_token(
    subject: str = DEFAULT_TEST_USERNAME,
    roles: Iterable[str] = ("USER",),
    private_key: str = TEST_PRIVATE_KEY,
    expired: bool = False,
) -> str:
    """Create a signed RS256 test token."""
    return jwt.encode(token_claims(subject, roles, expired), private_key, algorithm="RS256")


def auth_headers(token: str) -> dict[str, str]:
    """Build common JSON API headers with bearer token auth."""
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
