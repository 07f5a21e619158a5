"""
Configuration Classes for the Task Lifecycle Service.

Centralises all environment-dependent settings (database URI, storage
backend, status policy, JWT keys, paging limits) into a hierarchy of
configuration classes. The base ``Config`` class defines development
defaults, while subclasses override only what differs per environment.
"""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _env_flag(name: str, default: str) -> bool:
    """Read a boolean environment variable ("1", "true", "yes", "on")."""
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _load_key(raw_env_var: str, path_env_var: str) -> str:
    """Load a PEM key from direct env content or from a path env variable."""
    raw_key = os.environ.get(raw_env_var, "").strip()
    if raw_key:
        return raw_key

    key_path = os.environ.get(path_env_var, "").strip()
    if key_path:
        try:
            return Path(key_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise RuntimeError(
                f"Unable to read JWT key file at '{key_path}' from {path_env_var}."
            ) from exc

    raise RuntimeError(
        f"Missing JWT key configuration: set {raw_env_var} or {path_env_var}."
    )


def _has_key_source(raw_env_var: str, path_env_var: str) -> bool:
    """Return True when at least one key source variable is configured."""
    return bool(
        os.environ.get(raw_env_var, "").strip()
        or os.environ.get(path_env_var, "").strip()
    )


def load_public_key(*, testing: bool) -> str:
    """Resolve the JWT verification key for the selected environment."""
    if testing and _has_key_source("TEST_JWT_PUBLIC_KEY", "TEST_JWT_PUBLIC_KEY_PATH"):
        return _load_key("TEST_JWT_PUBLIC_KEY", "TEST_JWT_PUBLIC_KEY_PATH")
    return _load_key("JWT_PUBLIC_KEY", "JWT_PUBLIC_KEY_PATH")


class Config:
    """
    Base configuration with development-safe defaults.

    Attributes:
        SECRET_KEY: Flask signing key.
        SQLALCHEMY_DATABASE_URI: Database connection string (default: local
            SQLite file).
        TASK_STORE: Storage backend, ``"sql"`` or ``"memory"``.
        TASK_STATUS_POLICY: ``"open"`` lets updates set any status,
            ``"strict"`` only allows state-machine transitions.
        DEFAULT_PAGE_SIZE: Page size used when the client sends none.
        MAX_PAGE_SIZE: Upper bound for the ``size`` query parameter.
        HEALTH_OVERDUE_THRESHOLD: Overdue count above which the health
            endpoint reports ``DEGRADED``.
        AUTH_ENABLED: When false, role guards let every request through.
        JWT_CLOCK_SKEW_SECONDS: Allowed clock drift when validating
            ``exp`` / ``iat`` claims.
        SEED_SAMPLE_DATA: Insert demo tasks on startup when the store is empty.
    """

    SECRET_KEY: str = os.environ.get(
        "SECRET_KEY", "task-service-dev-secret-change-in-production"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'instance' / 'tasks.db'}",
    )

    TASK_STORE: str = os.environ.get("TASK_STORE", "sql")
    TASK_STATUS_POLICY: str = os.environ.get("TASK_STATUS_POLICY", "open")

    DEFAULT_PAGE_SIZE: int = int(os.environ.get("DEFAULT_PAGE_SIZE", "20"))
    MAX_PAGE_SIZE: int = int(os.environ.get("MAX_PAGE_SIZE", "100"))
    HEALTH_OVERDUE_THRESHOLD: int = int(os.environ.get("HEALTH_OVERDUE_THRESHOLD", "10"))

    AUTH_ENABLED: bool = _env_flag("AUTH_ENABLED", "true")
    # Tolerate minor clock differences between issuer and service.
    JWT_CLOCK_SKEW_SECONDS: int = int(os.environ.get("JWT_CLOCK_SKEW_SECONDS", "30"))

    SEED_SAMPLE_DATA: bool = _env_flag("SEED_SAMPLE_DATA", "false")


class DevelopmentConfig(Config):
    """
    Development environment configuration.

    Enables debug mode and seeds a handful of demo tasks into an empty store.
    """

    DEBUG: bool = True
    TESTING: bool = False
    SEED_SAMPLE_DATA: bool = _env_flag("SEED_SAMPLE_DATA", "true")


class TestingConfig(Config):
    """
    Testing environment configuration.

    Uses an in-memory SQLite database so that tests never touch development
    data, and never seeds sample tasks.
    """

    DEBUG: bool = True
    TESTING: bool = True
    SQLALCHEMY_DATABASE_URI: str = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    SQLALCHEMY_ENGINE_OPTIONS: dict = {"pool_pre_ping": True}
    SEED_SAMPLE_DATA: bool = False


class ProductionConfig(Config):
    """
    Production environment configuration.

    All secrets and URIs should be supplied through environment variables.
    """

    DEBUG: bool = False
    TESTING: bool = False


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Look up and return the configuration class for the given environment.

    Args:
        env: Environment name (``"development"``, ``"testing"``,
            ``"production"``).  When ``None``, falls back to the
            ``FLASK_ENV`` environment variable, defaulting to
            ``"development"``.

    Returns:
        The configuration class (not an instance) for that environment.
    """
    if env is None:
        env = os.environ.get("FLASK_ENV", "development")
    return config.get(env, config["default"])
