from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlparse

from shared.config import config


MODEL_MODULES = ["shared.database.automation_models"]


def _parse_postgres_credentials(url: str) -> Dict[str, Any]:
    """Convert a postgres-style DSN into asyncpg credential kwargs."""
    parsed = urlparse(url)
    if parsed.scheme not in {"postgres", "postgresql"}:
        raise ValueError("DATABASE_URL must use postgres:// or postgresql:// scheme")

    database = (parsed.path or "").lstrip("/") or "postgres"
    return {
        "host": parsed.hostname or "localhost",
        "port": parsed.port or 5432,
        "user": parsed.username,
        "password": parsed.password,
        "database": database,
    }


def build_tortoise_config(database_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the Tortoise ORM config dict for the given URL (defaults to
    config.DATABASE_URL). Postgres URLs are expanded into asyncpg credentials;
    anything else (e.g. ``sqlite://:memory:``) is handed to Tortoise as-is.
    """
    url = database_url or config.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is not configured")

    if urlparse(url).scheme in {"postgres", "postgresql"}:
        try:
            connection: Any = {
                "engine": "tortoise.backends.asyncpg",
                "credentials": _parse_postgres_credentials(url),
            }
        except ValueError as exc:
            raise RuntimeError(f"Invalid DATABASE_URL: {exc}") from exc
    else:
        connection = url

    return {
        "connections": {"default": connection},
        "apps": {
            "models": {
                "models": list(MODEL_MODULES),
                "default_connection": "default",
            },
        },
        "use_tz": True,
        "timezone": "UTC",
    }


__all__ = ["MODEL_MODULES", "build_tortoise_config"]
