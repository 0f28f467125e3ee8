from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from supabase import Client, create_client

from cakegenie.domain.errors import ConfigurationError

logger = logging.getLogger("cakegenie.supabase")

MIN_ANON_KEY_LENGTH = 100


@dataclass(slots=True)
class SupabaseHealth:
    is_valid: bool
    errors: list[str]
    has_client: bool
    url: str


def is_disabled() -> bool:
    """SUPABASE_DISABLED=1 switches storage and table access to local fakes."""
    return os.getenv("SUPABASE_DISABLED", "0") == "1"


def validate_supabase_config(url: str | None, key: str | None) -> list[str]:
    errors: list[str] = []
    if not url:
        errors.append("SUPABASE_URL is missing")
    elif not url.startswith("https://"):
        errors.append("SUPABASE_URL must be a valid HTTPS URL")
    if not key:
        errors.append("SUPABASE_ANON_KEY is missing")
    elif len(key) < MIN_ANON_KEY_LENGTH:
        errors.append("SUPABASE_ANON_KEY appears to be invalid (too short)")
    return errors


# Simple reusable singleton client getter for repositories/storage
_CLIENT_SINGLETON: Client | None = None


def get_supabase_client() -> Client | None:
    """Return the shared client, or None when Supabase is disabled.

    Raises:
        ConfigurationError: if the URL or key is missing or malformed.
    """
    global _CLIENT_SINGLETON
    if is_disabled():
        return None
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_ANON_KEY")
    errors = validate_supabase_config(url, key)
    if errors:
        raise ConfigurationError(
            f"Supabase is not configured properly. Issues: {', '.join(errors)}. "
            "Please check your environment variables.",
            errors,
        )
    if _CLIENT_SINGLETON is None:
        try:
            _CLIENT_SINGLETON = create_client(url, key)
        except Exception as exc:
            raise ConfigurationError(f"Failed to initialize Supabase client: {exc}", [str(exc)]) from exc
        logger.info("Supabase client initialized")
    return _CLIENT_SINGLETON


def get_supabase_health() -> SupabaseHealth:
    url = os.getenv("SUPABASE_URL")
    errors = validate_supabase_config(url, os.getenv("SUPABASE_ANON_KEY"))
    return SupabaseHealth(
        is_valid=not errors,
        errors=errors,
        has_client=_CLIENT_SINGLETON is not None,
        url=f"{url[:30]}..." if url else "Missing",
    )


def require_client(client: Client | None) -> Client:
    """Return ``client`` or raise the configuration problems that left it unset."""
    if client is not None:
        return client
    errors = get_supabase_health().errors or ["Supabase client is not available"]
    raise ConfigurationError(
        f"Supabase is not configured properly. Issues: {', '.join(errors)}. "
        "Please check your environment variables.",
        errors,
    )
