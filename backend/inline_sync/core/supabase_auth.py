"""Supabase-backed caller identity."""

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

import httpx
from supabase import Client, ClientOptions, create_client

from inline_sync.exceptions import AuthenticationError, AuthUnavailableError
from inline_sync.services.sync.types import Caller

logger = logging.getLogger(__name__)

AUTH_TIMEOUT_SECONDS = float(
    os.environ.get("SUPABASE_AUTH_TIMEOUT", os.environ.get("HTTPX_TIMEOUT", "30"))
)
AUTH_POOL_TIMEOUT_SECONDS = float(os.environ.get("SUPABASE_AUTH_POOL_TIMEOUT", "10"))


def _build_httpx_client() -> httpx.Client:
    timeout = httpx.Timeout(
        timeout=AUTH_TIMEOUT_SECONDS,
        pool=AUTH_POOL_TIMEOUT_SECONDS,
    )
    return httpx.Client(timeout=timeout)


@contextmanager
def supabase_auth_client(url: str, anon_key: str) -> Iterator[Client]:
    """Create a short-lived Supabase client for auth operations."""
    http_client = _build_httpx_client()
    options = ClientOptions(
        auto_refresh_token=False,
        persist_session=False,
        httpx_client=http_client,
    )
    client = create_client(url, anon_key, options=options)

    try:
        yield client
    finally:
        http_client.close()


def is_network_error(error: Exception) -> bool:
    """Check whether an auth exception is likely network related."""
    if isinstance(error, httpx.TimeoutException):
        return True
    if isinstance(error, httpx.NetworkError):
        return True

    error_str = str(error).lower()
    patterns = ["ssl", "handshake", "timed out", "timeout", "connection", "pool"]
    return any(pattern in error_str for pattern in patterns)


def caller_from_user(user: Any) -> Caller:
    """
    Map a Supabase user to a Caller.

    Capabilities come from app_metadata["capabilities"] (a list) plus
    app_metadata["role"] when set. app_metadata is only writable with the
    service role, so users can't grant themselves capabilities.
    """
    metadata = getattr(user, "app_metadata", None) or {}
    capabilities = set(metadata.get("capabilities") or [])
    role = metadata.get("role")
    if role:
        capabilities.add(role)
    return Caller(id=str(user.id), capabilities=frozenset(capabilities))


def resolve_supabase_caller(url: str, anon_key: str, access_token: str) -> Caller:
    """
    Verify an access token with Supabase and return the caller.

    Raises:
        AuthenticationError: token rejected
        AuthUnavailableError: Supabase unreachable
    """
    try:
        with supabase_auth_client(url, anon_key) as client:
            user_response = client.auth.get_user(access_token)
    except Exception as e:
        if is_network_error(e):
            logger.warning(f"Supabase auth unreachable: {e}", extra={"error": type(e).__name__})
            raise AuthUnavailableError("Supabase auth") from e
        raise AuthenticationError(str(e) or "Invalid token") from e

    user = user_response.user if user_response else None
    if not user:
        raise AuthenticationError("Invalid token")
    return caller_from_user(user)
