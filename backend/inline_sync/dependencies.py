"""
FastAPI dependencies: caller identity and access to app-scoped services.

The registry, coordinator and settings live on `app.state` (set up in
create_app), so each app, including each test app, has its own.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from inline_sync.config import Settings
from inline_sync.core.supabase_auth import resolve_supabase_caller
from inline_sync.exceptions import AuthenticationError
from inline_sync.services.sync import BatchCoordinator, Caller, JobRegistry

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cookie name for Supabase sessions
COOKIE_NAME_ACCESS = "sb_access_token"

# Development/test identity headers
HEADER_CALLER_ID = "X-Caller-Id"
HEADER_CALLER_CAPABILITIES = "X-Caller-Capabilities"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def get_coordinator(request: Request) -> BatchCoordinator:
    return request.app.state.coordinator


def _caller_from_headers(request: Request) -> Caller:
    caller_id = request.headers.get(HEADER_CALLER_ID, "").strip()
    if not caller_id:
        raise AuthenticationError()

    raw_caps = request.headers.get(HEADER_CALLER_CAPABILITIES, "")
    capabilities = frozenset(cap.strip() for cap in raw_caps.split(",") if cap.strip())
    return Caller(id=caller_id, capabilities=capabilities)


def verify_auth(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Caller:
    """
    Resolve the current caller.

    Supabase mode prioritizes the cookie and falls back to the
    Authorization header. Header mode trusts X-Caller-Id and is meant
    for local development and tests only.
    """
    if settings.auth_mode == "header":
        return _caller_from_headers(request)

    access_token = request.cookies.get(COOKIE_NAME_ACCESS)
    if not access_token and credentials:
        access_token = credentials.credentials
    if not access_token:
        raise AuthenticationError()

    return resolve_supabase_caller(
        settings.supabase_url,
        settings.supabase_anon_key,
        access_token,
    )
