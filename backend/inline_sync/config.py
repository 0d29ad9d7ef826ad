"""
Service configuration.

All settings come from environment variables (a local .env file is loaded
first). Read once at app creation; pass the Settings object around instead
of touching os.environ elsewhere.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv, find_dotenv

_ = load_dotenv(find_dotenv())  # read local .env file

# Log directory (relative to backend/)
DEFAULT_LOG_DIR = Path(__file__).parent.parent / "logs"

CACHE_BACKENDS = ("memory", "redis")
AUTH_MODES = ("supabase", "header")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class Settings:
    """Runtime settings for the sync service."""

    cache_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl: int = 600
    chunk_size: int = 5

    auth_mode: str = "header"
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    default_capability: str = "manage_sync"

    # "package.module:function", called with the registry at startup
    jobs_loader: str | None = None

    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    log_dir: Optional[Path] = DEFAULT_LOG_DIR

    def __post_init__(self):
        if self.cache_backend not in CACHE_BACKENDS:
            raise ValueError(
                f"Unsupported cache backend {self.cache_backend!r}, "
                f"expected one of {CACHE_BACKENDS}"
            )
        if self.auth_mode not in AUTH_MODES:
            raise ValueError(
                f"Unsupported auth mode {self.auth_mode!r}, expected one of {AUTH_MODES}"
            )
        if self.auth_mode == "supabase" and not (self.supabase_url and self.supabase_anon_key):
            raise ValueError("Supabase auth requires SUPABASE_URL and SUPABASE_ANON_KEY")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        supabase_url = os.environ.get("SUPABASE_URL")
        default_auth = "supabase" if supabase_url else "header"

        return cls(
            cache_backend=os.environ.get("INLINE_SYNC_CACHE_BACKEND", "memory").lower(),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            cache_ttl=_env_int("INLINE_SYNC_CACHE_TTL", 600),
            chunk_size=_env_int("INLINE_SYNC_CHUNK_SIZE", 5),
            auth_mode=os.environ.get("INLINE_SYNC_AUTH_MODE", default_auth).lower(),
            supabase_url=supabase_url,
            supabase_anon_key=os.environ.get("SUPABASE_ANON_KEY"),
            default_capability=os.environ.get("INLINE_SYNC_DEFAULT_CAPABILITY", "manage_sync"),
            jobs_loader=os.environ.get("INLINE_SYNC_JOBS") or None,
            cors_origins=_env_list("CORS_ORIGINS", "*"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            log_dir=Path(os.environ.get("LOG_DIR", str(DEFAULT_LOG_DIR))),
        )
