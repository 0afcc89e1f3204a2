"""Nested pydantic-settings configuration for the client.

Each group reads its own ``NEPHRO_<GROUP>_*`` env vars::

    export NEPHRO_API_BASE_URL=https://api.example.org/api/v1
    export NEPHRO_SESSION_BACKEND=file
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class ApiConfig(BaseSettings):
    """Remote API endpoint configuration.

    Env vars use ``NEPHRO_API_`` prefix.
    """

    model_config = {"env_prefix": "NEPHRO_API_"}

    base_url: str = "http://localhost:8000/api/v1"
    timeout: float = Field(default=30.0, gt=0.0)
    login_path: str = "/auth/login/"
    refresh_path: str = "/auth/refresh/"
    register_path: str = "/auth/register/"
    # When True, resource read methods return empty results instead of
    # raising AuthenticationExpired. Mutating calls always raise.
    degrade_reads_on_auth_expired: bool = False


class SessionConfig(BaseSettings):
    """Where session tokens are persisted.

    Env vars use ``NEPHRO_SESSION_`` prefix.
    """

    model_config = {"env_prefix": "NEPHRO_SESSION_"}

    backend: Literal["memory", "file"] = "memory"
    store_path: Path = Path.home() / ".nephro" / "session"


class CacheConfig(BaseSettings):
    """Read cache for slowly changing lookups (institution lists).

    Env vars use ``NEPHRO_CACHE_`` prefix.
    """

    model_config = {"env_prefix": "NEPHRO_CACHE_"}

    enabled: bool = True
    institutions_ttl_seconds: int = Field(default=600, ge=0)
    max_entries: int = Field(default=256, ge=1)


class AuditConfig(BaseSettings):
    """Audit trail configuration.

    Env vars use ``NEPHRO_AUDIT_`` prefix.
    """

    model_config = {"env_prefix": "NEPHRO_AUDIT_"}

    enabled: bool = True
    max_events: int = Field(default=1000, ge=1)


class ObservabilityConfig(BaseSettings):
    """Logging configuration.

    Env vars use ``NEPHRO_OBSERVABILITY_`` prefix.
    """

    model_config = {"env_prefix": "NEPHRO_OBSERVABILITY_"}

    log_level: str = "INFO"
    # None picks console output on a TTY and JSON lines otherwise
    json_logs: Optional[bool] = None


class AppSettings(BaseSettings):
    """Top-level settings aggregating all sub-configs."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
