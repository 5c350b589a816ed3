"""Hosted platform (auth admin + REST) configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_float_env, require_env_vars
from .http_resilience import RateLimit, ResilienceConfig

PLATFORM_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True)
class PlatformConfig:
    """Holds the project URL, service-role key and client tuning."""

    url: str
    service_role_key: str
    resilience: ResilienceConfig
    profiles_table: str = "profiles"
    members_table: str = "members"

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"

    @property
    def auth_admin_url(self) -> str:
        return f"{self.url.rstrip('/')}/auth/v1/admin"


def get_platform_config(*, resilience: ResilienceConfig | None = None) -> PlatformConfig:
    values = require_env_vars(("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"))
    timeout = optional_float_env("ROLLCALL_HTTP_TIMEOUT", PLATFORM_TIMEOUT_SECONDS)
    return PlatformConfig(
        url=values["SUPABASE_URL"],
        service_role_key=values["SUPABASE_SERVICE_ROLE_KEY"],
        resilience=resilience
        or ResilienceConfig(
            name="platform",
            base_url=values["SUPABASE_URL"].rstrip("/"),
            timeout_seconds=timeout,
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        ),
    )
