"""Mock-transport wiring for the hosted platform adapter."""

from __future__ import annotations

import dataclasses
import json
from typing import TYPE_CHECKING

import httpx

from rollcall.adapters.http_resilience import ResilienceConfig, ResilientClient
from rollcall.adapters.supabase import PlatformClient
from rollcall.config import PlatformConfig

if TYPE_CHECKING:
    from collections.abc import Callable

PLATFORM_URL = "https://demo.supabase.co"
SERVICE_KEY = "service-key"

type Handler = Callable[[httpx.Request], httpx.Response]


def make_client_factory(
    handler: Handler,
    *,
    keep_retry: bool = False,
) -> Callable[[ResilienceConfig], ResilientClient]:
    def factory(resilience: ResilienceConfig) -> ResilientClient:
        if not keep_retry:
            resilience = dataclasses.replace(resilience, retry=None)
        return ResilientClient(resilience, transport=httpx.MockTransport(handler))

    return factory


def make_platform_client(
    handler: Handler,
    *,
    resilience: ResilienceConfig | None = None,
    keep_retry: bool = False,
) -> PlatformClient:
    config = PlatformConfig(
        url=PLATFORM_URL,
        service_role_key=SERVICE_KEY,
        resilience=resilience or ResilienceConfig(name="platform-test", retry=None),
    )
    factory = make_client_factory(handler, keep_retry=keep_retry)
    return PlatformClient(config, client_factory=factory)


def request_json(request: httpx.Request) -> object:
    return json.loads(request.content)
