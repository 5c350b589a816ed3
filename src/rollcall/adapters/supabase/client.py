"""HTTP client for the platform's REST tables and auth admin API.

Every call returns a ``Result``; nothing here raises for an HTTP failure.
Status codes are classified once, in ``classify_status``.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, cast

import httpx

from rollcall.adapters.http_resilience import ResilientClient
from rollcall.domain.result import Err, ErrorKind, Ok, rejected, transient

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import TracebackType

    from rollcall.config import PlatformConfig, ResilienceConfig
    from rollcall.domain.ports import PageRequest
    from rollcall.domain.result import Result

    type JsonRow = dict[str, object]
    type QueryParams = Sequence[tuple[str, str]]

log = getLogger(__name__)

_TRANSIENT_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})


def classify_status(status_code: int) -> ErrorKind | None:
    """Map an HTTP status to an error kind; ``None`` for success."""

    if status_code < 400:
        return None
    if status_code in _TRANSIENT_STATUSES or status_code >= 500:
        return ErrorKind.TRANSIENT
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    return ErrorKind.REJECTED


def parse_content_range(value: str | None) -> int | None:
    """Total row count from a ``Content-Range: 0-24/312`` header, if the server sent one."""

    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(frozen=True, slots=True)
class RowsPage:
    rows: list[JsonRow]
    total: int | None


class PlatformClient:
    """Thin request layer: builds URLs, headers and query strings, classifies failures."""

    def __init__(
        self,
        config: PlatformConfig,
        *,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self.config = config
        headers = {
            **(config.resilience.default_headers or {}),
            "apikey": config.service_role_key,
            "Authorization": f"Bearer {config.service_role_key}",
        }
        resilience = dataclasses.replace(config.resilience, default_headers=headers)
        self._http = (client_factory or _default_client_factory)(resilience)

    async def __aenter__(self) -> PlatformClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---- REST tables ------------------------------------------------------------

    async def select(
        self,
        table: str,
        filters: QueryParams = (),
        *,
        page: PageRequest,
        order: str = "id.asc",
    ) -> Result[RowsPage]:
        params = [
            ("select", "*"),
            *filters,
            ("order", order),
            ("limit", str(page.size)),
            ("offset", str(page.offset)),
        ]
        response = await self._send(
            "GET",
            self._table_url(table),
            params=params,
            headers={"Prefer": "count=exact"},
        )
        if isinstance(response, Err):
            return response
        rows = self._json_rows(response)
        if isinstance(rows, Err):
            return rows
        total = parse_content_range(response.headers.get("Content-Range"))
        return Ok(RowsPage(rows=rows.value, total=total))

    async def upsert(self, table: str, row: JsonRow) -> Result[JsonRow]:
        """Insert ``row``, or merge its columns into the existing row with the same id."""

        params: list[tuple[str, str]] = []
        prefer = "return=representation"
        if "id" in row:
            params.append(("on_conflict", "id"))
            prefer = "resolution=merge-duplicates,return=representation"
        response = await self._send(
            "POST",
            self._table_url(table),
            params=params,
            json=row,
            headers={"Prefer": prefer},
        )
        if isinstance(response, Err):
            return response
        return self._single_row(response, table)

    async def delete(self, table: str, filters: QueryParams) -> Result[int]:
        if not filters:
            return rejected(f"Refusing to delete every row of {table}")
        response = await self._send(
            "DELETE",
            self._table_url(table),
            params=list(filters),
            headers={"Prefer": "return=representation"},
        )
        if isinstance(response, Err):
            return response
        rows = self._json_rows(response)
        if isinstance(rows, Err):
            return rows
        return Ok(len(rows.value))

    # ---- auth admin ---------------------------------------------------------------

    async def list_users(self, *, page: PageRequest) -> Result[tuple[object, int | None]]:
        response = await self._send(
            "GET",
            f"{self.config.auth_admin_url}/users",
            params=[("page", str(page.number)), ("per_page", str(page.size))],
        )
        if isinstance(response, Err):
            return response
        payload = self._json(response)
        if isinstance(payload, Err):
            return payload
        total_header = response.headers.get("X-Total-Count")
        total = int(total_header) if total_header and total_header.isdigit() else None
        return Ok((payload.value, total))

    async def get_user(self, user_id: str) -> Result[object]:
        response = await self._send("GET", self._user_url(user_id))
        if isinstance(response, Err):
            return response
        return self._json(response)

    async def create_user(self, attributes: JsonRow) -> Result[object]:
        response = await self._send("POST", f"{self.config.auth_admin_url}/users", json=attributes)
        if isinstance(response, Err):
            return response
        return self._json(response)

    async def update_user(self, user_id: str, attributes: JsonRow) -> Result[object]:
        response = await self._send("PUT", self._user_url(user_id), json=attributes)
        if isinstance(response, Err):
            return response
        return self._json(response)

    async def delete_user(self, user_id: str) -> Result[None]:
        response = await self._send("DELETE", self._user_url(user_id))
        if isinstance(response, Err):
            return response
        return Ok(None)

    # ---- plumbing -----------------------------------------------------------------

    def _table_url(self, table: str) -> str:
        return f"{self.config.rest_url}/{table}"

    def _user_url(self, user_id: str) -> str:
        return f"{self.config.auth_admin_url}/users/{user_id}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: QueryParams | None = None,
        json: object = None,
        headers: dict[str, str] | None = None,
    ) -> Result[httpx.Response]:
        try:
            response = await self._http.request(
                method,
                url,
                params=list(params) if params else None,
                json=json,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            return transient(f"{method} {url} timed out: {exc}")
        except httpx.TransportError as exc:
            return transient(f"{method} {url} failed: {exc}")

        kind = classify_status(response.status_code)
        if kind is None:
            return Ok(response)
        detail = f"{method} {url} returned {response.status_code}: {_error_message(response)}"
        log.debug(detail)
        return Err(kind, detail)

    @staticmethod
    def _json(response: httpx.Response) -> Result[object]:
        try:
            return Ok(response.json())
        except ValueError as exc:
            return rejected(f"Malformed JSON from {response.request.url}: {exc}")

    def _json_rows(self, response: httpx.Response) -> Result[list[JsonRow]]:
        payload = self._json(response)
        if isinstance(payload, Err):
            return payload
        if not isinstance(payload.value, list):
            return rejected(f"Expected a JSON array from {response.request.url}")
        return Ok(cast("list[JsonRow]", payload.value))

    def _single_row(self, response: httpx.Response, table: str) -> Result[JsonRow]:
        rows = self._json_rows(response)
        if isinstance(rows, Err):
            return rows
        if not rows.value:
            return rejected(f"{table} write returned no row")
        return Ok(rows.value[0])


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        body = cast("dict[str, object]", payload)
        for key in ("message", "msg", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return response.text[:200]
