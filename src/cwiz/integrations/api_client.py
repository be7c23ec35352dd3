"""Async client for the contract backend REST API.

One method per endpoint the wizard uses. Dollar amounts go over the wire as
integer cents. GET responses are cached until a write invalidates their path
prefix, so views that share the client see fresh data after a save.
"""

from __future__ import annotations

import logging
import math
from typing import Any
from urllib.parse import quote

import httpx

from cwiz.config import Settings
from cwiz.errors import ApiError, ProjectNotFoundError

log = logging.getLogger(__name__)


def to_cents(amount: float | None) -> int | None:
    """Dollars to integer cents (half-up). Zero and missing amounts become None."""
    if not amount:
        return None
    return int(math.floor(amount * 100 + 0.5))


def from_cents(cents: int | None, default: float = 0) -> float:
    """Integer cents to dollars. Zero and missing amounts fall back to ``default``."""
    if not cents:
        return default
    return cents / 100


class ApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` that raises ``ApiError`` on failure."""

    def __init__(self, base_url: str, *, timeout: float = 30.0,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._cache: dict[str, Any] = {}

    @classmethod
    def from_settings(cls, settings: Settings,
                      transport: httpx.AsyncBaseTransport | None = None) -> ApiClient:
        return cls(settings.api_base_url, timeout=settings.api_timeout_seconds, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    async def _request(self, method: str, path: str, *, json: dict | None = None,
                       params: dict | None = None) -> Any:
        try:
            resp = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise ApiError(f"Request failed: {e}", method=method, path=path) from e

        if resp.status_code == 404 and path.startswith("/api/projects/"):
            raise ProjectNotFoundError("Not found", method=method, path=path,
                                       status_code=404, body=resp.text)
        if resp.is_error:
            message = "Request failed"
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("error") or message
            raise ApiError(message, method=method, path=path,
                           status_code=resp.status_code, body=resp.text)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(f"Malformed response body: {e}", method=method, path=path,
                           status_code=resp.status_code, body=resp.text) from e

    async def get(self, path: str, *, params: dict | None = None, use_cache: bool = True) -> Any:
        key = path if not params else f"{path}?{httpx.QueryParams(params)}"
        if use_cache and key in self._cache:
            return self._cache[key]
        data = await self._request("GET", path, params=params)
        if use_cache:
            self._cache[key] = data
        return data

    async def _get_optional(self, path: str) -> dict | None:
        """GET that treats any failure as 'no record'."""
        try:
            return await self.get(path, use_cache=False)
        except ApiError as e:
            log.debug("Optional fetch %s failed: %s", path, e)
            return None

    async def post(self, path: str, payload: dict) -> Any:
        return await self._request("POST", path, json=payload)

    async def patch(self, path: str, payload: dict) -> Any:
        return await self._request("PATCH", path, json=payload)

    def invalidate(self, *prefixes: str) -> None:
        """Drop cached GET responses under any of the given path prefixes."""
        for key in [k for k in self._cache if any(k.startswith(p) for p in prefixes)]:
            del self._cache[key]

    # -----------------------------------------------------------------------
    # Projects
    # -----------------------------------------------------------------------

    async def next_project_number(self) -> str:
        data = await self.get("/api/projects/next-number", use_cache=False)
        return data.get("projectNumber", "") if isinstance(data, dict) else ""

    async def check_project_number(self, number: str, exclude_id: int | None = None) -> bool:
        params = {"excludeId": exclude_id} if exclude_id else None
        data = await self.get(f"/api/projects/check-number/{quote(number, safe='')}",
                              params=params, use_cache=False)
        return isinstance(data, dict) and bool(data.get("isUnique"))

    async def get_project(self, project_id: int) -> dict:
        return await self.get(f"/api/projects/{project_id}", use_cache=False)

    async def get_project_client(self, project_id: int) -> dict | None:
        return await self._get_optional(f"/api/projects/{project_id}/client")

    async def get_project_financials(self, project_id: int) -> dict | None:
        return await self._get_optional(f"/api/projects/{project_id}/financials")

    async def get_project_details(self, project_id: int) -> dict | None:
        return await self._get_optional(f"/api/projects/{project_id}/details")

    async def create_project(self, payload: dict) -> dict:
        return await self.post("/api/projects", payload)

    async def update_project(self, project_id: int, payload: dict) -> dict:
        return await self.patch(f"/api/projects/{project_id}", payload)

    async def upsert_client(self, project_id: int, payload: dict) -> dict:
        return await self.patch(f"/api/projects/{project_id}/client", payload)

    async def create_client(self, project_id: int, payload: dict) -> dict:
        return await self.post(f"/api/projects/{project_id}/client", payload)

    async def save_financials(self, project_id: int, payload: dict) -> dict:
        return await self.post(f"/api/projects/{project_id}/financials", payload)

    async def upsert_details(self, project_id: int, payload: dict) -> dict:
        return await self.patch(f"/api/projects/{project_id}/details", payload)

    async def add_contractor(self, project_id: int, payload: dict) -> dict:
        return await self.post(f"/api/projects/{project_id}/contractors", payload)

    async def create_child_llc(self, project_id: int, payload: dict) -> dict:
        return await self.post(f"/api/projects/{project_id}/child-llc", payload)

    # -----------------------------------------------------------------------
    # LLCs
    # -----------------------------------------------------------------------

    async def list_llcs(self) -> list[dict]:
        return await self.get("/api/llcs") or []

    async def get_llc(self, llc_id: int) -> dict:
        return await self.get(f"/api/llcs/{llc_id}", use_cache=False)

    async def create_llc(self, payload: dict) -> dict:
        return await self.post("/api/llcs", payload)

    # -----------------------------------------------------------------------
    # Contracts
    # -----------------------------------------------------------------------

    async def create_contract(self, payload: dict) -> dict:
        return await self.post("/api/contracts", payload)
