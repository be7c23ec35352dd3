"""Shared fixtures: an in-memory fake of the contract backend behind httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass

import httpx
import pytest

from cwiz.config import Settings
from cwiz.integrations.api_client import ApiClient
from cwiz.integrations.draft_cache import DraftCache
from cwiz.integrations.notifications import MemoryToastSink
from cwiz.wizard.session import WizardSession
from cwiz.wizard.state import DraftStore

BASE_URL = "http://testserver"


@dataclass
class Call:
    method: str
    path: str
    body: dict | None
    params: dict


class FakeBackend:
    """Just enough of the REST API for the wizard, with failure injection."""

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self.projects: dict[int, dict] = {}
        self.clients: dict[int, dict] = {}
        self.financials: dict[int, dict] = {}
        self.details: dict[int, dict] = {}
        self.contractors: dict[int, list[dict]] = {}
        self.llcs: dict[int, dict] = {}
        self.contracts: dict[int, dict] = {}
        self.next_number = "2026-014"
        self.taken_numbers: set[str] = set()
        self._ids = 100
        self._failures: list[tuple[str, re.Pattern, int]] = []
        self._holds: list[tuple[str, re.Pattern, asyncio.Event]] = []
        self._replies: list[tuple[str, re.Pattern, dict]] = []

    # -- test controls ------------------------------------------------------

    def fail(self, method: str, path_pattern: str, status: int = 500) -> None:
        self._failures.append((method, re.compile(path_pattern), status))

    def reply(self, method: str, path_pattern: str, status: int = 200, **response) -> None:
        """Answer matching requests with a canned response (e.g. ``text=...``, ``json=...``)."""
        self._replies.append((method, re.compile(path_pattern), {"status_code": status, **response}))

    def hold(self, method: str, path_pattern: str) -> asyncio.Event:
        """Block matching requests until the returned event is set."""
        gate = asyncio.Event()
        self._holds.append((method, re.compile(path_pattern), gate))
        return gate

    def requests(self, method: str | None = None, pattern: str | None = None) -> list[Call]:
        rx = re.compile(pattern) if pattern else None
        return [c for c in self.calls
                if (method is None or c.method == method) and (rx is None or rx.fullmatch(c.path))]

    @property
    def writes(self) -> list[Call]:
        return [c for c in self.calls if c.method != "GET"]

    def _new_id(self) -> int:
        self._ids += 1
        return self._ids

    # -- transport handler --------------------------------------------------

    async def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append(Call(method, path, body, dict(request.url.params)))

        for m, rx, gate in self._holds:
            if m == method and rx.fullmatch(path):
                await gate.wait()
        for m, rx, status in self._failures:
            if m == method and rx.fullmatch(path):
                return httpx.Response(status, json={"error": f"injected failure on {path}"})
        for m, rx, canned in self._replies:
            if m == method and rx.fullmatch(path):
                return httpx.Response(**canned)

        return self._route(method, path, body)

    def _route(self, method: str, path: str, body: dict | None) -> httpx.Response:
        parts = path.strip("/").split("/")[1:]  # drop "api"

        if parts == ["projects", "next-number"]:
            return httpx.Response(200, json={"projectNumber": self.next_number})
        if parts[:2] == ["projects", "check-number"]:
            return httpx.Response(200, json={"isUnique": parts[2] not in self.taken_numbers})

        if parts == ["projects"] and method == "POST":
            pid = self._new_id()
            self.projects[pid] = {"id": pid, **body}
            return httpx.Response(201, json=self.projects[pid])

        if parts[0] == "projects" and len(parts) >= 2:
            pid = int(parts[1])
            if pid not in self.projects:
                return httpx.Response(404, json={"error": "Project not found"})
            if len(parts) == 2:
                if method == "PATCH":
                    self.projects[pid].update(body)
                return httpx.Response(200, json=self.projects[pid])
            return self._project_child(method, pid, parts[2], body)

        if parts == ["llcs"]:
            if method == "POST":
                lid = self._new_id()
                self.llcs[lid] = {"id": lid, **body}
                return httpx.Response(201, json=self.llcs[lid])
            return httpx.Response(200, json=list(self.llcs.values()))
        if parts[0] == "llcs" and len(parts) == 2:
            llc = self.llcs.get(int(parts[1]))
            if llc is None:
                return httpx.Response(404, json={"error": "LLC not found"})
            return httpx.Response(200, json=llc)

        if parts == ["contracts"] and method == "POST":
            cid = self._new_id()
            self.contracts[cid] = {"id": cid, **body}
            return httpx.Response(201, json=self.contracts[cid])

        return httpx.Response(404, json={"error": f"no route for {method} {path}"})

    def _project_child(self, method: str, pid: int, kind: str, body: dict | None) -> httpx.Response:
        stores = {"client": self.clients, "financials": self.financials, "details": self.details}
        if kind in stores:
            store = stores[kind]
            if method == "GET":
                if pid not in store:
                    return httpx.Response(404, json={"error": f"No {kind}"})
                return httpx.Response(200, json=store[pid])
            store[pid] = {**store.get(pid, {}), **body}
            return httpx.Response(200, json=store[pid])
        if kind == "contractors":
            record = {"id": self._new_id(), **body}
            self.contractors.setdefault(pid, []).append(record)
            return httpx.Response(201, json=record)
        if kind == "child-llc":
            return httpx.Response(201, json={"id": self._new_id(), **body})
        return httpx.Response(404, json={"error": "unknown child resource"})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def transport(backend):
    return httpx.MockTransport(backend.handler)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        api_base_url=BASE_URL,
        data_dir=str(tmp_path),
        autosave_debounce_seconds=0.05,
        autosave_retry_seconds=0.02,
        validation_mode="strict",
    )


@pytest.fixture
async def api(transport):
    client = ApiClient(BASE_URL, transport=transport)
    yield client
    await client.aclose()


@pytest.fixture
def toasts():
    return MemoryToastSink()


@pytest.fixture
def store():
    return DraftStore()


@pytest.fixture
def cache(tmp_path):
    return DraftCache(tmp_path / "cache")


@pytest.fixture
async def session(settings, transport, toasts):
    async with WizardSession(settings, transport=transport, toast=toasts) as s:
        yield s


def step1_fields(**overrides) -> dict:
    """Field values that pass the project-info step."""
    fields = {
        "project_number": "2026-014",
        "project_name": "Oak Street Residence",
        "site_address": "123 Oak Street",
        "site_city": "San Francisco",
        "site_state": "CA",
        "site_zip": "94102",
    }
    fields.update(overrides)
    return fields
