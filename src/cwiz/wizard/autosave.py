"""Debounced, coalescing background autosave.

Every draft change restarts a debounce timer; when it fires, one save attempt
runs. Only one attempt is ever in flight. A trigger that arrives while a save
is running sets a retry flag, and exactly one follow-up attempt is scheduled
shortly after the running one finishes, however many edits came in.

A save attempt is skipped when the draft's fingerprint (a narrow subset of
fields) matches the last successful save. Otherwise the project record is
created or patched first, then the client, financials, site details and new
LLC are saved independently: a failed sub-save is logged and the others
still run. Autosave never shows anything to the user.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from cwiz.config import Settings
from cwiz.errors import ApiError
from cwiz.integrations.api_client import ApiClient
from cwiz.integrations.draft_cache import DraftCache
from cwiz.models import LlcOption, ProjectDraft
from cwiz.wizard import payloads
from cwiz.wizard.state import DraftStore

log = logging.getLogger(__name__)


@dataclass
class AutosaveStats:
    triggers: int = 0      # attempt() calls
    coalesced: int = 0     # triggers folded into a retry while a save was running
    unchanged: int = 0     # skipped on fingerprint match
    saves: int = 0         # attempts that reached the backend
    failures: int = 0      # attempts whose project save failed
    sub_failures: int = 0  # individual client/financials/details/LLC failures


class AutosaveOrchestrator:
    def __init__(self, store: DraftStore, api: ApiClient, cache: DraftCache, *,
                 debounce_seconds: float = 2.0, retry_seconds: float = 0.5) -> None:
        self.store = store
        self.api = api
        self.cache = cache
        self.debounce_seconds = debounce_seconds
        self.retry_seconds = retry_seconds
        self.stats = AutosaveStats()

        self._timer: asyncio.TimerHandle | None = None
        self._retry_timer: asyncio.TimerHandle | None = None
        self._in_flight = False
        self._retry_requested = False
        self._last_fingerprint = ""
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None

    @classmethod
    def from_settings(cls, store: DraftStore, api: ApiClient, cache: DraftCache,
                      settings: Settings) -> AutosaveOrchestrator:
        return cls(store, api, cache,
                   debounce_seconds=settings.autosave_debounce_seconds,
                   retry_seconds=settings.autosave_retry_seconds)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def pending(self) -> bool:
        """True while a debounce or retry timer is armed or a save task is running."""
        return bool(self._timer or self._retry_timer or self._tasks)

    def attach(self) -> None:
        """Start listening to draft changes."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(lambda _draft: self.schedule())

    def prime(self, draft: ProjectDraft | None = None) -> None:
        """Treat ``draft`` as already saved so it is not immediately re-sent."""
        self._last_fingerprint = payloads.fingerprint(draft or self.store.draft)

    # -----------------------------------------------------------------------
    # Timers
    # -----------------------------------------------------------------------

    def schedule(self) -> None:
        """(Re)start the debounce window."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop; autosave not scheduled")
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self._on_debounce)

    def _on_debounce(self) -> None:
        self._timer = None
        self._spawn()

    def _on_retry(self) -> None:
        self._retry_timer = None
        self._spawn()

    def _spawn(self) -> None:
        task = asyncio.ensure_future(self.attempt())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def flush(self) -> bool:
        """Save now, bypassing the debounce window."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return await self.attempt()

    async def wait_idle(self) -> None:
        """Wait until no timer is armed and no save is running."""
        while self.pending:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(min(self.debounce_seconds, self.retry_seconds) / 4 or 0.01)

    def close(self) -> None:
        for handle in (self._timer, self._retry_timer):
            if handle is not None:
                handle.cancel()
        self._timer = self._retry_timer = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # -----------------------------------------------------------------------
    # Save attempt
    # -----------------------------------------------------------------------

    async def attempt(self) -> bool:
        """Run one save attempt. Returns True if the backend was written."""
        self.stats.triggers += 1
        if self._in_flight:
            self._retry_requested = True
            self.stats.coalesced += 1
            return False

        draft = self.store.draft
        if not draft.project_name.strip():
            return False
        current = payloads.fingerprint(draft)
        if current == self._last_fingerprint:
            self.stats.unchanged += 1
            return False

        self._in_flight = True
        saved = False
        try:
            await self._save(draft)
            self._last_fingerprint = current
            self.stats.saves += 1
            saved = True
        except ApiError as e:
            self.stats.failures += 1
            log.warning("Autosave failed: %s", e)
        except Exception:
            # nothing awaits a background attempt
            self.stats.failures += 1
            log.exception("Autosave failed unexpectedly")
        finally:
            self._in_flight = False
            if self._retry_requested:
                self._retry_requested = False
                self._schedule_retry()
        return saved

    def _schedule_retry(self) -> None:
        loop = asyncio.get_running_loop()
        if self._retry_timer is not None:
            self._retry_timer.cancel()
        self._retry_timer = loop.call_later(self.retry_seconds, self._on_retry)

    async def _save(self, draft: ProjectDraft) -> None:
        project_id = self.store.draft_project_id
        if project_id is None:
            number = payloads.draft_project_number(draft.project_number)
            created = await self.api.create_project(payloads.project_payload(draft, project_number=number))
            project_id = payloads.record_id(created)
            if project_id is None:
                raise ApiError("Project create returned no id", method="POST", path="/api/projects")
            self.store.draft_project_id = project_id
            log.info("Autosave created draft project %s (%s)", project_id, number)
        else:
            await self.api.update_project(project_id, payloads.project_payload(draft))

        for label, save in self._sub_saves(draft, project_id):
            try:
                await save()
            except ApiError as e:
                self.stats.sub_failures += 1
                log.warning("Autosave %s failed for project %s: %s", label, project_id, e)

        self._write_snapshot()
        self.api.invalidate("/api/projects", "/api/dashboard/stats")

    def _sub_saves(self, draft: ProjectDraft,
                   project_id: int) -> list[tuple[str, Callable[[], Awaitable[object]]]]:
        saves: list[tuple[str, Callable[[], Awaitable[object]]]] = []
        if draft.client_legal_name:
            saves.append(("client", lambda: self.api.upsert_client(
                project_id, payloads.client_payload(draft))))
        if payloads.has_financials(draft):
            saves.append(("financials", lambda: self.api.save_financials(
                project_id, payloads.financials_payload(draft, project_id))))
        if draft.site_address:
            saves.append(("details", lambda: self.api.upsert_details(
                project_id, payloads.site_details_payload(draft, project_id))))
        llc_name = payloads.resolved_llc_name(draft)
        if (draft.llc_option == LlcOption.NEW and llc_name and draft.site_address
                and llc_name != self.store.draft_llc_name):
            saves.append(("llc", lambda: self._create_llc(draft, project_id, llc_name)))
        return saves

    async def _create_llc(self, draft: ProjectDraft, project_id: int, name: str) -> None:
        llc = await self.api.create_llc(payloads.llc_payload(draft, name))
        llc_id = payloads.record_id(llc)
        if llc_id is not None:
            await self.api.update_project(project_id, {"llcId": llc_id})
            self.store.draft_llc_id = llc_id
            self.store.draft_llc_name = name

    def _write_snapshot(self) -> None:
        try:
            self.cache.save(self.store.snapshot())
        except OSError as e:
            log.warning("Could not write draft cache %s: %s", self.cache.file_path, e)
