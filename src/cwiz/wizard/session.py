"""Wizard session.

Wires the draft store, autosave, step navigation, and the generation pipeline
around one API client, and adds the session-level actions: starting a fresh
draft, resuming a saved project, the explicit "save draft" button, and the
pre-filled test draft.
"""

from __future__ import annotations

import asyncio
import logging
import string
import time
from datetime import date

import httpx

from cwiz.config import Settings, get_settings
from cwiz.engine.validation import ValidationPolicy, policy_for_mode
from cwiz.errors import ApiError
from cwiz.integrations import notifications
from cwiz.integrations.api_client import ApiClient
from cwiz.integrations.draft_cache import DraftCache
from cwiz.integrations.notifications import ConsoleToastSink, ToastSink
from cwiz.models import (
    FIRST_STEP,
    LAST_STEP,
    GeneratedContractRef,
    LlcOption,
    ProjectDraft,
    WizardProgress,
)
from cwiz.reference.loader import sample_draft
from cwiz.wizard import payloads
from cwiz.wizard.autosave import AutosaveOrchestrator
from cwiz.wizard.generation import GenerationPipeline
from cwiz.wizard.navigation import StepNavigator
from cwiz.wizard.state import DraftStore

log = logging.getLogger(__name__)

# Uniqueness is not checked until the number is at least this long.
MIN_CHECKABLE_NUMBER = 4


def _base36(n: int) -> str:
    digits = string.digits + string.ascii_uppercase
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = digits[r] + out
    return out or "0"


def sample_project_number() -> str:
    return f"TEST-{_base36(int(time.time() * 1000))}"


class WizardSession:
    """One user's pass through the contract wizard."""

    def __init__(self, settings: Settings | None = None, *,
                 transport: httpx.AsyncBaseTransport | None = None,
                 toast: ToastSink | None = None,
                 policy: ValidationPolicy | None = None,
                 store: DraftStore | None = None) -> None:
        self.settings = settings or get_settings()
        self.toast = toast or ConsoleToastSink()
        self.api = ApiClient.from_settings(self.settings, transport)
        self.cache = DraftCache(self.settings.cache_path, self.settings.draft_cache_key)
        self.store = store or DraftStore()
        self.policy = policy or policy_for_mode(self.settings.validation_mode)
        self.autosave = AutosaveOrchestrator.from_settings(self.store, self.api, self.cache, self.settings)
        self.navigator = StepNavigator(self.store, self.api, self.autosave, self.policy, self.toast)
        self.pipeline = GenerationPipeline(self.store, self.api, self.toast)

    async def __aenter__(self) -> WizardSession:
        self.autosave.attach()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop autosave timers, let a running save finish, and close the client."""
        self.autosave.close()
        await self.autosave.wait_idle()
        await self.api.aclose()

    @property
    def draft(self) -> ProjectDraft:
        return self.store.draft

    @property
    def progress(self) -> WizardProgress:
        return self.store.progress

    # -----------------------------------------------------------------------
    # Project number
    # -----------------------------------------------------------------------

    async def start_fresh(self) -> None:
        """Reset to an empty draft pre-populated with the next free project number."""
        self.store.replace_draft(ProjectDraft())
        self.store.progress = WizardProgress()
        self.store.draft_project_id = None
        self.store.draft_llc_id = None
        self.store.draft_llc_name = ""
        self.autosave.prime()

        try:
            number = await self.api.next_project_number()
        except ApiError as e:
            log.warning("Could not fetch next project number: %s", e)
            return
        if number and not self.draft.project_number:
            self.store.replace_draft(self.draft.model_copy(update={"project_number": number}))
            self.progress.number_is_unique = True

    async def regenerate_project_number(self) -> str:
        number = await self.api.next_project_number()
        if number:
            self.store.update_project_data(project_number=number)
            self.progress.number_is_unique = True
        return number

    async def check_project_number_uniqueness(self, number: str | None = None) -> bool | None:
        """Ask the backend whether the number is free; None means "not known".

        The draft's own record is excluded so a resumed project does not
        collide with itself.
        """
        number = self.draft.project_number if number is None else number
        if not number or len(number) < MIN_CHECKABLE_NUMBER:
            self.progress.number_is_unique = None
            return None
        try:
            unique = await self.api.check_project_number(number, exclude_id=self.store.draft_project_id)
        except ApiError as e:
            log.error("Failed to check project number %s: %s", number, e)
            unique = None
        self.progress.number_is_unique = unique
        return unique

    # -----------------------------------------------------------------------
    # Resume
    # -----------------------------------------------------------------------

    async def hydrate(self, project_id: int) -> bool:
        """Load a saved project into the draft. Falls back to a fresh draft on failure."""
        try:
            project, client, financials, details = await asyncio.gather(
                self.api.get_project(project_id),
                self.api.get_project_client(project_id),
                self.api.get_project_financials(project_id),
                self.api.get_project_details(project_id),
            )
        except ApiError as e:
            log.error("Failed to load draft %s: %s", project_id, e)
            self.toast(notifications.destructive(
                "Error Loading Draft", "Could not load the saved draft. Starting fresh."))
            await self.start_fresh()
            return False

        updates = payloads.updates_from_records(project, client, financials, details)
        llc_id = project.get("llcId")
        if llc_id:
            try:
                updates.update(payloads.updates_from_llc(await self.api.get_llc(llc_id)))
            except ApiError as e:
                log.warning("Could not load LLC %s: %s", llc_id, e)

        self.store.replace_draft(ProjectDraft.model_validate({**ProjectDraft().model_dump(), **updates}))
        self.store.progress = WizardProgress()
        self.store.draft_project_id = project_id
        # Units rebuilt from the saved details record count toward the home-models step.
        self.store.set_db_units_count(sum(1 for u in updates.get("units", []) if u.model))
        self.store.draft_llc_id = None
        self.store.draft_llc_name = ""
        self.autosave.prime()

        name = project.get("name") or self.draft.project_name or "your project"
        self.toast(notifications.info("Draft Loaded", f'Resuming draft for "{name}"'))
        return True

    def load_draft(self) -> bool:
        """Restore the crash-recovery snapshot, if there is one."""
        snapshot = self.cache.load()
        if snapshot is None:
            return False
        self.store.restore(snapshot)
        self.autosave.prime()
        self.toast(notifications.info("Draft Loaded", "Your previous progress has been restored."))
        return True

    def persist(self) -> None:
        """Write the current draft and progress to the crash-recovery cache."""
        self.cache.save(self.store.snapshot())

    # -----------------------------------------------------------------------
    # Explicit save
    # -----------------------------------------------------------------------

    async def save_draft(self) -> int | None:
        """User-initiated save of everything entered so far. Returns the project id."""
        draft = self.draft
        if not draft.project_name.strip():
            self.toast(notifications.destructive("Cannot Save Draft", "Please enter a project name first."))
            return None

        try:
            project_id = await self._save_everything(draft)
        except ApiError as e:
            log.error("Failed to save draft: %s", e)
            self.toast(notifications.destructive(
                "Save Failed", "Could not save draft to database. Please try again."))
            return None

        try:
            self.persist()
        except OSError as e:
            log.warning("Could not write draft cache %s: %s", self.cache.file_path, e)
        self.api.invalidate("/api/projects", "/api/dashboard/stats")
        self.autosave.prime()
        self.toast(notifications.info("Draft Saved", f'Project "{draft.project_name}" has been saved as a draft.'))
        return project_id

    async def _save_everything(self, draft: ProjectDraft) -> int:
        project_id = self.store.draft_project_id
        if project_id is None:
            number = payloads.draft_project_number(draft.project_number)
            created = await self.api.create_project(payloads.project_payload(draft, project_number=number))
            project_id = payloads.record_id(created)
            if project_id is None:
                raise ApiError("Failed to create project", method="POST", path="/api/projects")
            self.store.draft_project_id = project_id
        else:
            await self.api.update_project(project_id, payloads.project_payload(draft))

        if draft.client_legal_name:
            await self.api.create_client(project_id, payloads.client_payload(draft, project_id))

        llc_name = payloads.resolved_llc_name(draft)
        if draft.llc_option == LlcOption.NEW and llc_name and llc_name != self.store.draft_llc_name:
            try:
                llc = await self.api.create_llc(payloads.llc_payload(draft, llc_name))
                llc_id = payloads.record_id(llc)
                if llc_id is not None:
                    await self.api.update_project(project_id, {"llcId": llc_id})
                    self.store.draft_llc_id = llc_id
                    self.store.draft_llc_name = llc_name
                    self.api.invalidate("/api/llcs")
            except ApiError as e:
                log.warning("LLC creation during draft save failed: %s", e)

        if payloads.has_financials(draft):
            await self.api.save_financials(project_id, payloads.financials_payload(draft, project_id))

        for body in payloads.contractor_payloads(draft, project_id):
            await self.api.add_contractor(project_id, body)
        return project_id

    # -----------------------------------------------------------------------
    # Test draft
    # -----------------------------------------------------------------------

    def load_test_draft(self) -> None:
        """Fill the draft through step 8 with sample data and jump to review."""
        values = {
            **ProjectDraft().model_dump(),
            **sample_draft(),
            "project_number": sample_project_number(),
            "effective_date": date.today(),
        }
        self.store.replace_draft(ProjectDraft.model_validate(values), notify=True)
        self.progress.current_step = LAST_STEP
        self.progress.completed_steps = set(range(FIRST_STEP, LAST_STEP))
        self.progress.validation_errors = {}
        self.toast(notifications.info("Test Draft Loaded", "Pre-filled test data loaded. Now on Step 9."))

    # -----------------------------------------------------------------------
    # Generation
    # -----------------------------------------------------------------------

    async def generate_contracts(self) -> list[GeneratedContractRef]:
        """Run the generation pipeline after any pending autosave has gone out."""
        await self.autosave.flush()
        return await self.pipeline.run()
