"""Step navigation gate.

Moving forward re-validates the current step and, on step 1, requires the
project record to be saved on the backend before advancing. Moving back or
jumping flushes autosave first so nothing typed on the step being left is
lost to the debounce window.
"""

from __future__ import annotations

import logging

from cwiz.engine.validation import StepValidation, ValidationPolicy
from cwiz.errors import ApiError
from cwiz.integrations import notifications
from cwiz.integrations.api_client import ApiClient
from cwiz.integrations.notifications import ToastSink
from cwiz.models import FIRST_STEP, LAST_STEP
from cwiz.wizard import payloads
from cwiz.wizard.autosave import AutosaveOrchestrator
from cwiz.wizard.state import DraftStore

log = logging.getLogger(__name__)


class StepNavigator:
    def __init__(self, store: DraftStore, api: ApiClient, autosave: AutosaveOrchestrator,
                 policy: ValidationPolicy, toast: ToastSink) -> None:
        self.store = store
        self.api = api
        self.autosave = autosave
        self.policy = policy
        self.toast = toast

    @property
    def current_step(self) -> int:
        return self.store.progress.current_step

    def validate_step(self, step: int) -> StepValidation:
        return self.policy.validate(step, self.store.draft, self.store.progress)

    def can_navigate_to(self, step: int) -> bool:
        """Reachable: step 1, behind the cursor, completed, or right after a completed step."""
        if step < FIRST_STEP or step > LAST_STEP:
            return False
        progress = self.store.progress
        return (
            self.policy.allows_free_navigation
            or step == FIRST_STEP
            or step < progress.current_step
            or step in progress.completed_steps
            or (step - 1) in progress.completed_steps
        )

    async def next_step(self) -> bool:
        """Validate and advance. Returns False if the step did not change."""
        progress = self.store.progress
        result = self.validate_step(progress.current_step)
        if not result.valid:
            self.store.set_validation_errors(result.errors)
            self.toast(notifications.destructive(
                "Validation Error", "Please fill in all required fields before proceeding."))
            return False

        if progress.current_step == FIRST_STEP:
            try:
                await self._save_project_identity()
            except ApiError as e:
                log.error("Failed to save project: %s", e)
                self.toast(notifications.destructive("Error", "Failed to save project. Please try again."))
                return False

        progress.completed_steps.add(progress.current_step)
        progress.current_step = min(progress.current_step + 1, LAST_STEP)
        progress.validation_errors = {}
        return True

    async def prev_step(self) -> None:
        await self.autosave.flush()
        progress = self.store.progress
        progress.current_step = max(progress.current_step - 1, FIRST_STEP)
        progress.validation_errors = {}

    async def go_to_step(self, step: int) -> bool:
        """Jump to ``step`` if it is reachable. Returns False if rejected."""
        if not self.can_navigate_to(step):
            return False
        await self.autosave.flush()
        self.store.progress.current_step = step
        self.store.progress.validation_errors = {}
        return True

    async def _save_project_identity(self) -> None:
        draft = self.store.draft
        body = payloads.project_payload(draft)
        body["projectNumber"] = draft.project_number
        if self.store.draft_project_id is None:
            body["status"] = payloads.DRAFT_STATUS
            created = await self.api.create_project(body)
            project_id = payloads.record_id(created)
            if project_id is None:
                raise ApiError("Project create returned no id", method="POST", path="/api/projects")
            self.store.draft_project_id = project_id
        else:
            await self.api.update_project(self.store.draft_project_id, body)
        self.api.invalidate("/api/projects")
