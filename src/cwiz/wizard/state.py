"""Draft state container.

``DraftStore`` owns the single in-memory copy of the project draft and the
wizard progress. The draft only changes through the operations here; each of
them re-derives computed fields and then tells subscribers (the autosave
orchestrator) that the draft changed.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from cwiz.engine.derivation import derive_all
from cwiz.errors import UnknownFieldError
from cwiz.models import DraftSnapshot, ProjectDraft, UnitSpec, WizardProgress, default_unit

log = logging.getLogger(__name__)

Listener = Callable[[ProjectDraft], None]


class DraftStore:
    def __init__(self, draft: ProjectDraft | None = None,
                 progress: WizardProgress | None = None) -> None:
        self._draft = derive_all(draft or ProjectDraft())
        self.progress = progress or WizardProgress()
        self.draft_project_id: int | None = None
        # LLC created for this draft, so later saves link it instead of creating another.
        self.draft_llc_id: int | None = None
        self.draft_llc_name = ""
        self._listeners: list[Listener] = []
        # Highest unit id ever issued, so ids of removed units are not handed out again.
        self._unit_id_high_water = max((u.id for u in self._draft.units), default=0)

    @property
    def draft(self) -> ProjectDraft:
        return self._draft

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _next_unit_id(self, units: list[UnitSpec]) -> int:
        return max(max((u.id for u in units), default=0), self._unit_id_high_water) + 1

    def _commit(self, draft: ProjectDraft, *, notify: bool = True, swap: bool = False) -> None:
        # A whole-draft swap is not a model switch, so it never moves the on-site default.
        previous_model = None if swap else self._draft.service_model
        missing = draft.total_units - len(draft.units)
        if missing > 0:
            # Grow here rather than in derivation so new ids continue past every id issued.
            first = self._next_unit_id(draft.units)
            grown = [*draft.units, *(default_unit(first + i) for i in range(missing))]
            draft = draft.model_copy(update={"units": grown})
        self._draft = derive_all(draft, previous_model)
        self._unit_id_high_water = max(
            self._unit_id_high_water, max((u.id for u in self._draft.units), default=0))
        if notify:
            for listener in list(self._listeners):
                listener(self._draft)

    # -----------------------------------------------------------------------
    # Draft mutation
    # -----------------------------------------------------------------------

    def update_project_data(self, partial: dict[str, Any] | None = None, **fields: Any) -> None:
        """Shallow-merge fields into the draft and clear validation errors.

        Errors are re-checked on the next navigation attempt, not live.
        """
        updates = {**(partial or {}), **fields}
        unknown = [k for k in updates if k not in ProjectDraft.model_fields]
        if unknown:
            raise UnknownFieldError(unknown)

        merged = ProjectDraft.model_validate({**self._draft.model_dump(), **updates})
        self.progress.validation_errors = {}
        self._commit(merged)

    def update_unit(self, unit_id: int, **fields: Any) -> None:
        unknown = [k for k in fields if k not in UnitSpec.model_fields or k == "id"]
        if unknown:
            raise UnknownFieldError(unknown)
        units = [
            UnitSpec.model_validate({**u.model_dump(), **fields}) if u.id == unit_id else u
            for u in self._draft.units
        ]
        self._commit(self._draft.model_copy(update={"units": units}))

    def add_unit(self) -> UnitSpec:
        """Append a default unit with id max(existing ids) + 1, never reusing an id."""
        units = self._draft.units
        new_unit = default_unit(self._next_unit_id(units))
        self._commit(self._draft.model_copy(update={
            "units": [*units, new_unit],
            "total_units": len(units) + 1,
        }))
        return new_unit

    def remove_unit(self, unit_id: int) -> None:
        """Drop a unit. total_units never goes below 1."""
        units = [u for u in self._draft.units if u.id != unit_id]
        self._commit(self._draft.model_copy(update={
            "units": units,
            "total_units": max(1, len(units)),
        }))

    def replace_draft(self, draft: ProjectDraft, *, notify: bool = False) -> None:
        """Swap in a whole draft (hydration, cache restore)."""
        self._commit(draft, notify=notify, swap=True)

    def snapshot(self) -> DraftSnapshot:
        return DraftSnapshot(
            project_data=self._draft,
            current_step=self.progress.current_step,
            completed_steps=sorted(self.progress.completed_steps),
            draft_project_id=self.draft_project_id,
            draft_llc_id=self.draft_llc_id,
            draft_llc_name=self.draft_llc_name,
        )

    def restore(self, snapshot: DraftSnapshot) -> None:
        """Load a crash-recovery snapshot without notifying listeners."""
        self.replace_draft(snapshot.project_data)
        self.progress.current_step = snapshot.current_step
        self.progress.completed_steps = set(snapshot.completed_steps)
        self.progress.validation_errors = {}
        self.draft_project_id = snapshot.draft_project_id
        self.draft_llc_id = snapshot.draft_llc_id
        self.draft_llc_name = snapshot.draft_llc_name

    # -----------------------------------------------------------------------
    # Progress
    # -----------------------------------------------------------------------

    def set_validation_errors(self, errors: dict[str, str]) -> None:
        self.progress.validation_errors = dict(errors)

    def set_db_units_count(self, count: int) -> None:
        self.progress.db_units_count = count

    def set_confirmation(self, checked: bool) -> None:
        self.progress.confirmation_checked = checked
