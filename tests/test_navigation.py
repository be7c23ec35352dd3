from __future__ import annotations

import pytest
from conftest import step1_fields

from cwiz.engine.validation import PermissiveValidationPolicy
from cwiz.wizard.navigation import StepNavigator


@pytest.fixture
def nav(session) -> StepNavigator:
    return session.navigator


# ---------------------------------------------------------------------------
# Reachability
# ---------------------------------------------------------------------------

async def test_cannot_skip_past_the_step_after_last_completed(session, nav):
    session.progress.completed_steps = {1, 2}
    session.progress.current_step = 3

    assert await nav.go_to_step(4) is False
    assert session.progress.current_step == 3
    assert await nav.go_to_step(3) is True


async def test_reachability_rules(session, nav):
    session.progress.completed_steps = {1, 2, 5}
    session.progress.current_step = 3
    reachable = [n for n in range(0, 11) if nav.can_navigate_to(n)]
    assert reachable == [1, 2, 3, 5, 6]


async def test_permissive_policy_reaches_everything(session):
    nav = StepNavigator(session.store, session.api, session.autosave, PermissiveValidationPolicy(), session.toast)
    assert all(nav.can_navigate_to(n) for n in range(1, 10))
    assert not nav.can_navigate_to(10)


async def test_goto_flushes_autosave(session, nav, backend):
    session.store.update_project_data(project_name="Oak Street")
    session.progress.completed_steps = {1}
    session.progress.current_step = 2
    assert await nav.go_to_step(1) is True
    assert len(backend.requests("POST", "/api/projects")) == 1


# ---------------------------------------------------------------------------
# Next
# ---------------------------------------------------------------------------

async def test_next_blocks_on_validation_errors(session, nav, toasts, backend):
    assert await nav.next_step() is False
    assert session.progress.current_step == 1
    assert "project_name" in session.progress.validation_errors
    assert toasts.titles == ["Validation Error"]
    assert toasts.toasts[0].is_destructive
    assert backend.writes == []


async def test_next_from_step1_creates_project_record(session, nav, backend):
    session.store.update_project_data(step1_fields())
    assert await nav.next_step() is True

    assert session.progress.current_step == 2
    assert session.progress.completed_steps == {1}
    (create,) = backend.requests("POST", "/api/projects")
    assert create.body["projectNumber"] == "2026-014"
    assert create.body["status"] == "Draft"
    assert session.store.draft_project_id in backend.projects


async def test_next_from_step1_updates_existing_project(session, nav, backend):
    session.store.update_project_data(step1_fields())
    await session.autosave.flush()
    pid = session.store.draft_project_id

    assert await nav.next_step() is True
    assert len(backend.requests("POST", "/api/projects")) == 1
    assert backend.projects[pid]["projectNumber"] == "2026-014"


async def test_step1_save_failure_keeps_user_on_step(session, nav, backend, toasts):
    backend.fail("POST", "/api/projects")
    session.store.update_project_data(step1_fields())
    assert await nav.next_step() is False
    assert session.progress.current_step == 1
    assert session.progress.completed_steps == set()
    assert toasts.titles == ["Error"]


async def test_next_caps_at_last_step(session, nav):
    session.progress.current_step = 9
    assert await nav.next_step() is True
    assert session.progress.current_step == 9


async def test_next_marks_step_complete_and_clears_errors(session, nav):
    session.progress.current_step = 2
    session.store.set_validation_errors({"x": "stale"})
    assert await nav.next_step() is True
    assert session.progress.completed_steps == {2}
    assert session.progress.validation_errors == {}


# ---------------------------------------------------------------------------
# Back
# ---------------------------------------------------------------------------

async def test_back_floors_at_first_step(session, nav):
    await nav.prev_step()
    assert session.progress.current_step == 1


async def test_back_flushes_autosave(session, nav, backend):
    session.progress.current_step = 3
    session.store.update_project_data(project_name="Oak Street")
    await nav.prev_step()
    assert session.progress.current_step == 2
    assert len(backend.requests("POST", "/api/projects")) == 1
    assert not session.autosave.pending
