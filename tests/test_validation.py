from __future__ import annotations

from datetime import date

import pytest
from conftest import step1_fields

from cwiz.engine.derivation import derive_all
from cwiz.engine.validation import (
    PermissiveValidationPolicy,
    StrictValidationPolicy,
    policy_for_mode,
)
from cwiz.models import LlcOption, ProjectDraft, UnitSpec, WizardProgress

strict = StrictValidationPolicy()


def _check(step: int, progress: WizardProgress | None = None, **fields):
    draft = derive_all(ProjectDraft(**fields))
    return strict.validate(step, draft, progress or WizardProgress())


# ---------------------------------------------------------------------------
# Step 1: project info
# ---------------------------------------------------------------------------

def test_step1_valid():
    assert _check(1, **step1_fields()).valid


@pytest.mark.parametrize("number", ["", "26-14", "2026-14", "2026-0140", "ABCD-123"])
def test_step1_rejects_bad_project_number(number):
    result = _check(1, **step1_fields(project_number=number))
    assert "project_number" in result.errors


def test_step1_rejects_taken_number():
    result = _check(1, WizardProgress(number_is_unique=False), **step1_fields())
    assert result.errors["project_number"] == "This project number already exists"


def test_step1_unknown_uniqueness_does_not_block():
    assert _check(1, WizardProgress(number_is_unique=None), **step1_fields()).valid


@pytest.mark.parametrize("name,ok", [("ab", False), ("abc", True), ("x" * 100, True), ("x" * 101, False)])
def test_step1_name_length(name, ok):
    result = _check(1, **step1_fields(project_name=name))
    assert ("project_name" not in result.errors) is ok


def test_step1_rejects_unknown_state():
    assert _check(1, **step1_fields(site_state="XX")).errors == {"site_state": "Unknown state"}
    assert _check(1, **step1_fields(site_state="ca")).valid


def test_step1_billing_required_when_different():
    result = _check(1, **step1_fields(billing_address_different=True))
    assert {"billing_address", "billing_city", "billing_state", "billing_zip"} <= result.errors.keys()


def test_step1_units_range():
    assert "total_units" in _check(1, **step1_fields(total_units=51)).errors


# ---------------------------------------------------------------------------
# Steps 3-6
# ---------------------------------------------------------------------------

def test_step3_existing_llc_needs_selection():
    result = _check(3, client_legal_name="Acme LLC", client_state="CA", llc_option=LlcOption.EXISTING)
    assert result.errors == {"selected_existing_llc_id": "Please select an existing LLC"}


def test_step3_rejects_unknown_entity_type():
    result = _check(3, client_legal_name="Acme", client_state="CA", client_entity_type="Guild")
    assert result.errors == {"client_entity_type": "Unknown entity type"}


def test_step4_needs_a_home_model():
    assert _check(4).errors == {"units": "At least one home model is required"}


def test_step4_accepts_model_picked_in_draft():
    assert _check(4, units=[UnitSpec(id=1, model="Dvele Model X")]).valid


def test_step4_accepts_units_saved_on_backend():
    assert _check(4, WizardProgress(db_units_count=2)).valid


def test_step5_generated_llc_name_counts():
    assert _check(5, site_address="123 Oak St").valid
    assert "child_llc_name" in _check(5).errors


def test_step6_needs_effective_date():
    assert "effective_date" in _check(6, effective_date=None).errors


# ---------------------------------------------------------------------------
# Step 7: pricing
# ---------------------------------------------------------------------------

def test_milestones_summing_to_95_validate():
    assert _check(7, units=[UnitSpec(id=1, price=100_000)]).valid


def test_milestones_summing_to_100_fail_with_actual_sum():
    result = _check(7, units=[UnitSpec(id=1, price=100_000)], milestone5_percent=20)
    assert result.errors == {"milestones": "Milestones must sum to 95% (currently 100%)"}


def test_pricing_requires_positive_contract_price():
    result = _check(7, design_fee=0, delivery_installation_price=0)
    assert "contract_price" in result.errors


# ---------------------------------------------------------------------------
# Step 8: schedule and warranty
# ---------------------------------------------------------------------------

def _step8_fields(**overrides):
    fields = dict(effective_date=date(2026, 1, 15), site_state="CA", project_county="San Francisco",
                  project_federal_district="Northern District of California")
    fields.update(overrides)
    return fields


def test_step8_defaults_valid():
    assert _check(8, **_step8_fields()).valid


@pytest.mark.parametrize("field,value", [
    ("design_phase_days", 29),
    ("manufacturing_duration_days", 366),
    ("onsite_duration_days", 181),
    ("warranty_fit_finish_months", 11),
    ("warranty_building_envelope_months", 121),
    ("warranty_structural_months", 59),
    ("estimated_completion_months", 25),
])
def test_step8_ranges(field, value):
    assert field in _check(8, **_step8_fields(**{field: value})).errors


def test_step8_weeks_allow_longer_timeframe():
    assert _check(8, **_step8_fields(estimated_completion_unit="weeks", estimated_completion_months=52)).valid


def test_step8_district_must_belong_to_state():
    result = _check(8, **_step8_fields(project_federal_district="District of Nevada"))
    assert result.errors == {"project_federal_district": "District is not in the project state"}
    assert _check(8, **_step8_fields(project_state="NV", project_federal_district="District of Nevada")).valid


def test_step8_site_county_substitutes_for_project_county():
    assert _check(8, **_step8_fields(project_county="", site_county="Marin")).valid


def test_review_step_has_no_rules():
    assert _check(9).valid


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

def test_permissive_passes_everything():
    policy = PermissiveValidationPolicy()
    assert policy.allows_free_navigation
    assert all(policy.validate(n, ProjectDraft(), WizardProgress()).valid for n in range(1, 10))


def test_policy_for_mode():
    assert isinstance(policy_for_mode("strict"), StrictValidationPolicy)
    assert isinstance(policy_for_mode("Permissive"), PermissiveValidationPolicy)
    with pytest.raises(ValueError):
        policy_for_mode("lenient")
