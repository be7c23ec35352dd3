"""Per-step validation of the project draft.

Each wizard step has its own hard-coded rule set. The rules are wrapped in a
``ValidationPolicy`` chosen when the wizard is built: ``StrictValidationPolicy``
enforces them, ``PermissiveValidationPolicy`` passes every step so the flow
can be exercised end to end before all the forms are wired up.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Protocol

from cwiz.engine.llc import generate_llc_name
from cwiz.models import CompletionUnit, LlcOption, ProjectDraft, WizardProgress
from cwiz.reference.loader import entity_types, federal_districts, us_states

PROJECT_NUMBER_RE = re.compile(r"^\d{4}-\d{3}$")
MILESTONE_TARGET = 95


@dataclass
class StepValidation:
    step: int
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors


class ValidationPolicy(Protocol):
    def validate(self, step: int, draft: ProjectDraft, progress: WizardProgress) -> StepValidation: ...

    @property
    def allows_free_navigation(self) -> bool: ...


# ---------------------------------------------------------------------------
# Step rules
# ---------------------------------------------------------------------------

def _blank(value: str | None) -> bool:
    return not (value or "").strip()


def _check_range(errors: dict[str, str], name: str, value: int, low: int, high: int, message: str) -> None:
    if value < low or value > high:
        errors[name] = message


def _project_info(d: ProjectDraft, p: WizardProgress, errors: dict[str, str]) -> None:
    if _blank(d.project_number):
        errors["project_number"] = "Project number is required"
    elif not PROJECT_NUMBER_RE.match(d.project_number):
        errors["project_number"] = "Project number must be in format YYYY-### (e.g., 2026-001)"
    elif p.number_is_unique is False:
        errors["project_number"] = "This project number already exists"

    name = d.project_name.strip()
    if not name:
        errors["project_name"] = "Project name is required"
    elif len(name) < 3:
        errors["project_name"] = "Project name must be at least 3 characters"
    elif len(name) > 100:
        errors["project_name"] = "Project name must be 100 characters or less"

    _check_range(errors, "total_units", d.total_units, 1, 50, "Total units must be between 1 and 50")
    if not d.agreement_date:
        errors["agreement_date"] = "Agreement date is required"

    if _blank(d.site_address):
        errors["site_address"] = "Site address is required"
    if _blank(d.site_city):
        errors["site_city"] = "City is required"
    if _blank(d.site_state):
        errors["site_state"] = "State is required"
    elif d.site_state.strip().upper() not in {code for code, _ in us_states()}:
        errors["site_state"] = "Unknown state"
    if _blank(d.site_zip):
        errors["site_zip"] = "ZIP code is required"

    if d.billing_address_different:
        if _blank(d.billing_address):
            errors["billing_address"] = "Billing address is required"
        if _blank(d.billing_city):
            errors["billing_city"] = "Billing city is required"
        if _blank(d.billing_state):
            errors["billing_state"] = "Billing state is required"
        if _blank(d.billing_zip):
            errors["billing_zip"] = "Billing ZIP code is required"


def _service_model(d: ProjectDraft, p: WizardProgress, errors: dict[str, str]) -> None:
    if not d.service_model:
        errors["service_model"] = "Service model is required"


def _party_info(d: ProjectDraft, p: WizardProgress, errors: dict[str, str]) -> None:
    legal = d.client_legal_name.strip()
    if not legal:
        errors["client_legal_name"] = "Client legal name is required"
    elif len(legal) < 2:
        errors["client_legal_name"] = "Client legal name must be at least 2 characters"
    if not d.client_state:
        errors["client_state"] = "Client state is required"
    if not d.client_entity_type:
        errors["client_entity_type"] = "Client entity type is required"
    elif d.client_entity_type not in entity_types():
        errors["client_entity_type"] = "Unknown entity type"
    if d.llc_option == LlcOption.EXISTING and not d.selected_existing_llc_id:
        errors["selected_existing_llc_id"] = "Please select an existing LLC"


def _home_models(d: ProjectDraft, p: WizardProgress, errors: dict[str, str]) -> None:
    # Units saved on the backend count, as do units with a model picked in the draft.
    picked = sum(1 for u in d.units if u.model.strip())
    if max(p.db_units_count, picked) < 1:
        errors["units"] = "At least one home model is required"


def _child_llc(d: ProjectDraft, p: WizardProgress, errors: dict[str, str]) -> None:
    name = d.child_llc_name or generate_llc_name(d.site_address)
    if not name.strip():
        errors["child_llc_name"] = "LLC name is required"


def _dates(d: ProjectDraft, p: WizardProgress, errors: dict[str, str]) -> None:
    if not d.effective_date:
        errors["effective_date"] = "Effective date is required"


def _pricing(d: ProjectDraft, p: WizardProgress, errors: dict[str, str]) -> None:
    if d.contract_price <= 0:
        errors["contract_price"] = "Pricing data is missing. Please go back to Step 4 and add units."
    total = d.milestone_total
    if total != MILESTONE_TARGET:
        errors["milestones"] = f"Milestones must sum to {MILESTONE_TARGET}% (currently {total}%)"


def _schedule_warranty(d: ProjectDraft, p: WizardProgress, errors: dict[str, str]) -> None:
    if not d.effective_date:
        errors["effective_date"] = "Effective date is required"

    if d.estimated_completion_unit == CompletionUnit.WEEKS:
        _check_range(errors, "estimated_completion_months", d.estimated_completion_months, 1, 104,
                     "Completion timeframe must be 1-104 weeks")
    else:
        _check_range(errors, "estimated_completion_months", d.estimated_completion_months, 1, 24,
                     "Completion timeframe must be 1-24 months")

    _check_range(errors, "design_phase_days", d.design_phase_days, 30, 180,
                 "Design phase must be 30-180 days")
    _check_range(errors, "manufacturing_duration_days", d.manufacturing_duration_days, 60, 365,
                 "Manufacturing must be 60-365 days")
    _check_range(errors, "onsite_duration_days", d.onsite_duration_days, 30, 180,
                 "On-site must be 30-180 days")
    _check_range(errors, "warranty_fit_finish_months", d.warranty_fit_finish_months, 12, 36,
                 "Fit & finish warranty must be 12-36 months")
    _check_range(errors, "warranty_building_envelope_months", d.warranty_building_envelope_months, 36, 120,
                 "Building envelope warranty must be 36-120 months")
    _check_range(errors, "warranty_structural_months", d.warranty_structural_months, 60, 240,
                 "Structural warranty must be 60-240 months")

    if not d.site_state:
        errors["site_state"] = "Project state is required"
    if not d.project_county and not d.site_county:
        errors["project_county"] = "Project county is required"
    districts = federal_districts(d.project_state or d.site_state)
    if not d.project_federal_district:
        errors["project_federal_district"] = "Federal judicial district is required"
    elif districts and d.project_federal_district not in districts:
        errors["project_federal_district"] = "District is not in the project state"
    if not d.arbitration_provider:
        errors["arbitration_provider"] = "Arbitration provider is required"


STEP_RULES: dict[int, Callable[[ProjectDraft, WizardProgress, dict[str, str]], None]] = {
    1: _project_info,
    2: _service_model,
    3: _party_info,
    4: _home_models,
    5: _child_llc,
    6: _dates,
    7: _pricing,
    8: _schedule_warranty,
}


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

class StrictValidationPolicy:
    """Enforces the per-step rules. Step 9 (review) has no rules of its own."""

    allows_free_navigation = False

    def validate(self, step: int, draft: ProjectDraft, progress: WizardProgress) -> StepValidation:
        result = StepValidation(step=step)
        rule = STEP_RULES.get(step)
        if rule is not None:
            rule(draft, progress, result.errors)
        return result


class PermissiveValidationPolicy:
    """Every step is valid and every step is reachable."""

    allows_free_navigation = True

    def validate(self, step: int, draft: ProjectDraft, progress: WizardProgress) -> StepValidation:
        return StepValidation(step=step)


def policy_for_mode(mode: str) -> ValidationPolicy:
    """Build the policy named by ``Settings.validation_mode``."""
    if mode.lower() == "permissive":
        return PermissiveValidationPolicy()
    if mode.lower() == "strict":
        return StrictValidationPolicy()
    raise ValueError(f"Unknown validation mode: {mode!r} (expected 'strict' or 'permissive')")
