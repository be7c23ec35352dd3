"""Derived-field engine.

``derive_all`` recomputes every field that is a function of other draft
fields. It runs once after each mutation. Every rule compares before it
writes, so a draft that is already consistent comes back unchanged (the same
object), and running it twice is the same as running it once.
"""

from __future__ import annotations

from typing import Any

from cwiz.engine.schedule import estimated_completion_date, warranty_expirations
from cwiz.models import ProjectDraft, ServiceModel, UnitSpec, default_unit

# On-site duration default per service model.
ONSITE_DEFAULT_DAYS = {
    ServiceModel.CRC: 90,
    ServiceModel.CMOS: 60,
}


# ---------------------------------------------------------------------------
# Individual rules
# ---------------------------------------------------------------------------

def reconcile_units(units: list[UnitSpec], total_units: int) -> list[UnitSpec]:
    """Grow with default units or trim from the end until len == total_units."""
    if len(units) < total_units:
        grown = list(units)
        next_id = max((u.id for u in units), default=0) + 1
        while len(grown) < total_units:
            grown.append(default_unit(next_id))
            next_id += 1
        return grown
    if len(units) > total_units:
        return list(units[:total_units])
    return units


def offsite_cost(units: list[UnitSpec]) -> float:
    return sum(u.price or 0 for u in units)


def total_contract_price(draft: ProjectDraft) -> float:
    """Offsite + delivery/install + design fee, plus on-site costs for CMOS."""
    total = draft.preliminary_offsite_cost + draft.delivery_installation_price + draft.design_fee
    if draft.service_model == ServiceModel.CMOS:
        total += draft.site_prep_price + draft.utilities_price + draft.completion_price
    return total


def onsite_default(service_model: ServiceModel, current_days: int) -> int:
    """Snap to this model's default only while holding the other model's default.

    Known limitation: a duration the user typed that happens to equal the
    other model's default is indistinguishable from an untouched default and
    gets overwritten on a model switch.
    """
    for model, days in ONSITE_DEFAULT_DAYS.items():
        if model != service_model and current_days == days:
            return ONSITE_DEFAULT_DAYS[service_model]
    return current_days


# ---------------------------------------------------------------------------
# Single pass
# ---------------------------------------------------------------------------

def derive_all(draft: ProjectDraft, previous_model: ServiceModel | None = None) -> ProjectDraft:
    """Return a draft with every computed field consistent with its inputs.

    The on-site duration default only applies when ``previous_model`` is given
    and differs from the draft's service model, i.e. on a model switch.
    """
    changes: dict[str, Any] = {}

    units = reconcile_units(draft.units, draft.total_units)
    if units is not draft.units:
        changes["units"] = units

    offsite = offsite_cost(units)
    if offsite != draft.preliminary_offsite_cost:
        changes["preliminary_offsite_cost"] = offsite

    staged = draft.model_copy(update=changes) if changes else draft

    total = total_contract_price(staged)
    if total != draft.total_preliminary_contract_price:
        changes["total_preliminary_contract_price"] = total

    if draft.manufacturing_design_payment != draft.design_fee:
        changes["manufacturing_design_payment"] = draft.design_fee

    if draft.contract_price != total:
        changes["contract_price"] = total

    switched = previous_model is not None and previous_model != draft.service_model
    onsite = onsite_default(draft.service_model, draft.onsite_duration_days) if switched \
        else draft.onsite_duration_days
    if onsite != draft.onsite_duration_days:
        changes["onsite_duration_days"] = onsite
        staged = draft.model_copy(update=changes)

    completion = estimated_completion_date(staged)
    if completion != draft.estimated_completion_date:
        changes["estimated_completion_date"] = completion

    for field, expires in warranty_expirations(staged).items():
        if getattr(draft, field) != expires:
            changes[field] = expires

    if not changes:
        return draft
    return draft.model_copy(update=changes)
