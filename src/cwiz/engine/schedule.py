"""Project schedule and warranty date calculations.

The project runs design -> manufacturing -> on-site back to back starting at
the effective date. Warranties start when the project completes.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from cwiz.models import ProjectDraft


def add_calendar_days(start: date, days: int) -> date:
    """Add calendar days."""
    return start + timedelta(days=days)


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of a shorter month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass
class ProjectTimeline:
    start: date
    design_complete: date
    manufacturing_complete: date
    project_complete: date
    design_percent: float
    manufacturing_percent: float
    onsite_percent: float

    @property
    def total_days(self) -> int:
        return (self.project_complete - self.start).days


def total_duration_days(draft: ProjectDraft) -> int:
    return (draft.design_phase_days or 0) + (draft.manufacturing_duration_days or 0) \
        + (draft.onsite_duration_days or 0)


def project_timeline(draft: ProjectDraft) -> ProjectTimeline | None:
    """Phase completion dates, or None until an effective date is set."""
    if not draft.effective_date:
        return None

    design = draft.design_phase_days or 0
    mfg = draft.manufacturing_duration_days or 0
    onsite = draft.onsite_duration_days or 0
    total = design + mfg + onsite

    design_complete = add_calendar_days(draft.effective_date, design)
    mfg_complete = add_calendar_days(design_complete, mfg)
    return ProjectTimeline(
        start=draft.effective_date,
        design_complete=design_complete,
        manufacturing_complete=mfg_complete,
        project_complete=add_calendar_days(mfg_complete, onsite),
        design_percent=design / total * 100 if total else 0.0,
        manufacturing_percent=mfg / total * 100 if total else 0.0,
        onsite_percent=onsite / total * 100 if total else 0.0,
    )


def estimated_completion_date(draft: ProjectDraft) -> date | None:
    if not draft.effective_date:
        return None
    return add_calendar_days(draft.effective_date, total_duration_days(draft))


def warranty_expirations(draft: ProjectDraft) -> dict[str, date | None]:
    """Expiry date per warranty category, keyed by draft field name."""
    complete = estimated_completion_date(draft)
    if complete is None:
        return {
            "warranty_fit_finish_expires": None,
            "warranty_envelope_expires": None,
            "warranty_structural_expires": None,
        }
    return {
        "warranty_fit_finish_expires": add_months(complete, draft.warranty_fit_finish_months or 24),
        "warranty_envelope_expires": add_months(complete, draft.warranty_building_envelope_months or 60),
        "warranty_structural_expires": add_months(complete, draft.warranty_structural_months or 120),
    }
