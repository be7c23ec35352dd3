"""Mapping between the project draft and backend records.

Outbound: build the JSON bodies for project, client, financials, details,
LLC, and contractor writes. Inbound: turn fetched records back into draft
field updates when resuming a saved project.
"""

from __future__ import annotations

import random
import string
import time
from typing import Any

from cwiz.engine.llc import generate_llc_name
from cwiz.integrations.api_client import from_cents, to_cents
from cwiz.models import LlcOption, ProjectDraft, ServiceModel, UnitSpec
from cwiz.reference.loader import state_name

DRAFT_STATUS = "Draft"

# Fields whose change means the draft is worth saving again.
FINGERPRINT_FIELDS = (
    "project_name",
    "project_number",
    "service_model",
    "client_legal_name",
    "client_email",
    "site_address",
    "site_city",
    "site_state",
    "design_fee",
    "preliminary_offsite_cost",
    "effective_date",
)


def fingerprint(draft: ProjectDraft) -> str:
    """Narrow change-detection key over FINGERPRINT_FIELDS."""
    return draft.model_dump_json(include=set(FINGERPRINT_FIELDS))


def _suffix(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=length))


def draft_project_number(project_number: str) -> str:
    """Project number for a draft record, kept distinct from real numbers."""
    if not project_number:
        return f"DRAFT-{int(time.time() * 1000)}-{_suffix()}"
    if "DRAFT" in project_number:
        return project_number
    return f"{project_number}-DRAFT-{_suffix()}"


def resolved_llc_name(draft: ProjectDraft) -> str:
    return draft.child_llc_name or generate_llc_name(draft.site_address)


# ---------------------------------------------------------------------------
# Outbound payloads
# ---------------------------------------------------------------------------

def project_payload(draft: ProjectDraft, *, project_number: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": draft.project_name,
        "state": draft.site_state or None,
        "onSiteSelection": (draft.service_model or ServiceModel.CRC).value,
    }
    if project_number is not None:
        payload["projectNumber"] = project_number
        payload["status"] = DRAFT_STATUS
    return payload


def client_payload(draft: ProjectDraft, project_id: int | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "legalName": draft.client_legal_name,
        "entityType": draft.client_entity_type,
        "formationState": draft.client_state,
        "address": draft.client_address,
        "city": draft.client_city,
        "state": draft.client_state,
        "zip": draft.client_zip,
        "email": draft.client_email,
        "phone": draft.client_phone,
        "trusteeName": draft.client_signer_name,
        "trusteeTitle": draft.client_signer_title,
    }
    if project_id is not None:
        payload["projectId"] = project_id
    return payload


def has_financials(draft: ProjectDraft) -> bool:
    return bool(draft.design_fee or draft.preliminary_offsite_cost or draft.delivery_installation_price)


def financials_payload(draft: ProjectDraft, project_id: int) -> dict[str, Any]:
    return {
        "projectId": project_id,
        "designFee": to_cents(draft.design_fee),
        "designRevisionRounds": draft.design_revision_rounds or 3,
        "prelimOffsite": to_cents(draft.preliminary_offsite_cost),
        "prelimOnsite": to_cents(draft.preliminary_onsite_cost),
        "deliveryInstallCost": to_cents(draft.delivery_installation_price),
        "sitePrepCost": to_cents(draft.site_prep_price),
        "utilitiesCost": to_cents(draft.utilities_price),
        "onsiteCompletionCost": to_cents(draft.completion_price),
        "prelimContractPrice": to_cents(draft.total_preliminary_contract_price),
        "milestone1Percent": draft.milestone1_percent,
        "milestone2Percent": draft.milestone2_percent,
        "milestone3Percent": draft.milestone3_percent,
        "milestone4Percent": draft.milestone4_percent,
        "milestone5Percent": draft.milestone5_percent,
        "retainagePercent": draft.retainage_percent,
    }


def site_details_payload(draft: ProjectDraft, project_id: int) -> dict[str, Any]:
    return {
        "projectId": project_id,
        "deliveryAddress": draft.site_address,
        "deliveryCity": draft.site_city,
        "deliveryState": draft.site_state,
        "deliveryZip": draft.site_zip,
        "deliveryCounty": draft.site_county,
        "deliveryApn": draft.site_apn,
        "totalUnits": draft.total_units,
    }


def full_details_payload(draft: ProjectDraft, project_id: int) -> dict[str, Any]:
    """Site details plus home specs, schedule, and jurisdiction for generation."""
    first = draft.units[0] if draft.units else None
    payload = site_details_payload(draft, project_id)
    payload.update({
        "homeModel": (first.model if first else "") or draft.home_model,
        "homeSqFt": (first.square_footage if first else 0) or draft.home_square_footage,
        "homeBedrooms": (first.bedrooms if first else 0) or draft.home_bedrooms,
        "homeBathrooms": (first.bathrooms if first else 0) or draft.home_bathrooms,
        "agreementExecutionDate": _iso(draft.effective_date),
        "estimatedDeliveryDate": _iso(draft.target_delivery_date),
        "productionStartDate": _iso(draft.manufacturing_start_date),
        "governingLawState": draft.project_state or draft.site_state,
        "arbitrationLocation": (f"{draft.project_county}, {draft.project_state}"
                                if draft.project_county else draft.arbitration_provider.value),
    })
    return payload


def llc_payload(draft: ProjectDraft, name: str) -> dict[str, Any]:
    return {
        "name": name,
        "projectName": draft.project_name,
        "projectAddress": draft.site_address,
        "status": "forming",
        "stateOfFormation": state_name(draft.child_llc_state, default="Delaware"),
        "einNumber": draft.child_llc_ein or None,
        "address": draft.site_address,
        "city": draft.site_city,
        "state": draft.site_state,
        "zip": draft.site_zip,
    }


def child_llc_mirror_payload(draft: ProjectDraft, project_id: int, llc: dict) -> dict[str, Any]:
    """Copy of an existing LLC for the project's child-LLC record.

    The LLC endpoints answer in snake_case or camelCase depending on the route.
    """
    return {
        "projectId": project_id,
        "legalName": llc.get("name"),
        "formationState": llc.get("state_of_formation") or llc.get("stateOfFormation") or "Delaware",
        "entityType": "LLC",
        "ein": llc.get("ein_number") or llc.get("einNumber") or None,
        "address": llc.get("address") or draft.site_address,
        "city": llc.get("city") or draft.site_city,
        "state": llc.get("state") or draft.site_state,
        "zip": llc.get("zip") or draft.site_zip,
    }


def contractor_payloads(draft: ProjectDraft, project_id: int) -> list[dict[str, Any]]:
    payloads = []
    if draft.manufacturer_name:
        payloads.append({
            "projectId": project_id,
            "contractorType": "manufacturer",
            "legalName": draft.manufacturer_name,
            "address": draft.manufacturer_address or "",
            "contractorEntityId": draft.manufacturer_entity_id or None,
        })
    if draft.onsite_contractor_name:
        payloads.append({
            "projectId": project_id,
            "contractorType": "onsite_general",
            "legalName": draft.onsite_contractor_name,
            "address": draft.onsite_contractor_address or "",
            "contractorEntityId": draft.onsite_contractor_entity_id or None,
        })
    return payloads


def _iso(value) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Inbound: records -> draft updates
# ---------------------------------------------------------------------------

def record_id(record: Any) -> Any:
    """The ``id`` of a created record, or None if the reply is not a record."""
    return record.get("id") if isinstance(record, dict) else None



def updates_from_records(project: dict, client: dict | None, financials: dict | None,
                         details: dict | None) -> dict[str, Any]:
    """Draft field updates from a saved project's records (cents -> dollars)."""
    updates: dict[str, Any] = {
        "project_name": project.get("name") or "",
        "project_number": project.get("projectNumber") or "",
        "service_model": project.get("onSiteSelection") or ServiceModel.CRC.value,
    }

    if client:
        updates.update({
            "client_legal_name": client.get("legalName") or "",
            "client_entity_type": client.get("entityType") or "",
            "client_email": client.get("email") or "",
            "client_phone": client.get("phone") or "",
            "client_address": client.get("address") or "",
            "client_city": client.get("city") or "",
            "client_state": client.get("state") or "",
            "client_zip": client.get("zip") or "",
            "client_signer_name": client.get("trusteeName") or "",
            "client_signer_title": client.get("trusteeTitle") or "",
        })

    if details:
        total_units = details.get("totalUnits") or 1
        updates.update({
            "site_address": details.get("deliveryAddress") or "",
            "site_city": details.get("deliveryCity") or "",
            "site_state": details.get("deliveryState") or "",
            "site_zip": details.get("deliveryZip") or "",
            "site_county": details.get("deliveryCounty") or "",
            "site_apn": details.get("deliveryApn") or "",
            "total_units": total_units,
        })
        if details.get("homeModel") or details.get("homeSqFt"):
            # Unit prices are not stored with the details record.
            updates["units"] = [
                UnitSpec(
                    id=i + 1,
                    model=details.get("homeModel") or "",
                    square_footage=details.get("homeSqFt") or 1500,
                    bedrooms=details.get("homeBedrooms") or 3,
                    bathrooms=details.get("homeBathrooms") or 2,
                    price=0,
                )
                for i in range(total_units)
            ]

    if financials:
        updates.update({
            "design_fee": from_cents(financials.get("designFee"), 5000),
            "design_revision_rounds": financials.get("designRevisionRounds") or 3,
            "preliminary_offsite_cost": from_cents(financials.get("prelimOffsite")),
            "preliminary_onsite_cost": from_cents(financials.get("prelimOnsite")),
            "delivery_installation_price": from_cents(financials.get("deliveryInstallCost"), 25000),
            "site_prep_price": from_cents(financials.get("sitePrepCost")),
            "utilities_price": from_cents(financials.get("utilitiesCost")),
            "completion_price": from_cents(financials.get("onsiteCompletionCost")),
            "milestone1_percent": _or(financials.get("milestone1Percent"), 20),
            "milestone2_percent": _or(financials.get("milestone2Percent"), 20),
            "milestone3_percent": _or(financials.get("milestone3Percent"), 20),
            "milestone4_percent": _or(financials.get("milestone4Percent"), 20),
            "milestone5_percent": _or(financials.get("milestone5Percent"), 15),
            "retainage_percent": _or(financials.get("retainagePercent"), 5),
        })

    return updates


def updates_from_llc(llc: dict) -> dict[str, Any]:
    return {
        "llc_option": LlcOption.EXISTING.value,
        "selected_existing_llc_id": str(llc.get("id", "")),
        "child_llc_name": llc.get("name") or "",
        "child_llc_state": llc.get("state") or "DE",
        "child_llc_ein": llc.get("ein") or llc.get("einNumber") or llc.get("ein_number") or "",
    }


def _or(value, default):
    """Null-coalesce (keeps explicit zeros)."""
    return default if value is None else value
