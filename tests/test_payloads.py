from __future__ import annotations

from datetime import date

from cwiz.integrations.api_client import from_cents, to_cents
from cwiz.models import ProjectDraft, ServiceModel, UnitSpec
from cwiz.wizard import payloads


def test_cents_conversion():
    assert to_cents(5000) == 500_000
    assert to_cents(0) is None
    assert to_cents(None) is None
    assert from_cents(123_456) == 1234.56
    assert from_cents(None, 25000) == 25000
    assert from_cents(0, 5000) == 5000


def test_fingerprint_ignores_fields_outside_subset():
    draft = ProjectDraft(project_name="Oak")
    assert payloads.fingerprint(draft) == payloads.fingerprint(draft.model_copy(update={"site_apn": "X"}))
    assert payloads.fingerprint(draft) != payloads.fingerprint(draft.model_copy(update={"site_city": "Napa"}))


def test_draft_project_number():
    assert payloads.draft_project_number("2026-014").startswith("2026-014-DRAFT-")
    assert len(payloads.draft_project_number("2026-014")) == len("2026-014-DRAFT-") + 6
    assert payloads.draft_project_number("2026-014-DRAFT-ABC123") == "2026-014-DRAFT-ABC123"
    assert payloads.draft_project_number("").startswith("DRAFT-")


def test_project_payload():
    draft = ProjectDraft(project_name="Oak", service_model=ServiceModel.CMOS)
    assert payloads.project_payload(draft) == {"name": "Oak", "state": None, "onSiteSelection": "CMOS"}
    with_number = payloads.project_payload(draft, project_number="X-DRAFT-1")
    assert with_number["projectNumber"] == "X-DRAFT-1"
    assert with_number["status"] == "Draft"


def test_financials_payload_uses_cents():
    draft = ProjectDraft(design_fee=5000, preliminary_offsite_cost=350_000.25,
                         preliminary_onsite_cost=80_000, delivery_installation_price=25_000,
                         total_preliminary_contract_price=380_000.25)
    body = payloads.financials_payload(draft, 3)
    assert body["projectId"] == 3
    assert body["designFee"] == 500_000
    assert body["prelimOffsite"] == 35_000_025
    assert body["prelimOnsite"] == 8_000_000
    assert body["deliveryInstallCost"] == 2_500_000
    assert body["sitePrepCost"] is None
    assert body["milestone5Percent"] == 15


def test_full_details_prefers_first_unit():
    draft = ProjectDraft(units=[UnitSpec(id=1, model="Model X", square_footage=2000)],
                         home_model="ignored", effective_date=date(2026, 2, 1),
                         project_state="CA", project_county="Marin")
    body = payloads.full_details_payload(draft, 3)
    assert body["homeModel"] == "Model X"
    assert body["homeSqFt"] == 2000
    assert body["agreementExecutionDate"] == "2026-02-01"
    assert body["estimatedDeliveryDate"] is None
    assert body["arbitrationLocation"] == "Marin, CA"


def test_llc_payload_names_state_of_formation():
    draft = ProjectDraft(child_llc_state="NV", site_address="1 Main St")
    assert payloads.llc_payload(draft, "DP 1 Main St LLC")["stateOfFormation"] == "Nevada"
    assert payloads.llc_payload(draft.model_copy(update={"child_llc_state": "ZZ"}), "x")["stateOfFormation"] \
        == "Delaware"


def test_resolved_llc_name_falls_back_to_address():
    assert payloads.resolved_llc_name(ProjectDraft(site_address="12 Elm St.")) == "DP 12 Elm St LLC"
    assert payloads.resolved_llc_name(ProjectDraft(child_llc_name="Given LLC", site_address="x")) == "Given LLC"


def test_contractor_payloads():
    assert [p["contractorType"] for p in payloads.contractor_payloads(ProjectDraft(), 1)] == ["manufacturer"]
    both = payloads.contractor_payloads(ProjectDraft(onsite_contractor_name="Bay", manufacturer_name=""), 1)
    assert [p["contractorType"] for p in both] == ["onsite_general"]


def test_updates_from_records_defaults():
    updates = payloads.updates_from_records({"name": "P"}, None, {"designFee": None}, None)
    assert updates["design_fee"] == 5000
    assert updates["delivery_installation_price"] == 25000
    assert updates["milestone1_percent"] == 20
    assert updates["service_model"] == "CRC"
    assert "client_legal_name" not in updates
