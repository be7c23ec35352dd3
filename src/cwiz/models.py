"""Core data models for the project draft, wizard progress, and generated contracts."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Serializes with the camelCase names the backend and the draft cache use."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ServiceModel(str, Enum):
    CRC = "CRC"    # client-managed on-site work
    CMOS = "CMOS"  # full-service, on-site construction included


class LlcOption(str, Enum):
    NEW = "new"
    EXISTING = "existing"


class ArbitrationProvider(str, Enum):
    JAMS = "JAMS"
    AAA = "AAA"


class CompletionUnit(str, Enum):
    MONTHS = "months"
    WEEKS = "weeks"


class GenerationState(str, Enum):
    IDLE = "idle"
    PRE_GENERATION = "pre-generation"
    GENERATING = "generating"
    SUCCESS = "success"
    ERROR = "error"


class ToastVariant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

DEFAULT_UNIT_SQFT = 1500
DEFAULT_UNIT_BEDROOMS = 3
DEFAULT_UNIT_BATHROOMS = 2


class UnitSpec(_CamelModel):
    # Local correlation key only; the server assigns its own primary keys.
    id: int
    model: str = ""
    square_footage: int = DEFAULT_UNIT_SQFT
    bedrooms: int = DEFAULT_UNIT_BEDROOMS
    bathrooms: float = DEFAULT_UNIT_BATHROOMS
    price: float = 0
    onsite_estimate: float | None = None


def default_unit(unit_id: int) -> UnitSpec:
    return UnitSpec(id=unit_id)


# ---------------------------------------------------------------------------
# Project draft (the aggregate being edited)
# ---------------------------------------------------------------------------

class ProjectDraft(_CamelModel):
    # Identity
    project_number: str = ""
    project_name: str = ""
    project_type: str = "Single Family Residence"
    total_units: int = Field(default=1, ge=1)
    agreement_date: date | None = Field(default_factory=date.today)
    service_model: ServiceModel = ServiceModel.CRC

    # Client
    client_legal_name: str = ""
    client_state: str = ""
    client_entity_type: str = "Individual"
    client_full_name: str = ""
    client_title: str = ""
    client_address: str = ""
    client_city: str = ""
    client_zip: str = ""
    client_signer_name: str = ""
    client_signer_title: str = ""
    client_email: str = ""
    client_phone: str = ""

    # Child LLC
    llc_option: LlcOption = LlcOption.NEW
    selected_existing_llc_id: str = ""
    child_llc_name: str = ""
    child_llc_state: str = "DE"
    child_llc_ein: str = ""
    child_llc_address: str = ""

    # Site
    site_address: str = ""
    site_city: str = ""
    site_state: str = ""
    site_zip: str = ""
    site_county: str = ""
    site_apn: str = ""
    billing_address_different: bool = False
    billing_address: str = ""
    billing_city: str = ""
    billing_state: str = ""
    billing_zip: str = ""

    # Home
    home_model: str = ""
    home_square_footage: int = 0
    home_bedrooms: int = 0
    home_bathrooms: float = 0
    home_configuration: str = ""
    units: list[UnitSpec] = Field(default_factory=lambda: [default_unit(1)])

    # Dates
    effective_date: date | None = None
    target_delivery_date: date | None = None
    manufacturing_start_date: date | None = None
    installation_date: date | None = None

    # Financial terms (dollars; the backend stores integer cents)
    contract_price: float = 0
    design_fee: float = 5000
    design_revision_rounds: int = 3
    preliminary_offsite_cost: float = 0
    preliminary_onsite_cost: float = 0
    delivery_installation_price: float = 25000
    site_prep_price: float = 0
    utilities_price: float = 0
    completion_price: float = 0
    total_preliminary_contract_price: float = 0
    deposit_amount: float = 0
    payment_schedule: str = ""

    # Milestones: five payments summing to 95, the last 5% is retainage
    milestone1_percent: int = 20
    milestone2_percent: int = 20
    milestone3_percent: int = 20
    milestone4_percent: int = 20
    milestone5_percent: int = 15
    retainage_percent: int = 5
    retainage_days: int = 60
    manufacturing_design_payment: float = 5000
    manufacturing_production_start: float = 25000
    manufacturing_production_complete: float = 50000
    manufacturing_delivery_ready: float = 20000

    # Schedule
    warranty_period_years: int = 1
    warranty_start_date: date | None = None
    estimated_completion_months: int = 12
    estimated_completion_unit: CompletionUnit = CompletionUnit.MONTHS
    design_phase_days: int = 90
    manufacturing_duration_days: int = 120
    onsite_duration_days: int = 90
    estimated_completion_date: date | None = None

    # Warranty
    warranty_fit_finish_months: int = 24
    warranty_building_envelope_months: int = 60
    warranty_structural_months: int = 120
    warranty_fit_finish_expires: date | None = None
    warranty_envelope_expires: date | None = None
    warranty_structural_expires: date | None = None

    # Jurisdiction
    project_state: str = ""
    project_county: str = ""
    project_federal_district: str = ""
    arbitration_provider: ArbitrationProvider = ArbitrationProvider.JAMS

    # Contractors
    general_contractor_name: str = ""
    general_contractor_license: str = ""
    contractor_name: str = ""
    contractor_license: str = ""
    contractor_address: str = ""
    contractor_insurance: str = ""
    manufacturer_name: str = "Dvele AZ, LLC"
    manufacturer_address: str = ""
    manufacturer_entity_id: int | None = None
    onsite_contractor_name: str = ""
    onsite_contractor_address: str = ""
    onsite_contractor_entity_id: int | None = None

    # Insurance
    insurance_provider: str = ""
    insurance_policy_number: str = ""
    insurance_coverage_amount: float = 0

    @property
    def milestone_total(self) -> int:
        return (self.milestone1_percent + self.milestone2_percent + self.milestone3_percent
                + self.milestone4_percent + self.milestone5_percent)

    @property
    def is_full_service(self) -> bool:
        return self.service_model == ServiceModel.CMOS


# ---------------------------------------------------------------------------
# Wizard progress
# ---------------------------------------------------------------------------

FIRST_STEP = 1
LAST_STEP = 9


class WizardProgress(BaseModel):
    current_step: int = FIRST_STEP
    completed_steps: set[int] = Field(default_factory=set)
    validation_errors: dict[str, str] = Field(default_factory=dict)
    confirmation_checked: bool = False
    generation_state: GenerationState = GenerationState.PRE_GENERATION
    generation_progress: int = 0
    generation_step: int = 0
    generation_error: str | None = None
    db_units_count: int = 0
    number_is_unique: bool | None = None


# ---------------------------------------------------------------------------
# Generated contract reference
# ---------------------------------------------------------------------------

class GeneratedContractRef(BaseModel):
    id: str
    type: str  # ONE, MANUFACTURING, ONSITE
    filename: str
    download_url: str
    size: int
    generated_at: datetime


# ---------------------------------------------------------------------------
# Crash-recovery snapshot
# ---------------------------------------------------------------------------

class DraftSnapshot(_CamelModel):
    project_data: ProjectDraft
    current_step: int = FIRST_STEP
    completed_steps: list[int] = Field(default_factory=list)
    draft_project_id: int | None = None
    draft_llc_id: int | None = None
    draft_llc_name: str = ""


# ---------------------------------------------------------------------------
# Toast (user-facing notification)
# ---------------------------------------------------------------------------

class Toast(BaseModel):
    title: str
    description: str = ""
    variant: ToastVariant = ToastVariant.DEFAULT

    @property
    def is_destructive(self) -> bool:
        return self.variant == ToastVariant.DESTRUCTIVE


# ---------------------------------------------------------------------------
# Step definitions
# ---------------------------------------------------------------------------

class StepDefinition(BaseModel):
    number: int
    title: str
    description: str = ""
