"""Contract generation pipeline.

The explicit "generate contracts" action. Six stages run strictly in order
because each consumes ids produced by the one before:

    0  create/confirm the project record
    1  save client information
    2  resolve the child LLC (link an existing one or create a new one)
    3  save financial terms and site/home details
    4  save contractor records
    5  create one contract record per document type

Progress moves at fixed checkpoints. Any stage failure ends in the ``error``
state with the message captured. Nothing is rolled back: records created by
earlier stages stay.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from cwiz.errors import ApiError, ConfirmationRequiredError, GenerationError
from cwiz.integrations import notifications
from cwiz.integrations.api_client import ApiClient
from cwiz.integrations.notifications import ToastSink
from cwiz.models import (
    GeneratedContractRef,
    GenerationState,
    LlcOption,
    ProjectDraft,
    ServiceModel,
)
from cwiz.wizard import payloads
from cwiz.wizard.state import DraftStore

log = logging.getLogger(__name__)

STAGE_LABELS = (
    "Creating project record",
    "Saving client information",
    "Creating Child LLC",
    "Saving financial terms",
    "Saving contractors",
    "Generating contract documents",
)

# contract type -> document tag
CONTRACT_TYPES = {
    "one_agreement": "ONE",
    "manufacturing_sub": "MANUFACTURING",
    "onsite_sub": "ONSITE",
}

# Placeholder until the backend reports document sizes.
ESTIMATED_DOCUMENT_BYTES = 200_000

INVALIDATE_ON_SUCCESS = ("/api/contracts", "/api/projects", "/api/dashboard/stats", "/api/llcs")


def contract_types_for(service_model: ServiceModel) -> list[str]:
    types = ["one_agreement", "manufacturing_sub"]
    if service_model == ServiceModel.CMOS:
        types.append("onsite_sub")
    return types


def contract_filename(draft: ProjectDraft, contract_type: str) -> str:
    name = re.sub(r"\s+", "_", draft.project_name) if draft.project_name else "Project"
    return f"{name}_{contract_type}_{draft.project_number}.docx"


class GenerationPipeline:
    def __init__(self, store: DraftStore, api: ApiClient, toast: ToastSink) -> None:
        self.store = store
        self.api = api
        self.toast = toast
        self.contracts: list[GeneratedContractRef] = []
        self.project_id: int | None = None
        self.linked_llc_id: int | None = None
        self.llc_name = ""
        self.error: GenerationError | None = None

    @property
    def state(self) -> GenerationState:
        return self.store.progress.generation_state

    def _stage(self, index: int, progress: int | None = None) -> None:
        p = self.store.progress
        p.generation_step = index
        if progress is not None:
            p.generation_progress = progress
        log.info("Generation stage %d: %s", index, STAGE_LABELS[index])

    def _checkpoint(self, progress: int) -> None:
        self.store.progress.generation_progress = progress

    async def run(self) -> list[GeneratedContractRef]:
        """Generate the contract package. Requires the review confirmation."""
        progress = self.store.progress
        if not progress.confirmation_checked:
            raise ConfirmationRequiredError("Confirm the review before generating contracts")

        progress.generation_state = GenerationState.GENERATING
        progress.generation_progress = 0
        progress.generation_step = 0
        progress.generation_error = None
        self.contracts = []
        self.linked_llc_id = None
        self.llc_name = ""
        self.error = None

        draft = self.store.draft
        stage = 0
        try:
            self._stage(0, 10)
            project_id = await self._confirm_project(draft)
            self.project_id = project_id
            self._checkpoint(20)

            stage = 1
            self._stage(1)
            await self.api.create_client(project_id, payloads.client_payload(
                draft.model_copy(update={"client_legal_name": draft.client_legal_name or "Client"}),
                project_id))
            self._checkpoint(35)

            stage = 2
            self._stage(2)
            await self._resolve_llc(draft, project_id)
            self._checkpoint(50)

            stage = 3
            self._stage(3)
            await self.api.save_financials(project_id, payloads.financials_payload(draft, project_id))
            self._checkpoint(60)
            await self.api.upsert_details(project_id, payloads.full_details_payload(draft, project_id))
            self._checkpoint(65)

            stage = 4
            self._stage(4)
            for body in payloads.contractor_payloads(draft, project_id):
                await self.api.add_contractor(project_id, body)
            self._checkpoint(70)

            stage = 5
            self._stage(5)
            self.contracts = await self._create_documents(draft, project_id)
            self._checkpoint(90)

            # finalize
            self._checkpoint(100)
        except Exception as e:
            # Malformed replies surface as ValueError or AttributeError, not only ApiError.
            self.error = GenerationError(stage, STAGE_LABELS[stage], e)
            log.error("Contract generation failed: %s", self.error, exc_info=True)
            progress.generation_error = str(e)
            progress.generation_state = GenerationState.ERROR
            self.toast(notifications.destructive(
                "Generation Failed", "There was an error generating your contracts. Please try again."))
            return []

        progress.generation_state = GenerationState.SUCCESS
        self.api.invalidate(*INVALIDATE_ON_SUCCESS)

        llc_message = ""
        if self.linked_llc_id is not None:
            llc_message = (f' Child LLC "{self.llc_name}" was created.'
                           if draft.llc_option == LlcOption.NEW else " Linked to existing LLC.")
        self.toast(notifications.info(
            "Contracts Generated Successfully",
            f"Your contract package has been saved and is ready for review.{llc_message}"))
        return self.contracts

    # -----------------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------------

    async def _confirm_project(self, draft: ProjectDraft) -> int:
        body = payloads.project_payload(draft)
        body["projectNumber"] = draft.project_number
        body["state"] = draft.site_state
        if self.store.draft_project_id is not None:
            await self.api.update_project(self.store.draft_project_id, body)
            return self.store.draft_project_id

        body["status"] = payloads.DRAFT_STATUS
        created = await self.api.create_project(body)
        project_id = payloads.record_id(created)
        if project_id is None:
            raise ApiError("Failed to create project", method="POST", path="/api/projects")
        self.store.draft_project_id = project_id
        return project_id

    async def _resolve_llc(self, draft: ProjectDraft, project_id: int) -> None:
        if draft.llc_option == LlcOption.EXISTING and draft.selected_existing_llc_id:
            try:
                llc_id = int(draft.selected_existing_llc_id)
            except ValueError as e:
                raise ApiError(f"Invalid LLC id {draft.selected_existing_llc_id!r}") from e
            await self.api.update_project(project_id, {"llcId": llc_id})
            self.linked_llc_id = llc_id
            self.llc_name = "existing LLC"
            await self._mirror_existing_llc(draft, project_id, llc_id)
            return

        if draft.llc_option == LlcOption.NEW:
            name = payloads.resolved_llc_name(draft)
            if not name:
                return
            if self.store.draft_llc_id is not None and self.store.draft_llc_name == name:
                llc_id = self.store.draft_llc_id
            else:
                llc = await self.api.create_llc(payloads.llc_payload(draft, name))
                llc_id = payloads.record_id(llc)
                if llc_id is None:
                    raise ApiError("LLC create returned no id", method="POST", path="/api/llcs")
                self.api.invalidate("/api/llcs")
                self.store.draft_llc_id = llc_id
                self.store.draft_llc_name = name
            await self.api.update_project(project_id, {"llcId": llc_id})
            self.linked_llc_id = llc_id
            self.llc_name = name

    async def _mirror_existing_llc(self, draft: ProjectDraft, project_id: int, llc_id: int) -> None:
        """Copy the existing LLC into the project's child-LLC record (best effort)."""
        try:
            llc = await self.api.get_llc(llc_id)
            await self.api.create_child_llc(project_id, payloads.child_llc_mirror_payload(draft, project_id, llc))
            self.llc_name = llc.get("name") or self.llc_name
        except (ApiError, AttributeError) as e:
            log.warning("Child LLC record from existing LLC %s failed: %s", llc_id, e)
            self.toast(notifications.destructive(
                "Warning", "LLC data may be incomplete. Please verify contract details."))

    async def _create_documents(self, draft: ProjectDraft, project_id: int) -> list[GeneratedContractRef]:
        generated_at = datetime.now()
        refs: list[GeneratedContractRef] = []
        for contract_type in contract_types_for(draft.service_model):
            filename = contract_filename(draft, contract_type)
            contract = await self.api.create_contract({
                "projectId": project_id,
                "contractType": contract_type,
                "status": payloads.DRAFT_STATUS,
                "generatedBy": "wizard",
                "templateVersion": "1.0",
                "fileName": filename,
            })
            contract_id = payloads.record_id(contract)
            if contract_id is None:
                raise ApiError("Contract create returned no id", method="POST", path="/api/contracts")
            refs.append(GeneratedContractRef(
                id=str(contract_id),
                type=CONTRACT_TYPES[contract_type],
                filename=contract.get("fileName") or filename,
                download_url=contract.get("downloadUrl") or f"/api/contracts/{contract_id}/download",
                size=contract.get("size") or ESTIMATED_DOCUMENT_BYTES,
                generated_at=generated_at,
            ))
        return refs
