# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Purchase workflow API endpoints."""

import logging
from typing import Any
from uuid import UUID

from beartype import beartype
from fastapi import APIRouter, Body, Depends, HTTPException

from ...core.result_types import Err, Result
from ...models.payment import PaymentResult
from ...models.policy import Policy
from ...models.purchase import OnBehalfOf
from ...models.quote import AddOn, QuoteSet
from ...schemas.purchase import (
    AddOnSelection,
    LineOfBusinessSelection,
    OnBehalfOfSelection,
    PaymentBody,
    ProductSelection,
    ProviderSelection,
    PurchaseStartRequest,
    QuoteSelection,
    QuotesRequest,
    WorkflowStateResponse,
)
from ...services.purchase_workflow import PurchaseWorkflow, PurchaseWorkflowRegistry
from ..dependencies import get_workflow_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/purchase", tags=["purchase"])


def _workflow(registry: PurchaseWorkflowRegistry, workflow_id: UUID) -> PurchaseWorkflow:
    workflow = registry.get(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Purchase workflow not found")
    return workflow


def _state_or_400(
    workflow_id: UUID, workflow: PurchaseWorkflow, result: Result[Any, str]
) -> WorkflowStateResponse:
    if isinstance(result, Err):
        raise HTTPException(status_code=400, detail=result.err_value)
    return WorkflowStateResponse.from_workflow(workflow_id, workflow)


@router.post("/workflows", response_model=WorkflowStateResponse, status_code=201)
@beartype
async def start_purchase(
    request: PurchaseStartRequest,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Start a purchase and report any session that can be resumed."""
    workflow_id, workflow = registry.start(request.to_context())
    result = await workflow.load()
    if isinstance(result, Err):
        logger.warning("Resume lookup failed for new workflow %s", workflow_id)
    return WorkflowStateResponse.from_workflow(workflow_id, workflow)


@router.get("/workflows/{workflow_id}", response_model=WorkflowStateResponse)
@beartype
async def get_purchase(
    workflow_id: UUID,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Current wizard state."""
    return WorkflowStateResponse.from_workflow(workflow_id, _workflow(registry, workflow_id))


@router.post("/workflows/{workflow_id}/resume", response_model=WorkflowStateResponse)
@beartype
async def resume_purchase(
    workflow_id: UUID,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Restore the resumable session."""
    workflow = _workflow(registry, workflow_id)
    return _state_or_400(workflow_id, workflow, await workflow.resume())


@router.post("/workflows/{workflow_id}/discard", response_model=WorkflowStateResponse)
@beartype
async def discard_purchase(
    workflow_id: UUID,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Discard the resumable or active session and start over."""
    workflow = _workflow(registry, workflow_id)
    return _state_or_400(workflow_id, workflow, await workflow.discard())


@router.delete("/workflows/{workflow_id}", status_code=204)
@beartype
async def cancel_purchase(
    workflow_id: UUID,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> None:
    """Cancel the purchase and forget the workflow."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.cancel()
    if isinstance(result, Err):
        raise HTTPException(status_code=409, detail=result.err_value)
    registry.remove(workflow_id)


@router.put("/workflows/{workflow_id}/line-of-business", response_model=WorkflowStateResponse)
@beartype
async def select_line_of_business(
    workflow_id: UUID,
    selection: LineOfBusinessSelection,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Choose the line of business."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.select_line_of_business(selection.line_of_business)
    return _state_or_400(workflow_id, workflow, result)


@router.patch("/workflows/{workflow_id}/customer-details", response_model=WorkflowStateResponse)
@beartype
async def update_customer_details(
    workflow_id: UUID,
    details: dict[str, Any] = Body(...),
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Merge customer detail fields; field errors are reported on the state."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.update_customer_details(details)
    if isinstance(result, Err):
        raise HTTPException(
            status_code=422,
            detail={
                "message": result.err_value,
                "errors": workflow.state.validation_errors,
            },
        )
    return WorkflowStateResponse.from_workflow(workflow_id, workflow)


@router.put("/workflows/{workflow_id}/provider", response_model=WorkflowStateResponse)
@beartype
async def select_provider(
    workflow_id: UUID,
    selection: ProviderSelection,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Choose the insurer."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.select_provider(selection.provider_id, selection.provider_name)
    return _state_or_400(workflow_id, workflow, result)


@router.put("/workflows/{workflow_id}/product", response_model=WorkflowStateResponse)
@beartype
async def select_product(
    workflow_id: UUID,
    selection: ProductSelection,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Choose the product."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.select_product(selection.product_id, selection.product_name)
    return _state_or_400(workflow_id, workflow, result)


@router.put("/workflows/{workflow_id}/on-behalf-of", response_model=WorkflowStateResponse)
@beartype
async def set_on_behalf_of(
    workflow_id: UUID,
    selection: OnBehalfOfSelection,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Buy for a customer, agent or employee."""
    workflow = _workflow(registry, workflow_id)
    party = None
    if selection.type is not None and selection.id:
        party = OnBehalfOf(type=selection.type, id=selection.id, name=selection.name)
    result = await workflow.set_on_behalf_of(party)
    if isinstance(result, Err):
        raise HTTPException(status_code=403, detail=result.err_value)
    return WorkflowStateResponse.from_workflow(workflow_id, workflow)


@router.post("/workflows/{workflow_id}/quotes", response_model=QuoteSet)
@beartype
async def request_quotes(
    workflow_id: UUID,
    request: QuotesRequest,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> QuoteSet:
    """Price the draft: primary quote plus comparison quotes."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.request_quotes(request.to_quote_request(), request.features)
    if isinstance(result, Err):
        raise HTTPException(status_code=400, detail=result.err_value)
    return result.unwrap()


@router.put("/workflows/{workflow_id}/quote", response_model=WorkflowStateResponse)
@beartype
async def select_quote(
    workflow_id: UUID,
    selection: QuoteSelection,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Choose one of the returned quotes."""
    workflow = _workflow(registry, workflow_id)
    return _state_or_400(workflow_id, workflow, await workflow.select_quote(selection.quote_id))


@router.get("/workflows/{workflow_id}/add-ons", response_model=list[AddOn])
@beartype
async def list_add_ons(
    workflow_id: UUID,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> list[AddOn]:
    """Add-ons offered for the current line and quote."""
    return _workflow(registry, workflow_id).available_add_ons()


@router.put("/workflows/{workflow_id}/add-ons", response_model=WorkflowStateResponse)
@beartype
async def set_add_ons(
    workflow_id: UUID,
    selection: AddOnSelection,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Replace the add-on selection."""
    workflow = _workflow(registry, workflow_id)
    return _state_or_400(workflow_id, workflow, await workflow.set_add_ons(selection.add_on_ids))


@router.post(
    "/workflows/{workflow_id}/add-ons/{add_on_id}/toggle",
    response_model=WorkflowStateResponse,
)
@beartype
async def toggle_add_on(
    workflow_id: UUID,
    add_on_id: str,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Select or unselect one add-on."""
    workflow = _workflow(registry, workflow_id)
    return _state_or_400(workflow_id, workflow, await workflow.toggle_add_on(add_on_id))


@router.post("/workflows/{workflow_id}/next", response_model=WorkflowStateResponse)
@beartype
async def next_step(
    workflow_id: UUID,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Advance the wizard; incomplete steps report field errors."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.next_step()
    if isinstance(result, Err):
        raise HTTPException(
            status_code=422,
            detail={
                "message": result.err_value,
                "errors": workflow.state.validation_errors,
            },
        )
    return WorkflowStateResponse.from_workflow(workflow_id, workflow)


@router.post("/workflows/{workflow_id}/previous", response_model=WorkflowStateResponse)
@beartype
async def previous_step(
    workflow_id: UUID,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowStateResponse:
    """Go back one step."""
    workflow = _workflow(registry, workflow_id)
    return _state_or_400(workflow_id, workflow, await workflow.previous_step())


@router.post("/workflows/{workflow_id}/pay", response_model=PaymentResult)
@beartype
async def pay(
    workflow_id: UUID,
    payment: PaymentBody,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> PaymentResult:
    """Charge the final premium through the simulated gateway."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.pay(payment.gateway, payment.method)
    if isinstance(result, Err):
        raise HTTPException(status_code=402, detail=result.err_value)
    return result.unwrap()


@router.post("/workflows/{workflow_id}/submit", response_model=Policy, status_code=201)
@beartype
async def submit(
    workflow_id: UUID,
    registry: PurchaseWorkflowRegistry = Depends(get_workflow_registry),
) -> Policy:
    """Issue the policy for a paid purchase."""
    workflow = _workflow(registry, workflow_id)
    result = await workflow.submit()
    if isinstance(result, Err):
        if result.err_value.startswith("Failed to"):
            raise HTTPException(status_code=500, detail="Policy issuance failed")
        raise HTTPException(status_code=400, detail=result.err_value)
    registry.remove(workflow_id)
    return result.unwrap()
