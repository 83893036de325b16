# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Commission rule authoring and resolution endpoints."""

from uuid import UUID

from beartype import beartype
from fastapi import APIRouter, Depends, HTTPException, Query

from ...core.result_types import Err
from ...models.commission import (
    CommissionCalculation,
    CommissionRule,
    CommissionRuleCreate,
    CommissionRuleType,
    CommissionRuleUpdate,
    CommissionSlab,
    IrdaiCap,
    PolicyCommissionRequest,
    PolicyCommissionResult,
    RuleStatus,
)
from ...models.common import LineOfBusiness
from ...schemas.commission import ResolveCommissionRequest
from ...services.commission_engine import CommissionRuleEngine
from ...services.commission_rules import CommissionRuleService
from ..dependencies import get_commission_engine, get_rule_service

router = APIRouter(prefix="/commissions", tags=["commissions"])


def _not_found_or_400(message: str) -> HTTPException:
    status_code = 404 if "not found" in message.lower() else 400
    return HTTPException(status_code=status_code, detail=message)


@router.post("/rules", response_model=CommissionRule, status_code=201)
@beartype
async def create_rule(
    rule: CommissionRuleCreate,
    service: CommissionRuleService = Depends(get_rule_service),
) -> CommissionRule:
    """Author a new commission rule."""
    result = await service.create_rule(rule)
    if isinstance(result, Err):
        raise HTTPException(status_code=400, detail=result.err_value)
    return result.unwrap()


@router.get("/rules", response_model=list[CommissionRule])
@beartype
async def list_rules(
    insurer_id: str | None = Query(None),
    line_of_business: LineOfBusiness | None = Query(None),
    status: RuleStatus | None = Query(None),
    rule_type: CommissionRuleType | None = Query(None),
    service: CommissionRuleService = Depends(get_rule_service),
) -> list[CommissionRule]:
    """List rules with compliance computed for today."""
    result = await service.list_rules(
        insurer_id=insurer_id,
        line_of_business=line_of_business,
        status=status,
        rule_type=rule_type,
    )
    if isinstance(result, Err):
        raise HTTPException(status_code=500, detail=result.err_value)
    return result.unwrap()


@router.get("/rules/{rule_id}", response_model=CommissionRule)
@beartype
async def get_rule(
    rule_id: UUID,
    service: CommissionRuleService = Depends(get_rule_service),
) -> CommissionRule:
    """Get rule by ID."""
    result = await service.get_rule(rule_id)
    if isinstance(result, Err):
        raise HTTPException(status_code=500, detail=result.err_value)

    rule = result.unwrap()
    if rule is None:
        raise HTTPException(status_code=404, detail="Commission rule not found")
    return rule


@router.patch("/rules/{rule_id}", response_model=CommissionRule)
@beartype
async def update_rule(
    rule_id: UUID,
    update: CommissionRuleUpdate,
    service: CommissionRuleService = Depends(get_rule_service),
) -> CommissionRule:
    """Partially update a rule."""
    result = await service.update_rule(rule_id, update)
    if isinstance(result, Err):
        raise _not_found_or_400(result.err_value)
    return result.unwrap()


@router.delete("/rules/{rule_id}", status_code=204)
@beartype
async def delete_rule(
    rule_id: UUID,
    service: CommissionRuleService = Depends(get_rule_service),
) -> None:
    """Delete a rule with its slabs and bonuses."""
    result = await service.delete_rule(rule_id)
    if isinstance(result, Err):
        raise _not_found_or_400(result.err_value)


@router.post("/rules/{rule_id}/slabs", response_model=CommissionRule, status_code=201)
@beartype
async def add_slab(
    rule_id: UUID,
    slab: CommissionSlab,
    service: CommissionRuleService = Depends(get_rule_service),
) -> CommissionRule:
    """Add a premium slab to a slab rule."""
    result = await service.add_slab(rule_id, slab)
    if isinstance(result, Err):
        raise _not_found_or_400(result.err_value)
    return result.unwrap()


@router.delete("/rules/{rule_id}/slabs/{slab_id}", response_model=CommissionRule)
@beartype
async def remove_slab(
    rule_id: UUID,
    slab_id: UUID,
    service: CommissionRuleService = Depends(get_rule_service),
) -> CommissionRule:
    """Remove a slab from a rule."""
    result = await service.remove_slab(rule_id, slab_id)
    if isinstance(result, Err):
        raise _not_found_or_400(result.err_value)
    return result.unwrap()


@router.post("/caps", response_model=IrdaiCap, status_code=201)
@beartype
async def add_cap(
    cap: IrdaiCap,
    service: CommissionRuleService = Depends(get_rule_service),
) -> IrdaiCap:
    """Store a regulatory commission cap."""
    result = await service.add_cap(cap)
    if isinstance(result, Err):
        raise HTTPException(status_code=400, detail=result.err_value)
    return result.unwrap()


@router.post("/resolve", response_model=CommissionCalculation)
@beartype
async def resolve_commission(
    body: ResolveCommissionRequest,
    engine: CommissionRuleEngine = Depends(get_commission_engine),
) -> CommissionCalculation:
    """Resolve applicable rules for a premium without recording anything."""
    result = await engine.resolve(body.request, body.as_of)
    if isinstance(result, Err):
        raise HTTPException(status_code=500, detail=result.err_value)
    return result.unwrap()


@router.post("/calculate", response_model=PolicyCommissionResult)
@beartype
async def calculate_for_policy(
    request: PolicyCommissionRequest,
    engine: CommissionRuleEngine = Depends(get_commission_engine),
) -> PolicyCommissionResult:
    """Calculate and record commission for an issued policy."""
    result = await engine.calculate_for_policy(request)
    if isinstance(result, Err):
        raise _not_found_or_400(result.err_value)
    return result.unwrap()
