from fastapi import APIRouter, Depends, Query, Response, status

from app.api.dependencies import get_use_cases
from app.api.schemas.margin_rules import (
    MarginRuleCreate,
    MarginRuleResponse,
    MarginRuleStatsResponse,
    MarginRuleUpdate,
    ReorderRequest,
    SimulateRequest,
    SimulateResponse,
)
from app.api.schemas.pricing import PriceBreakdownResponse
from app.domain.entities.margin_rule import RuleStatus

router = APIRouter()


@router.get("/margin-rules", response_model=list[MarginRuleResponse])
async def list_margin_rules(
    rule_status: RuleStatus | None = Query(default=None, alias="status"),
    use_cases=Depends(get_use_cases),
) -> list[MarginRuleResponse]:
    rules = await use_cases["manage_margin_rules"].list_rules(status=rule_status)
    return [MarginRuleResponse.from_domain(rule) for rule in rules]


@router.post(
    "/margin-rules",
    response_model=MarginRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_margin_rule(payload: MarginRuleCreate, use_cases=Depends(get_use_cases)) -> MarginRuleResponse:
    rule = await use_cases["manage_margin_rules"].create(
        name=payload.name,
        type=payload.type,
        value=payload.value,
        fixed_amount=payload.fixed_amount,
        currency=payload.currency,
        priority=payload.priority,
        status=payload.status,
        conditions=payload.conditions.to_domain(),
        description=payload.description,
        created_by=payload.created_by,
    )
    return MarginRuleResponse.from_domain(rule)


@router.get("/margin-rules/stats", response_model=MarginRuleStatsResponse)
async def margin_rule_stats(use_cases=Depends(get_use_cases)) -> MarginRuleStatsResponse:
    stats = await use_cases["manage_margin_rules"].stats()
    return MarginRuleStatsResponse.from_stats(stats)


@router.post("/margin-rules/reorder", response_model=list[MarginRuleResponse])
async def reorder_margin_rules(payload: ReorderRequest, use_cases=Depends(get_use_cases)) -> list[MarginRuleResponse]:
    rules = await use_cases["manage_margin_rules"].reorder(payload.ordered_ids)
    return [MarginRuleResponse.from_domain(rule) for rule in rules]


@router.post("/margin-rules/simulate", response_model=SimulateResponse)
async def simulate_margin_rules(payload: SimulateRequest, use_cases=Depends(get_use_cases)) -> SimulateResponse:
    rule, breakdown = await use_cases["manage_margin_rules"].simulate(
        payload.base_price, payload.to_context(payload.base_price), payload.currency
    )
    return SimulateResponse(
        rule=MarginRuleResponse.from_domain(rule) if rule else None,
        price=PriceBreakdownResponse.from_dto(breakdown),
    )


@router.get("/margin-rules/{rule_id}", response_model=MarginRuleResponse)
async def get_margin_rule(rule_id: str, use_cases=Depends(get_use_cases)) -> MarginRuleResponse:
    rule = await use_cases["manage_margin_rules"].get(rule_id)
    return MarginRuleResponse.from_domain(rule)


@router.patch("/margin-rules/{rule_id}", response_model=MarginRuleResponse)
async def update_margin_rule(
    rule_id: str, payload: MarginRuleUpdate, use_cases=Depends(get_use_cases)
) -> MarginRuleResponse:
    rule = await use_cases["manage_margin_rules"].update(rule_id, payload.changes(), updated_by=payload.updated_by)
    return MarginRuleResponse.from_domain(rule)


@router.post("/margin-rules/{rule_id}/toggle", response_model=MarginRuleResponse)
async def toggle_margin_rule(rule_id: str, use_cases=Depends(get_use_cases)) -> MarginRuleResponse:
    rule = await use_cases["manage_margin_rules"].toggle(rule_id)
    return MarginRuleResponse.from_domain(rule)


@router.delete("/margin-rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_margin_rule(rule_id: str, use_cases=Depends(get_use_cases)) -> Response:
    await use_cases["manage_margin_rules"].delete(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
