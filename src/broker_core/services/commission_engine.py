# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Commission rule resolution with a regulatory (IRDAI) cap.

Resolution is pure: given candidate rules, caps, a request and an
evaluation date it always yields the same :class:`CommissionCalculation`.
:class:`CommissionRuleEngine` adds loading from the rule store and the
post-issuance ``calculate_for_policy`` run that writes commission rows.

Slab rules match the first slab, in ascending ``min_premium`` order, whose
inclusive bounds contain the premium. Authoring rejects overlapping slabs
so at most one can match; a premium in a gap resolves to no commission.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID, uuid4

from beartype import beartype

from ..core.database import Database
from ..core.money import round_currency, round_rate
from ..core.result_types import Err, Ok, Result
from ..core.retry import RetryPolicy, retry_result
from ..models.commission import (
    DEFAULT_IRDAI_CAP,
    CommissionCalculation,
    CommissionRecord,
    CommissionRequest,
    CommissionRule,
    CommissionRuleBase,
    CommissionRuleType,
    CommissionSlab,
    IrdaiCap,
    PayoutTransaction,
    PolicyCommissionRequest,
    PolicyCommissionResult,
    ResolvedCommission,
    RuleStatus,
)
from ..models.common import LineOfBusiness
from ..models.policy import AuditLogEntry
from .audit_trail import AuditTrail
from .performance_monitor import performance_monitor

logger = logging.getLogger(__name__)

COMMISSION_AUDIT_EVENT = "Commission Calculated"

_BASE_RATE_TYPES = frozenset(
    {
        CommissionRuleType.FIXED,
        CommissionRuleType.RENEWAL,
        CommissionRuleType.BONUS,
        CommissionRuleType.TIERED,
        CommissionRuleType.CAMPAIGN,
    }
)


class CommissionRuleSource(Protocol):
    """Where the engine loads rules and caps from."""

    async def load_candidate_rules(
        self, request: CommissionRequest
    ) -> Result[list[CommissionRule], str]:
        """Rules for the request's insurer, line and policy year."""
        ...

    async def load_caps(
        self, line_of_business: LineOfBusiness
    ) -> Result[list[IrdaiCap], str]:
        """Regulatory caps for a line of business."""
        ...


@beartype
def find_cap(
    caps: list[IrdaiCap],
    line_of_business: LineOfBusiness,
    policy_year: int,
    channel: str | None,
    as_of: date,
) -> Decimal:
    """Applicable cap percentage; a channel-specific cap beats a generic one."""
    matching = [
        cap
        for cap in caps
        if cap.line_of_business == line_of_business
        and cap.policy_year == policy_year
        and cap.is_effective_on(as_of)
        and (cap.channel is None or cap.channel == channel)
    ]
    if not matching:
        return DEFAULT_IRDAI_CAP

    matching.sort(key=lambda cap: (cap.channel is None, -cap.effective_from.toordinal()))
    return matching[0].max_commission_percent


@beartype
def select_rules(
    rules: list[CommissionRule], request: CommissionRequest, as_of: date
) -> list[CommissionRule]:
    """Active rules in scope for ``request`` and valid on ``as_of``.

    A rule without product or channel matches any product or channel.
    """
    return [
        rule
        for rule in rules
        if rule.status == RuleStatus.ACTIVE
        and rule.insurer_id == request.insurer_id
        and rule.line_of_business == request.line_of_business
        and rule.policy_year == request.policy_year
        and (rule.product_id is None or rule.product_id == request.product_id)
        and (rule.channel is None or rule.channel == request.channel)
        and rule.is_valid_on(as_of)
    ]


@beartype
def match_slab(slabs: list[CommissionSlab], premium: Decimal) -> CommissionSlab | None:
    """First slab, by ascending ``min_premium``, containing ``premium``."""
    for slab in sorted(slabs, key=lambda slab: slab.min_premium):
        if slab.contains(premium):
            return slab
    return None


@beartype
def resolve_rule(
    rule: CommissionRule,
    request: CommissionRequest,
    as_of: date,
    irdai_cap: Decimal,
) -> ResolvedCommission:
    """Evaluate one rule against the request premium."""
    premium = request.premium
    rate: Decimal | None = None
    base_commission = Decimal("0")
    matched_slab: CommissionSlab | None = None
    reason: str | None = None

    if rule.rule_type == CommissionRuleType.SLAB:
        matched_slab = match_slab(rule.slabs, premium)
        if matched_slab is None:
            reason = f"No slab contains premium {premium}"
        else:
            rate = matched_slab.rate
    elif rule.rule_type == CommissionRuleType.FLAT:
        base_commission = round_currency((rule.flat_amount or Decimal("0")) * request.units)
        rate = round_rate(base_commission / premium * 100)
    elif rule.rule_type == CommissionRuleType.CAMPAIGN and (
        rule.campaign is not None and not rule.campaign.is_active_on(as_of)
    ):
        reason = f"Campaign {rule.campaign.name} is not running on {as_of}"
    elif rule.rule_type in _BASE_RATE_TYPES:
        if rule.base_rate is None:
            reason = "Rule has no base rate"
        else:
            rate = rule.base_rate

    if rate is None:
        return ResolvedCommission(
            rule_id=rule.id,
            rule_type=rule.rule_type,
            applied=False,
            reason=reason,
            final_effective_rate=Decimal("0"),
            capped_rate=Decimal("0"),
            irdai_cap=irdai_cap,
            is_compliant=True,
            base_commission=Decimal("0"),
            bonus_commission=Decimal("0"),
            total_commission=Decimal("0"),
        )

    if rule.rule_type != CommissionRuleType.FLAT:
        base_commission = round_currency(premium * rate / 100)

    bonus_rate = Decimal("0")
    if request.gwp_to_date is not None:
        for bonus in rule.business_bonuses:
            if bonus.applies_to(request.gwp_to_date):
                bonus_rate += bonus.bonus_rate
    if (
        rule.campaign is not None
        and rule.rule_type != CommissionRuleType.CAMPAIGN
        and rule.campaign.is_active_on(as_of)
    ):
        bonus_rate += rule.campaign.rate
    bonus_commission = round_currency(premium * bonus_rate / 100)

    return ResolvedCommission(
        rule_id=rule.id,
        rule_type=rule.rule_type,
        applied=True,
        final_effective_rate=rate,
        capped_rate=min(rate, irdai_cap),
        irdai_cap=irdai_cap,
        is_compliant=rate <= irdai_cap,
        base_commission=base_commission,
        bonus_commission=bonus_commission,
        total_commission=base_commission + bonus_commission,
        matched_slab=matched_slab,
    )


@beartype
def calculate(
    rules: list[CommissionRule],
    caps: list[IrdaiCap],
    request: CommissionRequest,
    as_of: date,
) -> CommissionCalculation:
    """Select and resolve every rule in scope for ``request``."""
    irdai_cap = find_cap(
        caps, request.line_of_business, request.policy_year, request.channel, as_of
    )
    return CommissionCalculation(
        request=request,
        as_of=as_of,
        rules=[
            resolve_rule(rule, request, as_of, irdai_cap)
            for rule in select_rules(rules, request, as_of)
        ],
    )


@beartype
def headline_rate(rule: CommissionRuleBase) -> Decimal | None:
    """Rate shown for a stored rule; the highest slab rate for slab rules."""
    if rule.rule_type == CommissionRuleType.SLAB:
        return max((slab.rate for slab in rule.slabs), default=None)
    if rule.rule_type == CommissionRuleType.FLAT:
        return None
    return rule.base_rate


@beartype
def with_compliance(rule: CommissionRule, caps: list[IrdaiCap], as_of: date) -> CommissionRule:
    """Fill ``final_effective_rate``, ``is_compliant`` and ``irdai_cap``."""
    cap = find_cap(caps, rule.line_of_business, rule.policy_year, rule.channel, as_of)
    rate = headline_rate(rule)
    return rule.model_copy(
        update={
            "final_effective_rate": rate,
            "is_compliant": None if rate is None else rate <= cap,
            "irdai_cap": cap,
        }
    )


class CommissionRuleEngine:
    """Resolve commission for a policy and record the outcome."""

    def __init__(
        self,
        db: Database,
        rule_source: CommissionRuleSource,
        audit: AuditTrail,
        *,
        retry_policy: RetryPolicy | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        """Initialize engine with its rule store and audit writer."""
        self._db = db
        self._rules = rule_source
        self._audit = audit
        self._retry_policy = retry_policy
        self._today = today or date.today

    @beartype
    @performance_monitor("resolve_commission")
    async def resolve(
        self, request: CommissionRequest, as_of: date | None = None
    ) -> Result[CommissionCalculation, str]:
        """Resolve every applicable rule without writing anything."""
        as_of = as_of or self._today()

        rules_result = await self._rules.load_candidate_rules(request)
        if isinstance(rules_result, Err):
            return rules_result

        caps_result = await self._rules.load_caps(request.line_of_business)
        if isinstance(caps_result, Err):
            return caps_result

        return Ok(calculate(rules_result.unwrap(), caps_result.unwrap(), request, as_of))

    @beartype
    @performance_monitor("calculate_policy_commission", max_duration_ms=5000)
    async def calculate_for_policy(
        self, request: PolicyCommissionRequest
    ) -> Result[PolicyCommissionResult, str]:
        """Commission run triggered after a policy is issued.

        The policy is re-read with bounded retries because this call can
        race the policy insert. Errors are returned, never raised.
        """
        policy_result = await retry_result(
            lambda: self._read_policy(request.policy_id),
            policy=self._retry_policy,
            description=f"policy {request.policy_id} read",
        )
        if isinstance(policy_result, Err):
            return policy_result

        commission_request = CommissionRequest(
            insurer_id=request.insurer_id,
            product_id=request.product_id,
            line_of_business=request.line_of_business,
            channel=request.channel,
            policy_year=request.policy_year,
            premium=request.premium_amount,
        )
        resolved = await self.resolve(commission_request)
        if isinstance(resolved, Err):
            return resolved
        calculation = resolved.unwrap().model_copy(update={"policy_id": request.policy_id})

        payable = [rule for rule in calculation.applied_rules if rule.total_commission > 0]
        if not payable:
            logger.info("No applicable commission rules for policy %s", request.policy_id)
            return Ok(PolicyCommissionResult(calculation=calculation))

        commissions: list[CommissionRecord] = []
        payouts: list[PayoutTransaction] = []
        try:
            async with self._db.transaction() as conn:
                for resolved_rule in payable:
                    commission = CommissionRecord(
                        id=uuid4(),
                        policy_id=request.policy_id,
                        rule_id=resolved_rule.rule_id,
                        agent_id=request.agent_id,
                        commission_amount=resolved_rule.total_commission,
                        commission_rate=resolved_rule.final_effective_rate,
                    )
                    await conn.execute(
                        """
                        INSERT INTO commissions (
                            id, policy_id, rule_id, agent_id, commission_amount,
                            commission_rate, commission_type, status
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                        """,
                        commission.id,
                        commission.policy_id,
                        commission.rule_id,
                        commission.agent_id,
                        commission.commission_amount,
                        commission.commission_rate,
                        commission.commission_type,
                        commission.status.value,
                    )
                    commissions.append(commission)

                    if request.agent_id:
                        payout = PayoutTransaction(
                            id=uuid4(),
                            policy_id=request.policy_id,
                            agent_id=request.agent_id,
                            commission_rule_id=resolved_rule.rule_id,
                            payout_amount=resolved_rule.total_commission,
                            payout_date=calculation.as_of,
                        )
                        await conn.execute(
                            """
                            INSERT INTO payout_transactions (
                                id, policy_id, agent_id, commission_rule_id,
                                payout_amount, payout_date, payout_status,
                                payment_mode, remarks
                            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                            """,
                            payout.id,
                            payout.policy_id,
                            payout.agent_id,
                            payout.commission_rule_id,
                            payout.payout_amount,
                            payout.payout_date,
                            payout.payout_status.value,
                            payout.payment_mode,
                            payout.remarks,
                        )
                        payouts.append(payout)
        except Exception as e:
            return Err(f"Failed to record commission: {str(e)}")

        audit_result = await self._audit.record_event(
            AuditLogEntry(
                event=COMMISSION_AUDIT_EVENT,
                entity_type="policy",
                entity_id=request.policy_id,
                policy_id=request.policy_id,
                metadata=self._audit_metadata(request, calculation, commissions),
                timestamp=datetime.now(timezone.utc),
            )
        )
        if isinstance(audit_result, Err):
            logger.warning(
                "Commission audit entry for %s failed: %s",
                request.policy_id,
                audit_result.err_value,
            )

        logger.info(
            "Commission %s recorded for policy %s across %s rule(s)",
            calculation.total_commission,
            request.policy_id,
            len(commissions),
        )
        return Ok(
            PolicyCommissionResult(
                calculation=calculation, commissions=commissions, payouts=payouts
            )
        )

    async def _read_policy(self, policy_id: UUID) -> Result[Any, str]:
        try:
            row = await self._db.fetchrow(
                "SELECT id, premium_amount FROM policies WHERE id = $1", policy_id
            )
        except Exception as e:
            return Err(f"Database error: {str(e)}")

        if row is None:
            return Err(f"Policy {policy_id} not found")
        return Ok(row)

    def _audit_metadata(
        self,
        request: PolicyCommissionRequest,
        calculation: CommissionCalculation,
        commissions: list[CommissionRecord],
    ) -> dict[str, Any]:
        return {
            "commission_rules_applied": [str(c.rule_id) for c in commissions],
            "total_commission": str(sum((c.commission_amount for c in commissions), Decimal("0"))),
            "is_compliant": calculation.is_compliant,
            "agent_id": request.agent_id,
            "employee_id": request.employee_id,
            "line_of_business": request.line_of_business.value,
            "premium_amount": str(request.premium_amount),
            "policy_type": request.policy_type,
        }
