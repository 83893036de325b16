# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Commission rule, regulatory cap and calculation models.

Rates are percentages (``12.5`` means 12.5%). Amounts share the premium
currency unit.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated
from uuid import UUID

from beartype import beartype
from pydantic import Field, model_validator

from .base import BaseModelConfig, IdentifiableModel
from .common import LineOfBusiness

DEFAULT_IRDAI_CAP = Decimal("100")

Rate = Annotated[Decimal, Field(ge=Decimal("0"), le=Decimal("100"))]


class CommissionRuleType(str, Enum):
    """How a rule's rate is derived."""

    FIXED = "Fixed"
    SLAB = "Slab"
    FLAT = "Flat"
    RENEWAL = "Renewal"
    BONUS = "Bonus"
    TIERED = "Tiered"
    CAMPAIGN = "Campaign"


class UnitType(str, Enum):
    """Unit a flat commission amount is paid per."""

    PER_POLICY = "PerPolicy"
    PER_VEHICLE = "PerVehicle"
    PER_MEMBER = "PerMember"


class RuleStatus(str, Enum):
    """Authoring status of a rule."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"


@beartype
def _window_contains(start: date, end: date | None, day: date) -> bool:
    return start <= day and (end is None or day <= end)


@beartype
class CommissionSlab(BaseModelConfig):
    """Premium band with its rate; ``max_premium=None`` is open-ended."""

    id: UUID | None = None
    min_premium: Decimal = Field(..., ge=Decimal("0"))
    max_premium: Decimal | None = None
    rate: Rate

    @model_validator(mode="after")
    def validate_bounds(self) -> "CommissionSlab":
        """Ensure the band is not inverted."""
        if self.max_premium is not None and self.max_premium < self.min_premium:
            raise ValueError(
                f"Slab max_premium ({self.max_premium}) must be >= "
                f"min_premium ({self.min_premium})"
            )
        return self

    @beartype
    def contains(self, premium: Decimal) -> bool:
        """Inclusive bounds check."""
        return premium >= self.min_premium and (
            self.max_premium is None or premium <= self.max_premium
        )

    @beartype
    def overlaps(self, other: "CommissionSlab") -> bool:
        """Whether two bands share at least one premium value."""
        self_max = self.max_premium
        other_max = other.max_premium
        starts_before_other_ends = other_max is None or self.min_premium <= other_max
        other_starts_before_self_ends = self_max is None or other.min_premium <= self_max
        return starts_before_other_ends and other_starts_before_self_ends


@beartype
class BusinessBonus(BaseModelConfig):
    """Extra rate once the intermediary's GWP-to-date is in range."""

    min_gwp: Decimal = Field(..., ge=Decimal("0"))
    max_gwp: Decimal | None = None
    bonus_rate: Rate

    @beartype
    def applies_to(self, gwp_to_date: Decimal) -> bool:
        """Inclusive GWP range check."""
        return gwp_to_date >= self.min_gwp and (
            self.max_gwp is None or gwp_to_date <= self.max_gwp
        )


@beartype
class Campaign(BaseModelConfig):
    """Time-boxed campaign with its own window."""

    name: str = Field(..., min_length=1)
    rate: Rate
    valid_from: date
    valid_to: date | None = None

    @beartype
    def is_active_on(self, day: date) -> bool:
        """Whether ``day`` falls inside the campaign window."""
        return _window_contains(self.valid_from, self.valid_to, day)


@beartype
def find_overlapping_slabs(
    slabs: list[CommissionSlab],
) -> list[tuple[CommissionSlab, CommissionSlab]]:
    """Return every pair of slabs whose premium bands intersect."""
    ordered = sorted(slabs, key=lambda slab: slab.min_premium)
    return [
        (first, second)
        for index, first in enumerate(ordered)
        for second in ordered[index + 1 :]
        if first.overlaps(second)
    ]


@beartype
class CommissionRuleBase(BaseModelConfig):
    """Scope, validity window and type-specific payload of a rule."""

    rule_type: CommissionRuleType
    insurer_id: str = Field(..., min_length=1)
    product_id: str | None = Field(default=None, description="None matches any product")
    line_of_business: LineOfBusiness
    channel: str | None = Field(default=None, description="None matches any channel")
    policy_year: int = Field(default=1, ge=1, le=50)
    valid_from: date
    valid_to: date | None = None
    base_rate: Decimal | None = Field(default=None, ge=Decimal("0"), le=Decimal("100"))
    flat_amount: Decimal | None = Field(default=None, ge=Decimal("0"))
    unit_type: UnitType | None = None
    campaign: Campaign | None = None
    slabs: list[CommissionSlab] = Field(default_factory=list)
    business_bonuses: list[BusinessBonus] = Field(default_factory=list)
    status: RuleStatus = RuleStatus.ACTIVE

    @model_validator(mode="after")
    def validate_rule(self) -> "CommissionRuleBase":
        """Reject inverted windows and overlapping slabs."""
        if self.valid_to is not None and self.valid_to < self.valid_from:
            raise ValueError("valid_to must be on or after valid_from")

        overlapping = find_overlapping_slabs(self.slabs)
        if overlapping:
            first, second = overlapping[0]
            raise ValueError(
                f"Slabs overlap: [{first.min_premium}, {first.max_premium}] and "
                f"[{second.min_premium}, {second.max_premium}]"
            )

        if self.rule_type == CommissionRuleType.FLAT and self.flat_amount is None:
            raise ValueError("Flat rules require flat_amount")
        return self

    @beartype
    def is_valid_on(self, day: date) -> bool:
        """Whether ``day`` falls inside the rule's validity window."""
        return _window_contains(self.valid_from, self.valid_to, day)


@beartype
class CommissionRuleCreate(CommissionRuleBase):
    """Authoring payload for a new rule."""


@beartype
class CommissionRuleUpdate(BaseModelConfig):
    """Partial rule update; slabs are managed separately."""

    product_id: str | None = None
    channel: str | None = None
    valid_from: date | None = None
    valid_to: date | None = None
    base_rate: Decimal | None = Field(default=None, ge=Decimal("0"), le=Decimal("100"))
    flat_amount: Decimal | None = Field(default=None, ge=Decimal("0"))
    unit_type: UnitType | None = None
    campaign: Campaign | None = None
    business_bonuses: list[BusinessBonus] | None = None
    status: RuleStatus | None = None


@beartype
class CommissionRule(CommissionRuleBase, IdentifiableModel):
    """Stored rule with compliance fields computed on read."""

    final_effective_rate: Decimal | None = None
    is_compliant: bool | None = None
    irdai_cap: Decimal | None = None


@beartype
class IrdaiCap(BaseModelConfig):
    """Regulatory maximum commission for a line of business and policy year."""

    line_of_business: LineOfBusiness
    policy_year: int = Field(default=1, ge=1)
    channel: str | None = None
    max_commission_percent: Rate
    effective_from: date
    effective_to: date | None = None

    @beartype
    def is_effective_on(self, day: date) -> bool:
        """Whether ``day`` falls inside the cap's effective window."""
        return _window_contains(self.effective_from, self.effective_to, day)


@beartype
class CommissionRequest(BaseModelConfig):
    """Policy tuple and premium to resolve commission for."""

    insurer_id: str = Field(..., min_length=1)
    product_id: str | None = None
    line_of_business: LineOfBusiness
    channel: str | None = None
    policy_year: int = Field(default=1, ge=1)
    premium: Decimal = Field(..., gt=Decimal("0"))
    gwp_to_date: Decimal | None = Field(default=None, ge=Decimal("0"))
    units: int = Field(default=1, ge=1, description="Vehicles or members for flat rules")


@beartype
class ResolvedCommission(BaseModelConfig):
    """Outcome of evaluating one rule against one premium.

    ``final_effective_rate`` is the rate the rule resolves to before any cap;
    ``capped_rate`` is the same rate limited to ``irdai_cap``. A rule that
    resolves to no rate (slab gap, campaign outside window) is reported with
    ``applied=False`` and zero commission.
    """

    rule_id: UUID
    rule_type: CommissionRuleType
    applied: bool
    reason: str | None = None
    final_effective_rate: Decimal
    capped_rate: Decimal
    irdai_cap: Decimal
    is_compliant: bool
    base_commission: Decimal
    bonus_commission: Decimal
    total_commission: Decimal
    matched_slab: CommissionSlab | None = None


@beartype
class CommissionCalculation(BaseModelConfig):
    """All resolved rules for one request."""

    request: CommissionRequest
    as_of: date
    rules: list[ResolvedCommission] = Field(default_factory=list)
    policy_id: UUID | None = None

    @property
    def applied_rules(self) -> list[ResolvedCommission]:
        """Rules that produced a commission."""
        return [rule for rule in self.rules if rule.applied]

    @property
    def total_commission(self) -> Decimal:
        """Sum over applied rules."""
        return sum(
            (rule.total_commission for rule in self.applied_rules), Decimal("0")
        )

    @property
    def is_compliant(self) -> bool:
        """True when every applied rule is within its cap."""
        return all(rule.is_compliant for rule in self.applied_rules)


class CommissionStatus(str, Enum):
    """Lifecycle of a commission or payout row."""

    PENDING = "Pending"
    APPROVED = "Approved"
    PAID = "Paid"


@beartype
class CommissionRecord(BaseModelConfig):
    """Commission row written per applied rule."""

    id: UUID
    policy_id: UUID
    rule_id: UUID
    agent_id: str | None = None
    commission_amount: Decimal
    commission_rate: Decimal
    commission_type: str = "Initial"
    status: CommissionStatus = CommissionStatus.PENDING


@beartype
class PayoutTransaction(BaseModelConfig):
    """Pending payout to an agent for one commission."""

    id: UUID
    policy_id: UUID
    agent_id: str
    commission_rule_id: UUID
    payout_amount: Decimal
    payout_date: date
    payout_status: CommissionStatus = CommissionStatus.PENDING
    payment_mode: str = "Bank Transfer"
    remarks: str = "Auto-generated from policy purchase"


@beartype
class PolicyCommissionRequest(BaseModelConfig):
    """Payload of the remote commission call made after issuance."""

    policy_id: UUID
    line_of_business: LineOfBusiness
    insurer_id: str
    product_id: str | None = None
    premium_amount: Decimal = Field(..., gt=Decimal("0"))
    agent_id: str | None = None
    employee_id: str | None = None
    policy_type: str = "New"
    channel: str | None = None
    policy_year: int = Field(default=1, ge=1)


@beartype
class PolicyCommissionResult(BaseModelConfig):
    """Rows written by a policy commission run."""

    calculation: CommissionCalculation
    commissions: list[CommissionRecord] = Field(default_factory=list)
    payouts: list[PayoutTransaction] = Field(default_factory=list)
