# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Domain models package for the broker core.

This package exports the immutable Pydantic models used by the purchase
workflow and the commission engine.
"""

from .base import BaseModelConfig, IdentifiableModel, TimestampedModel
from .commission import (
    BusinessBonus,
    Campaign,
    CommissionCalculation,
    CommissionRecord,
    CommissionRequest,
    CommissionRule,
    CommissionRuleCreate,
    CommissionRuleType,
    CommissionRuleUpdate,
    CommissionSlab,
    IrdaiCap,
    PayoutTransaction,
    PolicyCommissionRequest,
    PolicyCommissionResult,
    ResolvedCommission,
    RuleStatus,
    UnitType,
)
from .common import InitiatorRole, LineOfBusiness, PartyType, PaymentFrequency
from .payment import (
    PaymentGateway,
    PaymentMethod,
    PaymentRequest,
    PaymentResult,
    PaymentStatus,
)
from .policy import AuditLogEntry, Policy, PolicyCreate, PolicyStatus, PolicyStatusHistoryEntry
from .purchase import (
    CustomerDetails,
    GenericDetails,
    HealthDetails,
    LifeDetails,
    MotorDetails,
    OnBehalfOf,
    PurchaseContext,
    PurchaseDraft,
    PurchaseStep,
    TravelDetails,
)
from .quote import AddOn, Quote, QuoteRequest, QuoteSet
from .session import QuoteSession, QuoteSessionCreate, QuoteSessionUpdate

__all__ = [
    # Base
    "BaseModelConfig",
    "IdentifiableModel",
    "TimestampedModel",
    # Shared enums
    "InitiatorRole",
    "LineOfBusiness",
    "PartyType",
    "PaymentFrequency",
    # Quotes
    "AddOn",
    "Quote",
    "QuoteRequest",
    "QuoteSet",
    # Purchase
    "CustomerDetails",
    "GenericDetails",
    "HealthDetails",
    "LifeDetails",
    "MotorDetails",
    "OnBehalfOf",
    "PurchaseContext",
    "PurchaseDraft",
    "PurchaseStep",
    "TravelDetails",
    # Sessions
    "QuoteSession",
    "QuoteSessionCreate",
    "QuoteSessionUpdate",
    # Payment
    "PaymentGateway",
    "PaymentMethod",
    "PaymentRequest",
    "PaymentResult",
    "PaymentStatus",
    # Policy
    "AuditLogEntry",
    "Policy",
    "PolicyCreate",
    "PolicyStatus",
    "PolicyStatusHistoryEntry",
    # Commission
    "BusinessBonus",
    "Campaign",
    "CommissionCalculation",
    "CommissionRecord",
    "CommissionRequest",
    "CommissionRule",
    "CommissionRuleCreate",
    "CommissionRuleType",
    "CommissionRuleUpdate",
    "CommissionSlab",
    "IrdaiCap",
    "PayoutTransaction",
    "PolicyCommissionRequest",
    "PolicyCommissionResult",
    "ResolvedCommission",
    "RuleStatus",
    "UnitType",
]
