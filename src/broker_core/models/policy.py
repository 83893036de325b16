# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Policy, status history and audit log models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig, IdentifiableModel
from .common import InitiatorRole, LineOfBusiness

ONLINE_PURCHASE_SOURCE = "Online Purchase"
PURCHASE_AUDIT_EVENT = "Online Policy Purchase Initiated"


class PolicyStatus(str, Enum):
    """Enumeration of policy lifecycle states."""

    PENDING = "Pending"
    ISSUED = "Issued"
    ACTIVE = "Active"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


@beartype
class PolicyCreate(BaseModelConfig):
    """Policy row as written by the issuer."""

    policy_number: str = Field(
        ...,
        pattern=r"^POL-[0-9]{4}-[0-9]{6}$",
        description="Unique policy number in format POL-YYYY-NNNNNN",
    )
    line_of_business: LineOfBusiness
    insurer_id: str
    product_id: str
    policy_status: PolicyStatus = PolicyStatus.ISSUED
    source: str = ONLINE_PURCHASE_SOURCE
    initiated_by_role: InitiatorRole
    initiated_by_id: str
    premium_amount: Decimal = Field(..., ge=Decimal("0"))
    employee_id: str | None = None
    agent_id: str | None = None
    customer_id: str | None = None
    quote_session_id: UUID | None = Field(
        default=None,
        description="Idempotency key: at most one policy per quote session",
    )
    policy_data: dict[str, Any] = Field(default_factory=dict)


@beartype
class Policy(PolicyCreate, IdentifiableModel):
    """Persisted policy."""


@beartype
class PolicyStatusHistoryEntry(BaseModelConfig):
    """Append-only status transition."""

    policy_id: UUID
    previous_status: PolicyStatus | None
    new_status: PolicyStatus
    updated_by: str
    changed_by_role: InitiatorRole
    timestamp: datetime


@beartype
class AuditLogEntry(BaseModelConfig):
    """Append-only business event."""

    event: str = Field(..., min_length=1)
    entity_type: str = Field(..., min_length=1)
    entity_id: UUID
    policy_id: UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
