# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""API request/response schemas."""

from .commission import ResolveCommissionRequest
from .common import APIInfo, HealthStatus
from .purchase import (
    AddOnSelection,
    LineOfBusinessSelection,
    OnBehalfOfSelection,
    PaymentBody,
    ProductSelection,
    ProviderSelection,
    PurchaseStartRequest,
    QuotesRequest,
    ResumableSession,
    WorkflowStateResponse,
)

__all__ = [
    "APIInfo",
    "HealthStatus",
    "ResolveCommissionRequest",
    "AddOnSelection",
    "LineOfBusinessSelection",
    "OnBehalfOfSelection",
    "PaymentBody",
    "ProductSelection",
    "ProviderSelection",
    "PurchaseStartRequest",
    "QuotesRequest",
    "ResumableSession",
    "WorkflowStateResponse",
]
