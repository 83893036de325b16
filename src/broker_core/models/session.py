# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Persisted quote session models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig, IdentifiableModel
from .common import LineOfBusiness
from .payment import PaymentStatus
from .purchase import PurchaseStep


@beartype
class QuoteSession(IdentifiableModel):
    """Resumable snapshot of an in-progress purchase.

    Quote, add-ons, proposal and payment result are stored in their
    serialized (JSON) form exactly as the wizard last saved them.
    """

    contact_key: str = Field(..., min_length=1)
    line_of_business: LineOfBusiness | None = None
    product_id: str | None = None
    product_name: str | None = None
    selected_insurer_id: str | None = None
    selected_insurer_name: str | None = None
    selected_quote: dict[str, Any] | None = None
    addons_selected: list[dict[str, Any]] = Field(default_factory=list)
    proposal_data: dict[str, Any] | None = None
    payment_result: dict[str, Any] | None = None
    current_step: PurchaseStep = PurchaseStep.LOB
    payment_status: PaymentStatus = PaymentStatus.PENDING
    is_complete: bool = False
    policy_id: UUID | None = None
    discarded_at: datetime | None = None

    @property
    def is_resumable(self) -> bool:
        """Incomplete and not discarded."""
        return not self.is_complete and self.discarded_at is None


@beartype
class QuoteSessionCreate(BaseModelConfig):
    """Fields set when the first line of business is chosen."""

    contact_key: str = Field(..., min_length=1)
    line_of_business: LineOfBusiness
    current_step: PurchaseStep = PurchaseStep.LOB


@beartype
class QuoteSessionUpdate(BaseModelConfig):
    """Partial session update; only explicitly set fields are written."""

    line_of_business: LineOfBusiness | None = None
    product_id: str | None = None
    product_name: str | None = None
    selected_insurer_id: str | None = None
    selected_insurer_name: str | None = None
    selected_quote: dict[str, Any] | None = None
    addons_selected: list[dict[str, Any]] | None = None
    proposal_data: dict[str, Any] | None = None
    payment_result: dict[str, Any] | None = None
    current_step: PurchaseStep | None = None
    payment_status: PaymentStatus | None = None
