# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Request and response schemas for the purchase workflow API."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field

from ..models.common import InitiatorRole, LineOfBusiness, PartyType, PaymentFrequency
from ..models.payment import PaymentGateway, PaymentMethod
from ..models.purchase import PurchaseContext, PurchaseDraft, PurchaseStep
from ..models.quote import QuoteRequest
from ..models.session import QuoteSession
from ..services.purchase_workflow import PurchaseWorkflow


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


@beartype
class PurchaseStartRequest(_RequestModel):
    """Identity of whoever is starting the purchase."""

    initiated_by_role: InitiatorRole
    initiated_by_id: str = Field(..., min_length=1)
    can_select_on_behalf: bool = False
    contact_key: str | None = Field(
        default=None, description="Phone number or other key sessions are stored under"
    )

    def to_context(self) -> PurchaseContext:
        """Convert to the workflow's context model."""
        return PurchaseContext(**self.model_dump())


@beartype
class LineOfBusinessSelection(_RequestModel):
    """Line of business chosen on the first step."""

    line_of_business: LineOfBusiness


@beartype
class ProviderSelection(_RequestModel):
    """Insurer chosen on the provider step."""

    provider_id: str = Field(..., min_length=1)
    provider_name: str = ""


@beartype
class ProductSelection(_RequestModel):
    """Product chosen on the product step."""

    product_id: str = Field(..., min_length=1)
    product_name: str = ""


@beartype
class OnBehalfOfSelection(_RequestModel):
    """Party to buy for; omit ``id`` to clear."""

    type: PartyType | None = None
    id: str | None = None
    name: str = ""


@beartype
class QuotesRequest(_RequestModel):
    """Inputs for pricing the current draft."""

    sum_insured: Decimal = Field(default=Decimal("500000"), gt=Decimal("0"))
    payment_frequency: PaymentFrequency = PaymentFrequency.YEARLY
    age: int | None = Field(default=None, ge=0, le=120)
    features: list[str] = Field(default_factory=list)

    def to_quote_request(self) -> QuoteRequest:
        """Premium engine request without display-only features."""
        return QuoteRequest(**self.model_dump(exclude={"features"}))


@beartype
class QuoteSelection(_RequestModel):
    """One of the quotes returned for this workflow, by id."""

    quote_id: UUID


@beartype
class AddOnSelection(_RequestModel):
    """Full add-on selection."""

    add_on_ids: list[str] = Field(default_factory=list)


@beartype
class PaymentBody(_RequestModel):
    """Gateway and instrument for the payment step."""

    gateway: PaymentGateway = PaymentGateway.RAZORPAY
    method: PaymentMethod = PaymentMethod.CARD


@beartype
class ResumableSession(BaseModel):
    """Summary of an incomplete session offered for resume."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID
    line_of_business: LineOfBusiness | None
    current_step: PurchaseStep
    product_name: str | None
    selected_insurer_name: str | None
    updated_at: datetime

    @classmethod
    def from_session(cls, session: QuoteSession) -> "ResumableSession":
        """Build summary from stored session."""
        return cls(
            id=session.id,
            line_of_business=session.line_of_business,
            current_step=session.current_step,
            product_name=session.product_name,
            selected_insurer_name=session.selected_insurer_name,
            updated_at=session.updated_at,
        )


@beartype
class WorkflowStateResponse(BaseModel):
    """Wizard state returned after every workflow call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    workflow_id: UUID
    step: PurchaseStep
    session_id: UUID | None
    draft: PurchaseDraft
    validation_errors: dict[str, list[str]]
    completion_percentage: int
    processing_payment: bool
    add_ons_premium: Decimal
    final_premium: Decimal
    resumable_session: ResumableSession | None = None

    @classmethod
    def from_workflow(cls, workflow_id: UUID, workflow: PurchaseWorkflow) -> "WorkflowStateResponse":
        """Snapshot ``workflow`` for the response."""
        state = workflow.state
        pending = state.pending_session
        return cls(
            workflow_id=workflow_id,
            step=state.step,
            session_id=state.session_id,
            draft=state.draft,
            validation_errors=state.validation_errors,
            completion_percentage=state.completion_percentage,
            processing_payment=state.processing_payment,
            add_ons_premium=state.draft.add_ons_premium,
            final_premium=state.draft.final_premium,
            resumable_session=ResumableSession.from_session(pending) if pending else None,
        )

