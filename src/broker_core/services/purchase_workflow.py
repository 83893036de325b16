# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Stateful, resumable purchase wizard.

One :class:`PurchaseWorkflow` exists per user context. It owns the only
reference to the current :class:`~broker_core.models.purchase.PurchaseDraft`
and replaces it on every change. After each step change or field update
the draft is written to the caller's quote session on a best-effort basis:
a failed save is logged and never blocks the wizard.
"""

import logging
import time
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from beartype import beartype
from pydantic import Field, ValidationError

from ..core.config import get_settings
from ..core.result_types import Err, Ok, Result
from ..models.base import BaseModelConfig
from ..models.common import LineOfBusiness
from ..models.payment import (
    PaymentGateway,
    PaymentMethod,
    PaymentRequest,
    PaymentResult,
    PaymentStatus,
)
from ..models.policy import Policy
from ..models.purchase import (
    CUSTOMER_DETAILS_TYPES,
    PURCHASE_STEPS,
    OnBehalfOf,
    PurchaseContext,
    PurchaseDraft,
    PurchaseStep,
)
from ..models.quote import AddOn, Quote, QuoteRequest, QuoteSet
from ..models.session import QuoteSession, QuoteSessionCreate, QuoteSessionUpdate
from .addon_catalog import AddOnCatalog
from .payment_simulator import PaymentGatewayPort
from .policy_issuer import PolicyIssuer
from .premium_quote_engine import PremiumQuoteEngine
from .quote_session_store import QuoteSessionStore

logger = logging.getLogger(__name__)

FIELD_LABELS: dict[str, str] = {
    "line_of_business": "Line of business",
    "customer_details": "Customer details",
    "provider_id": "Provider",
    "product_id": "Product",
    "selected_quote": "Quote",
    "payment_result": "Successful payment",
    "full_name": "Full name",
    "email": "Email",
    "phone": "Phone",
    "date_of_birth": "Date of birth",
    "vehicle_registration": "Vehicle registration",
    "vehicle_manufacturer": "Vehicle manufacturer",
    "height": "Height",
    "weight": "Weight",
    "annual_income": "Annual income",
    "nominee_name": "Nominee name",
    "destination": "Destination",
    "travel_start_date": "Travel start date",
}


class WorkflowState(BaseModelConfig):
    """Snapshot of the wizard exposed to callers."""

    step: PurchaseStep = PurchaseStep.LOB
    draft: PurchaseDraft = Field(default_factory=PurchaseDraft)
    session_id: UUID | None = None
    validation_errors: dict[str, list[str]] = Field(default_factory=dict)
    completion_percentage: int = Field(default=0, ge=0, le=100)
    processing_payment: bool = False
    submitting: bool = False
    pending_session: QuoteSession | None = None
    offered_quotes: QuoteSet | None = None


def completion_for(step: PurchaseStep) -> int:
    """Share of steps already behind ``step``."""
    return PURCHASE_STEPS.index(step) * 100 // len(PURCHASE_STEPS)


def required_field_errors(step: PurchaseStep, draft: PurchaseDraft) -> dict[str, list[str]]:
    """Field errors that block leaving ``step``; empty when the step is done."""
    missing: list[str] = []

    if step == PurchaseStep.LOB:
        if draft.line_of_business is None:
            missing.append("line_of_business")
    elif step == PurchaseStep.CUSTOMER_DETAILS:
        details = draft.customer_details
        if details is None:
            missing.append("customer_details")
        elif draft.line_of_business is None or (
            details.line_of_business != draft.line_of_business.value
        ):
            return {
                "customer_details": [
                    "Customer details do not match the selected line of business"
                ]
            }
        else:
            missing.extend(details.missing_fields())
    elif step == PurchaseStep.PROVIDER:
        if not draft.provider_id:
            missing.append("provider_id")
    elif step == PurchaseStep.PRODUCT:
        if not draft.product_id:
            missing.append("product_id")
    elif step == PurchaseStep.QUOTE:
        if draft.selected_quote is None:
            missing.append("selected_quote")
        elif draft.final_premium <= 0:
            return {"selected_quote": ["Quote premium must be greater than zero"]}
    elif step == PurchaseStep.PAYMENT:
        if draft.payment_result is None:
            missing.append("payment_result")

    return {
        name: [f"{FIELD_LABELS.get(name, name)} is required"] for name in missing
    }


class PurchaseWorkflow:
    """Drive one customer, agent or employee through a policy purchase."""

    def __init__(
        self,
        context: PurchaseContext,
        *,
        session_store: QuoteSessionStore,
        quote_engine: PremiumQuoteEngine,
        add_on_catalog: AddOnCatalog,
        payment_gateway: PaymentGatewayPort,
        issuer: PolicyIssuer,
        today: Callable[[], date] | None = None,
    ) -> None:
        """Initialize workflow for ``context`` at the first step."""
        self._context = context
        self._sessions = session_store
        self._quotes = quote_engine
        self._add_ons = add_on_catalog
        self._payments = payment_gateway
        self._issuer = issuer
        self._today = today or (lambda: datetime.now(timezone.utc).date())
        self._state = WorkflowState()

    @property
    def context(self) -> PurchaseContext:
        """Who is driving this workflow."""
        return self._context

    @property
    def state(self) -> WorkflowState:
        """Current wizard state."""
        return self._state

    @property
    def draft(self) -> PurchaseDraft:
        """Current draft."""
        return self._state.draft

    # Resume

    @beartype
    async def load(self) -> Result[QuoteSession | None, str]:
        """Look up an incomplete session for this contact and hold it for resume."""
        result = await self._sessions.find_incomplete(self._context.session_key)
        if isinstance(result, Err):
            logger.warning(
                "Could not look up quote session for %s: %s",
                self._context.session_key,
                result.err_value,
            )
            return result

        session = result.unwrap()
        self._replace(pending_session=session)
        return Ok(session)

    @beartype
    async def resume(self) -> Result[WorkflowState, str]:
        """Restore the held session's draft and jump to its recorded step."""
        session = self._state.pending_session
        if session is None:
            return Err("No quote session to resume")
        if not session.is_resumable:
            return Err("Quote session is no longer active")

        try:
            draft = self.draft_from_session(session)
        except ValidationError as e:
            logger.warning("Quote session %s could not be restored: %s", session.id, e)
            return Err(f"Quote session could not be restored: {e.error_count()} invalid fields")

        self._state = WorkflowState(
            step=session.current_step,
            draft=draft,
            session_id=session.id,
            completion_percentage=completion_for(session.current_step),
        )
        logger.info("Resumed quote session %s at %s", session.id, session.current_step.value)
        return Ok(self._state)

    @beartype
    async def discard(self) -> Result[WorkflowState, str]:
        """Discard the pending or active session and restart at the first step."""
        if self._state.submitting:
            return Err("Purchase submission is in progress")

        session_id = self._state.session_id
        if session_id is None and self._state.pending_session is not None:
            session_id = self._state.pending_session.id

        if session_id is not None:
            result = await self._sessions.discard(session_id)
            if isinstance(result, Err):
                logger.warning("Failed to discard quote session %s: %s", session_id, result.err_value)

        self._state = WorkflowState()
        return Ok(self._state)

    @beartype
    async def cancel(self) -> Result[WorkflowState, str]:
        """Abandon the purchase before submission."""
        if self._state.processing_payment:
            return Err("Cannot cancel while payment is processing")
        return await self.discard()

    @staticmethod
    def draft_from_session(session: QuoteSession) -> PurchaseDraft:
        """Rebuild a draft from the serialized fields of ``session``."""
        proposal = session.proposal_data or {}
        return PurchaseDraft.model_validate(
            {
                "line_of_business": session.line_of_business,
                "provider_id": session.selected_insurer_id,
                "provider_name": session.selected_insurer_name,
                "product_id": session.product_id,
                "product_name": session.product_name,
                "customer_details": proposal.get("customer_details"),
                "selected_quote": session.selected_quote,
                "selected_add_ons": session.addons_selected,
                "policy_data": proposal.get("policy_data") or {},
                "payment_result": session.payment_result,
                "on_behalf_of": proposal.get("on_behalf_of"),
            }
        )

    # Field updates

    @beartype
    async def select_line_of_business(
        self, line_of_business: LineOfBusiness
    ) -> Result[WorkflowState, str]:
        """Choose the line of business; the first choice opens a quote session."""
        guard = self._check_editable()
        if isinstance(guard, Err):
            return guard

        draft = self.draft
        changes: dict[str, Any] = {"line_of_business": line_of_business}
        if draft.line_of_business is not None and draft.line_of_business != line_of_business:
            changes.update(
                provider_id=None,
                provider_name=None,
                product_id=None,
                product_name=None,
                selected_quote=None,
                selected_add_ons=[],
            )
            if (
                draft.customer_details is not None
                and draft.customer_details.line_of_business != line_of_business.value
            ):
                changes["customer_details"] = None

        self._replace(
            draft=draft.evolve(**changes), validation_errors={}, offered_quotes=None
        )

        if self._state.session_id is None:
            await self._open_session(line_of_business)
        await self._save()
        return Ok(self._state)

    @beartype
    async def update_customer_details(self, data: dict[str, Any]) -> Result[WorkflowState, str]:
        """Merge ``data`` into the customer details for the current line."""
        guard = self._check_editable()
        if isinstance(guard, Err):
            return guard

        line_of_business = self.draft.line_of_business
        if line_of_business is None:
            return Err("Select a line of business first")

        details_type = CUSTOMER_DETAILS_TYPES[line_of_business]
        current = self.draft.customer_details
        merged: dict[str, Any] = {}
        if current is not None and current.line_of_business == line_of_business.value:
            merged.update(current.model_dump(exclude_unset=True))
        merged.update(data)
        merged["line_of_business"] = line_of_business.value

        try:
            details = details_type.model_validate(merged)
        except ValidationError as e:
            errors: dict[str, list[str]] = {}
            for error in e.errors():
                field_name = ".".join(str(part) for part in error["loc"]) or "customer_details"
                errors.setdefault(field_name, []).append(error["msg"])
            self._replace(validation_errors=errors)
            return Err("Invalid customer details")

        self._replace(
            draft=self.draft.evolve(customer_details=details),
            validation_errors={},
            offered_quotes=None,
        )
        await self._save()
        return Ok(self._state)

    @beartype
    async def select_provider(self, provider_id: str, provider_name: str = "") -> Result[WorkflowState, str]:
        """Choose the insurer."""
        guard = self._check_editable()
        if isinstance(guard, Err):
            return guard

        changes: dict[str, Any] = {"provider_id": provider_id, "provider_name": provider_name}
        if self.draft.provider_id not in (None, provider_id):
            changes.update(selected_quote=None, selected_add_ons=[])

        self._replace(
            draft=self.draft.evolve(**changes), validation_errors={}, offered_quotes=None
        )
        await self._save()
        return Ok(self._state)

    @beartype
    async def select_product(self, product_id: str, product_name: str = "") -> Result[WorkflowState, str]:
        """Choose the product."""
        guard = self._check_editable()
        if isinstance(guard, Err):
            return guard

        changes: dict[str, Any] = {"product_id": product_id, "product_name": product_name}
        if self.draft.product_id not in (None, product_id):
            changes.update(selected_quote=None, selected_add_ons=[])

        self._replace(
            draft=self.draft.evolve(**changes), validation_errors={}, offered_quotes=None
        )
        await self._save()
        return Ok(self._state)

    @beartype
    async def set_on_behalf_of(self, party: OnBehalfOf | None) -> Result[WorkflowState, str]:
        """Buy for another party; only for contexts allowed to do so."""
        guard = self._check_editable()
        if isinstance(guard, Err):
            return guard
        if party is not None and not self._context.can_select_on_behalf:
            return Err("This user cannot purchase on behalf of another party")

        self._replace(draft=self.draft.evolve(on_behalf_of=party))
        await self._save()
        return Ok(self._state)

    @beartype
    async def request_quotes(
        self, request: QuoteRequest, features: list[str] | None = None
    ) -> Result[QuoteSet, str]:
        """Price the draft with the premium engine."""
        draft = self.draft
        missing = [
            FIELD_LABELS[name]
            for name in ("line_of_business", "provider_id", "product_id")
            if getattr(draft, name) is None
        ]
        if missing:
            return Err(f"Cannot quote without: {', '.join(missing)}")

        assert draft.line_of_business is not None  # nosec B101 - checked above
        result = self._quotes.quote_set(
            line_of_business=draft.line_of_business,
            provider_id=draft.provider_id or "",
            provider_name=draft.provider_name or draft.provider_id or "",
            product_id=draft.product_id or "",
            product_name=draft.product_name or draft.product_id or "",
            request=request,
            details=draft.customer_details,
            as_of=self._today(),
            features=features,
        )
        if isinstance(result, Ok):
            self._replace(offered_quotes=result.unwrap())
        return result

    @beartype
    async def select_quote(self, quote_id: UUID) -> Result[WorkflowState, str]:
        """Choose one of the quotes last offered by :meth:`request_quotes`.

        Already selected add-ons are repriced against the chosen quote.
        """
        guard = self._check_editable()
        if isinstance(guard, Err):
            return guard

        offered = self._state.offered_quotes
        quote: Quote | None = None
        if offered is not None:
            quote = next((q for q in offered.quotes if q.id == quote_id), None)
        if quote is None:
            return Err("Quote was not offered for this purchase")
        if quote.line_of_business != self.draft.line_of_business:
            return Err("Quote is for a different line of business")
        if (quote.provider_id, quote.product_id) != (
            self.draft.provider_id,
            self.draft.product_id,
        ):
            return Err("Quote does not match the selected provider and product")
        if quote.total_premium <= 0:
            return Err("Quote premium must be greater than zero")

        repriced = [
            add_on
            for add_on in (
                self._add_ons.get(quote.line_of_business, selected.id, quote)
                for selected in self.draft.selected_add_ons
            )
            if add_on is not None
        ]
        self._replace(
            draft=self.draft.evolve(selected_quote=quote, selected_add_ons=repriced),
            validation_errors={},
        )
        await self._save()
        return Ok(self._state)

    @beartype
    def available_add_ons(self) -> list[AddOn]:
        """Add-ons offered for the current line and quote."""
        return self._add_ons.available(self.draft.line_of_business, self.draft.selected_quote)

    @beartype
    async def toggle_add_on(self, add_on_id: str) -> Result[WorkflowState, str]:
        """Select the add-on if unselected, otherwise remove it."""
        selected_ids = [add_on.id for add_on in self.draft.selected_add_ons]
        if add_on_id in selected_ids:
            selected_ids.remove(add_on_id)
        else:
            selected_ids.append(add_on_id)
        return await self.set_add_ons(selected_ids)

    @beartype
    async def set_add_ons(self, add_on_ids: list[str]) -> Result[WorkflowState, str]:
        """Replace the add-on selection."""
        guard = self._check_editable()
        if isinstance(guard, Err):
            return guard
        line_of_business = self.draft.line_of_business
        if line_of_business is None:
            return Err("Select a line of business first")

        selected: list[AddOn] = []
        for add_on_id in dict.fromkeys(add_on_ids):
            add_on = self._add_ons.get(line_of_business, add_on_id, self.draft.selected_quote)
            if add_on is None:
                return Err(f"Add-on {add_on_id} is not offered for {line_of_business.value}")
            selected.append(add_on)

        self._replace(draft=self.draft.evolve(selected_add_ons=selected))
        await self._save()
        return Ok(self._state)

    # Navigation

    @beartype
    async def next_step(self) -> Result[WorkflowState, str]:
        """Advance when the current step's required fields are filled."""
        if self._state.processing_payment:
            return Err("Navigation is disabled while payment is processing")

        step = self._state.step
        if step == PurchaseStep.REVIEW:
            return Err("Review is the final step; submit to complete the purchase")

        errors = required_field_errors(step, self.draft)
        if errors:
            self._replace(validation_errors=errors)
            return Err(f"Step {step.value} is incomplete: {', '.join(errors)}")

        self._move_to(PURCHASE_STEPS[PURCHASE_STEPS.index(step) + 1])
        await self._save()
        return Ok(self._state)

    @beartype
    async def previous_step(self) -> Result[WorkflowState, str]:
        """Go back one step; not possible from the first step."""
        if self._state.processing_payment:
            return Err("Navigation is disabled while payment is processing")

        step = self._state.step
        if step == PurchaseStep.LOB:
            return Err("No previous step available")

        self._move_to(PURCHASE_STEPS[PURCHASE_STEPS.index(step) - 1])
        await self._save()
        return Ok(self._state)

    # Payment and submission

    @beartype
    async def pay(
        self,
        gateway: PaymentGateway = PaymentGateway.RAZORPAY,
        method: PaymentMethod = PaymentMethod.CARD,
    ) -> Result[PaymentResult, str]:
        """Charge the final premium; success moves the wizard to review."""
        if self._state.step != PurchaseStep.PAYMENT:
            return Err("Payment is only possible at the payment step")
        if self._state.processing_payment:
            return Err("Payment is already processing")
        if self.draft.payment_result is not None:
            return Err("Purchase is already paid")
        if self.draft.selected_quote is None:
            return Err("Select a quote before paying")

        amount = self.draft.final_premium
        if amount <= 0:
            return Err("Premium must be greater than zero to pay")

        try:
            request = PaymentRequest(amount=amount, gateway=gateway, method=method)
        except ValidationError as e:
            return Err(f"Invalid payment request: {e.error_count()} invalid fields")

        self._replace(processing_payment=True)
        try:
            result = await self._payments.authorize(request)
        finally:
            self._replace(processing_payment=False)

        if isinstance(result, Err):
            logger.info("Payment failed for %s: %s", self._context.session_key, result.err_value)
            self._replace(validation_errors={"payment": [result.err_value]})
            await self._save(payment_status=PaymentStatus.FAILED)
            return result

        payment = result.unwrap()
        self._replace(draft=self.draft.evolve(payment_result=payment))
        self._move_to(PurchaseStep.REVIEW)
        await self._save(payment_status=PaymentStatus.SUCCESS)
        return Ok(payment)

    @beartype
    async def submit(self) -> Result[Policy, str]:
        """Issue the policy and start over at the first step."""
        if self._state.step != PurchaseStep.REVIEW:
            return Err("Purchase can only be submitted from the review step")
        if self._state.submitting:
            return Err("Purchase submission is already in progress")
        if self.draft.payment_result is None:
            return Err("Payment must succeed before submission")

        draft = self.draft.evolve(policy_data=self.policy_payload(self.draft))
        self._replace(submitting=True)
        try:
            result = await self._issuer.issue(draft, self._context, self._state.session_id)
        finally:
            self._replace(submitting=False)

        if isinstance(result, Err):
            logger.error("Policy issuance failed: %s", result.err_value)
            return result

        self._state = WorkflowState()
        return result

    @staticmethod
    def policy_payload(draft: PurchaseDraft) -> dict[str, Any]:
        """Policy payload built from the draft at submission."""
        return {
            "customer_details": draft.customer_details.model_dump(mode="json")
            if draft.customer_details
            else None,
            "provider_name": draft.provider_name,
            "product_name": draft.product_name,
            "quote": draft.selected_quote.model_dump(mode="json")
            if draft.selected_quote
            else None,
            "add_ons": [add_on.model_dump(mode="json") for add_on in draft.selected_add_ons],
            "add_ons_premium": str(draft.add_ons_premium),
            "final_premium": str(draft.final_premium),
            "on_behalf_of": draft.on_behalf_of.model_dump(mode="json")
            if draft.on_behalf_of
            else None,
        }

    # Internals

    def _check_editable(self) -> Result[None, str]:
        if self._state.processing_payment:
            return Err("Cannot change the purchase while payment is processing")
        if self._state.submitting:
            return Err("Purchase submission is in progress")
        if self.draft.payment_result is not None:
            return Err("Purchase is already paid")
        return Ok(None)

    def _replace(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)

    def _move_to(self, step: PurchaseStep) -> None:
        self._replace(
            step=step,
            validation_errors={},
            completion_percentage=completion_for(step),
        )

    async def _open_session(self, line_of_business: LineOfBusiness) -> None:
        try:
            result = await self._sessions.create(
                QuoteSessionCreate(
                    contact_key=self._context.session_key,
                    line_of_business=line_of_business,
                    current_step=self._state.step,
                )
            )
        except Exception as e:
            logger.warning("Quote session could not be created: %s", e)
            return

        if isinstance(result, Err):
            logger.warning("Quote session could not be created: %s", result.err_value)
            return
        self._replace(session_id=result.unwrap().id, pending_session=None)

    async def _save(self, payment_status: PaymentStatus | None = None) -> None:
        session_id = self._state.session_id
        if session_id is None:
            return

        update = self._session_update(payment_status)
        try:
            result = await self._sessions.update(session_id, update)
        except Exception as e:
            logger.warning("Quote session %s auto-save failed: %s", session_id, e)
            return

        if isinstance(result, Err):
            logger.warning("Quote session %s auto-save failed: %s", session_id, result.err_value)

    def _session_update(self, payment_status: PaymentStatus | None) -> QuoteSessionUpdate:
        draft = self.draft
        fields: dict[str, Any] = {
            "line_of_business": draft.line_of_business,
            "product_id": draft.product_id,
            "product_name": draft.product_name,
            "selected_insurer_id": draft.provider_id,
            "selected_insurer_name": draft.provider_name,
            "selected_quote": draft.selected_quote.model_dump(mode="json")
            if draft.selected_quote
            else None,
            "addons_selected": [
                add_on.model_dump(mode="json") for add_on in draft.selected_add_ons
            ],
            "proposal_data": {
                "customer_details": draft.customer_details.model_dump(mode="json")
                if draft.customer_details
                else None,
                "policy_data": draft.policy_data,
                "on_behalf_of": draft.on_behalf_of.model_dump(mode="json")
                if draft.on_behalf_of
                else None,
            },
            "payment_result": draft.payment_result.model_dump(mode="json")
            if draft.payment_result
            else None,
            "current_step": self._state.step,
        }
        if payment_status is not None:
            fields["payment_status"] = payment_status
        return QuoteSessionUpdate(**fields)


class PurchaseWorkflowRegistry:
    """In-process workflows addressed by id, one per started purchase.

    Workflows idle for longer than ``idle_seconds`` are forgotten on the next
    access. Their quote session stays in the database, so the purchase can
    still be resumed from a new workflow.
    """

    def __init__(
        self,
        factory: Callable[[PurchaseContext], PurchaseWorkflow],
        *,
        idle_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._idle_seconds = (
            idle_seconds if idle_seconds is not None else get_settings().workflow_idle_seconds
        )
        self._clock = clock
        self._workflows: dict[UUID, PurchaseWorkflow] = {}
        self._last_seen: dict[UUID, float] = {}

    def start(self, context: PurchaseContext) -> tuple[UUID, PurchaseWorkflow]:
        """Create and register a workflow for ``context``."""
        self.evict_idle()
        workflow_id = uuid4()
        workflow = self._factory(context)
        self._workflows[workflow_id] = workflow
        self._last_seen[workflow_id] = self._clock()
        return workflow_id, workflow

    def get(self, workflow_id: UUID) -> PurchaseWorkflow | None:
        """Registered workflow, or None; a hit counts as activity."""
        self.evict_idle()
        workflow = self._workflows.get(workflow_id)
        if workflow is not None:
            self._last_seen[workflow_id] = self._clock()
        return workflow

    def remove(self, workflow_id: UUID) -> None:
        """Forget a workflow; unknown ids are ignored."""
        self._workflows.pop(workflow_id, None)
        self._last_seen.pop(workflow_id, None)

    def evict_idle(self) -> int:
        """Forget idle workflows that are not paying or submitting."""
        cutoff = self._clock() - self._idle_seconds
        idle = [
            workflow_id
            for workflow_id, seen in self._last_seen.items()
            if seen < cutoff
            and not self._workflows[workflow_id].state.processing_payment
            and not self._workflows[workflow_id].state.submitting
        ]
        for workflow_id in idle:
            self.remove(workflow_id)
        if idle:
            logger.info("Evicted %s idle purchase workflow(s)", len(idle))
        return len(idle)

    def __len__(self) -> int:
        return len(self._workflows)
