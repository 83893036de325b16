"""Unit tests for the purchase wizard.

The workflow runs against in-memory fakes for the session store, payment
gateway and issuer; pricing and add-ons use the real engine and catalog.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

import pytest

from broker_core.core.result_types import Err
from broker_core.models.common import InitiatorRole, LineOfBusiness, PartyType
from broker_core.models.payment import PaymentStatus
from broker_core.models.purchase import (
    PURCHASE_STEPS,
    HealthDetails,
    OnBehalfOf,
    PurchaseContext,
    PurchaseDraft,
    PurchaseStep,
)
from broker_core.models.quote import QuoteRequest, QuoteSet
from broker_core.services.addon_catalog import AddOnCatalog
from broker_core.services.payment_simulator import DECLINED_MESSAGE
from broker_core.services.premium_quote_engine import PremiumQuoteEngine
from broker_core.services.purchase_workflow import (
    PurchaseWorkflow,
    PurchaseWorkflowRegistry,
    WorkflowState,
    completion_for,
    required_field_errors,
)
from tests.fixtures.fakes import InMemorySessionStore, RecordingIssuer, ScriptedPaymentGateway
from tests.fixtures.test_data import make_context, make_quote

MOTOR_DETAILS: dict[str, Any] = {
    "full_name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "+919800000001",
    "date_of_birth": date(1990, 4, 12),
    "vehicle_registration": "KA01AB1234",
    "vehicle_manufacturer": "Maruti",
    "manufacturing_year": 2019,
    "ncb_percent": Decimal("20"),
}


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def gateway() -> ScriptedPaymentGateway:
    return ScriptedPaymentGateway()


@pytest.fixture
def issuer(sessions: InMemorySessionStore) -> RecordingIssuer:
    return RecordingIssuer(sessions)


@pytest.fixture
def build(
    sessions: InMemorySessionStore,
    gateway: ScriptedPaymentGateway,
    issuer: RecordingIssuer,
    today: date,
) -> Any:
    """Factory for workflows sharing the same fakes."""

    def factory(context: PurchaseContext | None = None) -> PurchaseWorkflow:
        return PurchaseWorkflow(
            context or make_context(),
            session_store=sessions,
            quote_engine=PremiumQuoteEngine(tax_rate=Decimal("0.18")),
            add_on_catalog=AddOnCatalog(),
            payment_gateway=gateway,
            issuer=issuer,
            today=lambda: today,
        )

    return factory


@pytest.fixture
def workflow(build: Any) -> PurchaseWorkflow:
    return build()


async def walk_to_quote(
    workflow: PurchaseWorkflow, details: dict[str, Any] = MOTOR_DETAILS
) -> QuoteSet:
    """Fill every step before the quote and return the offered quotes."""
    assert (await workflow.select_line_of_business(LineOfBusiness.MOTOR)).is_ok()
    assert (await workflow.next_step()).is_ok()
    assert (await workflow.update_customer_details(details)).is_ok()
    assert (await workflow.next_step()).is_ok()
    assert (await workflow.select_provider("ins-1", "Acme General")).is_ok()
    assert (await workflow.next_step()).is_ok()
    assert (await workflow.select_product("motor-comp", "Motor Comprehensive")).is_ok()
    assert (await workflow.next_step()).is_ok()
    return (await workflow.request_quotes(QuoteRequest(sum_insured=Decimal("500000")))).unwrap()


async def walk_to_add_ons(workflow: PurchaseWorkflow) -> None:
    """Fill every step up to and including the quote."""
    quote_set = await walk_to_quote(workflow)
    assert (await workflow.select_quote(quote_set.primary.id)).is_ok()
    assert (await workflow.next_step()).is_ok()


async def walk_to_payment(workflow: PurchaseWorkflow) -> None:
    await walk_to_add_ons(workflow)
    assert (await workflow.toggle_add_on("zero-dep")).is_ok()
    assert (await workflow.next_step()).is_ok()


class TestStepContracts:
    """Required fields gate forward navigation."""

    @pytest.mark.asyncio
    async def test_lob_required(self, workflow: PurchaseWorkflow) -> None:
        result = await workflow.next_step()

        assert isinstance(result, Err)
        assert result.err_value == "Step LOB is incomplete: line_of_business"
        assert workflow.state.validation_errors == {
            "line_of_business": ["Line of business is required"]
        }
        assert workflow.state.step == PurchaseStep.LOB

    @pytest.mark.asyncio
    async def test_customer_details_missing_fields(self, workflow: PurchaseWorkflow) -> None:
        await workflow.select_line_of_business(LineOfBusiness.MOTOR)
        await workflow.next_step()
        await workflow.update_customer_details({"full_name": "Asha Rao"})

        result = await workflow.next_step()

        assert isinstance(result, Err)
        assert set(workflow.state.validation_errors) == {
            "email",
            "phone",
            "date_of_birth",
            "vehicle_registration",
            "vehicle_manufacturer",
        }
        assert workflow.state.validation_errors["email"] == ["Email is required"]

    @pytest.mark.asyncio
    async def test_invalid_customer_details_reported_per_field(
        self, workflow: PurchaseWorkflow
    ) -> None:
        await workflow.select_line_of_business(LineOfBusiness.MOTOR)

        result = await workflow.update_customer_details({"manufacturing_year": 1066})

        assert isinstance(result, Err)
        assert "manufacturing_year" in workflow.state.validation_errors
        assert workflow.draft.customer_details is None

    def test_details_for_other_line_block_step(self) -> None:
        draft = PurchaseDraft(
            line_of_business=LineOfBusiness.MOTOR, customer_details=HealthDetails()
        )

        errors = required_field_errors(PurchaseStep.CUSTOMER_DETAILS, draft)

        assert list(errors) == ["customer_details"]

    def test_completion_percentage(self) -> None:
        assert completion_for(PurchaseStep.LOB) == 0
        assert completion_for(PurchaseStep.PAYMENT) == 75
        assert completion_for(PURCHASE_STEPS[-1]) == 87

    @pytest.mark.asyncio
    async def test_no_previous_step_from_first(self, workflow: PurchaseWorkflow) -> None:
        result = await workflow.previous_step()

        assert isinstance(result, Err)
        assert result.err_value == "No previous step available"

    @pytest.mark.asyncio
    async def test_previous_keeps_draft(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_add_ons(workflow)
        quote = workflow.draft.selected_quote

        result = await workflow.previous_step()

        assert result.unwrap().step == PurchaseStep.QUOTE
        assert workflow.draft.selected_quote == quote

    @pytest.mark.asyncio
    async def test_cannot_quote_without_product(self, workflow: PurchaseWorkflow) -> None:
        await workflow.select_line_of_business(LineOfBusiness.MOTOR)

        result = await workflow.request_quotes(QuoteRequest())

        assert isinstance(result, Err)
        assert result.err_value == "Cannot quote without: Provider, Product"


class TestDraftChanges:
    """Dependent fields are cleared when their parent changes."""

    @pytest.mark.asyncio
    async def test_changing_line_clears_downstream(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_add_ons(workflow)
        version = workflow.draft.version

        await workflow.select_line_of_business(LineOfBusiness.HEALTH)

        draft = workflow.draft
        assert draft.line_of_business == LineOfBusiness.HEALTH
        assert draft.provider_id is None
        assert draft.product_id is None
        assert draft.selected_quote is None
        assert draft.customer_details is None
        assert draft.version > version

    @pytest.mark.asyncio
    async def test_changing_provider_clears_quote(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_add_ons(workflow)
        await workflow.toggle_add_on("zero-dep")

        await workflow.select_provider("ins-2", "Other General")

        assert workflow.draft.selected_quote is None
        assert workflow.draft.selected_add_ons == []
        assert workflow.draft.customer_details is not None

    @pytest.mark.asyncio
    async def test_add_on_toggle_and_final_premium(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_add_ons(workflow)

        await workflow.toggle_add_on("zero-dep")
        assert workflow.draft.final_premium == Decimal("19152")

        await workflow.toggle_add_on("zero-dep")
        assert workflow.draft.selected_add_ons == []
        assert workflow.draft.final_premium == Decimal("16992")

    @pytest.mark.asyncio
    async def test_unknown_add_on_rejected(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_add_ons(workflow)

        result = await workflow.set_add_ons(["maternity-cover"])

        assert isinstance(result, Err)
        assert result.err_value == "Add-on maternity-cover is not offered for Motor"

    @pytest.mark.asyncio
    async def test_on_behalf_requires_permission(self, workflow: PurchaseWorkflow) -> None:
        result = await workflow.set_on_behalf_of(OnBehalfOf(type=PartyType.CUSTOMER, id="cust-5"))

        assert isinstance(result, Err)
        assert workflow.draft.on_behalf_of is None

    @pytest.mark.asyncio
    async def test_on_behalf_allowed_for_employee(self, build: Any) -> None:
        workflow = build(
            make_context(
                initiated_by_role=InitiatorRole.EMPLOYEE,
                initiated_by_id="emp-3",
                can_select_on_behalf=True,
            )
        )

        result = await workflow.set_on_behalf_of(OnBehalfOf(type=PartyType.AGENT, id="agent-9"))

        assert result.is_ok()
        assert workflow.draft.on_behalf_of is not None
        assert workflow.draft.on_behalf_of.id == "agent-9"


class TestQuoteSelection:
    """Only quotes offered for the current provider and product can be chosen."""

    @pytest.mark.asyncio
    async def test_unoffered_quote_rejected(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_quote(workflow)
        forged = make_quote(
            base_premium=Decimal("1"), tax_amount=Decimal("0"), total_premium=Decimal("1")
        )

        result = await workflow.select_quote(forged.id)

        assert isinstance(result, Err)
        assert result.err_value == "Quote was not offered for this purchase"
        assert workflow.draft.selected_quote is None

    @pytest.mark.asyncio
    async def test_comparison_quote_rejected(self, workflow: PurchaseWorkflow) -> None:
        quote_set = await walk_to_quote(workflow)
        comparison = quote_set.comparisons[0]

        result = await workflow.select_quote(comparison.id)

        assert isinstance(result, Err)
        assert result.err_value == "Quote does not match the selected provider and product"

    @pytest.mark.asyncio
    async def test_provider_change_forgets_offered_quotes(
        self, workflow: PurchaseWorkflow
    ) -> None:
        quote_set = await walk_to_quote(workflow)
        await workflow.select_provider("ins-2", "Other General")

        result = await workflow.select_quote(quote_set.primary.id)

        assert isinstance(result, Err)
        assert result.err_value == "Quote was not offered for this purchase"
        assert workflow.state.offered_quotes is None

    @pytest.mark.asyncio
    async def test_zero_premium_quote_rejected(self, workflow: PurchaseWorkflow) -> None:
        """A full no-claim bonus prices the motor quote at zero."""
        full_bonus = {**MOTOR_DETAILS, "ncb_percent": Decimal("100")}
        quote_set = await walk_to_quote(workflow, full_bonus)
        assert quote_set.primary.total_premium == Decimal("0")

        result = await workflow.select_quote(quote_set.primary.id)

        assert isinstance(result, Err)
        assert result.err_value == "Quote premium must be greater than zero"
        assert isinstance(await workflow.next_step(), Err)
        assert workflow.state.step == PurchaseStep.QUOTE

    def test_zero_premium_blocks_quote_step(self) -> None:
        free = make_quote(
            base_premium=Decimal("0"), tax_amount=Decimal("0"), total_premium=Decimal("0")
        )
        draft = PurchaseDraft(line_of_business=LineOfBusiness.MOTOR, selected_quote=free)

        assert required_field_errors(PurchaseStep.QUOTE, draft) == {
            "selected_quote": ["Quote premium must be greater than zero"]
        }

    @pytest.mark.asyncio
    async def test_zero_premium_payment_is_an_error(
        self, workflow: PurchaseWorkflow, gateway: ScriptedPaymentGateway
    ) -> None:
        """A restored draft can still carry a zero quote into payment."""
        free = make_quote(
            base_premium=Decimal("0"), tax_amount=Decimal("0"), total_premium=Decimal("0")
        )
        workflow._state = WorkflowState(
            step=PurchaseStep.PAYMENT,
            draft=PurchaseDraft(line_of_business=LineOfBusiness.MOTOR, selected_quote=free),
        )

        result = await workflow.pay()

        assert isinstance(result, Err)
        assert result.err_value == "Premium must be greater than zero to pay"
        assert gateway.requests == []


class TestSessionPersistence:
    """Auto-save, resume and discard."""

    @pytest.mark.asyncio
    async def test_first_line_selection_opens_session(
        self, workflow: PurchaseWorkflow, sessions: InMemorySessionStore
    ) -> None:
        assert workflow.state.session_id is None

        await workflow.select_line_of_business(LineOfBusiness.MOTOR)
        await workflow.next_step()

        session_id = workflow.state.session_id
        assert session_id is not None
        session = sessions.sessions[session_id]
        assert session.contact_key == "+919800000001"
        assert session.current_step == PurchaseStep.CUSTOMER_DETAILS

    @pytest.mark.asyncio
    async def test_resume_restores_draft_and_step(
        self, workflow: PurchaseWorkflow, build: Any
    ) -> None:
        await walk_to_add_ons(workflow)
        await workflow.toggle_add_on("zero-dep")
        original = workflow.state

        resumed = build()
        loaded = await resumed.load()
        assert loaded.unwrap() is not None

        result = await resumed.resume()

        state = result.unwrap()
        assert state.step == PurchaseStep.ADD_ONS
        assert state.session_id == original.session_id
        assert state.completion_percentage == completion_for(PurchaseStep.ADD_ONS)
        for name in (
            "line_of_business",
            "provider_id",
            "provider_name",
            "product_id",
            "product_name",
            "customer_details",
            "selected_quote",
            "selected_add_ons",
        ):
            assert getattr(state.draft, name) is not None
        assert state.draft.model_dump(mode="json", exclude={"version"}) == (
            original.draft.model_dump(mode="json", exclude={"version"})
        )

    @pytest.mark.asyncio
    async def test_resume_without_session(self, workflow: PurchaseWorkflow) -> None:
        await workflow.load()

        result = await workflow.resume()

        assert isinstance(result, Err)
        assert result.err_value == "No quote session to resume"

    @pytest.mark.asyncio
    async def test_discard_then_reselect_opens_new_session(
        self, workflow: PurchaseWorkflow, sessions: InMemorySessionStore
    ) -> None:
        await workflow.select_line_of_business(LineOfBusiness.MOTOR)
        await workflow.update_customer_details({"full_name": "Asha Rao"})
        first_id = workflow.state.session_id

        await workflow.discard()
        assert workflow.state == WorkflowState()

        await workflow.select_line_of_business(LineOfBusiness.MOTOR)

        second_id = workflow.state.session_id
        assert second_id is not None
        assert second_id != first_id
        assert sessions.sessions[first_id].discarded_at is not None
        assert workflow.draft.customer_details is None
        assert sessions.sessions[second_id].proposal_data["customer_details"] is None

    @pytest.mark.asyncio
    async def test_discard_pending_session(
        self, workflow: PurchaseWorkflow, build: Any, sessions: InMemorySessionStore
    ) -> None:
        await workflow.select_line_of_business(LineOfBusiness.MOTOR)
        session_id = workflow.state.session_id

        other = build()
        await other.load()
        await other.discard()

        assert sessions.sessions[session_id].discarded_at is not None
        assert (await build().load()).unwrap() is None

    @pytest.mark.asyncio
    async def test_save_failures_do_not_block(
        self,
        workflow: PurchaseWorkflow,
        sessions: InMemorySessionStore,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        await workflow.select_line_of_business(LineOfBusiness.MOTOR)
        sessions.fail_updates = True

        with caplog.at_level(logging.WARNING):
            result = await workflow.next_step()

        assert result.is_ok()
        assert workflow.state.step == PurchaseStep.CUSTOMER_DETAILS
        assert "auto-save failed" in caplog.text


class TestPaymentAndSubmission:
    """Charging the final premium and issuing the policy."""

    @pytest.mark.asyncio
    async def test_purchase_completes_session(
        self,
        workflow: PurchaseWorkflow,
        gateway: ScriptedPaymentGateway,
        issuer: RecordingIssuer,
        sessions: InMemorySessionStore,
    ) -> None:
        """No prior session: one is opened and completed with the policy id."""
        await walk_to_payment(workflow)
        session_id = workflow.state.session_id
        assert session_id is not None

        payment = await workflow.pay()
        assert payment.is_ok()
        assert workflow.state.step == PurchaseStep.REVIEW
        assert gateway.requests[0].amount == Decimal("19152")
        assert sessions.sessions[session_id].payment_status == PaymentStatus.SUCCESS

        result = await workflow.submit()

        assert result.is_ok()
        policy = result.unwrap()
        session = sessions.sessions[session_id]
        assert session.is_complete
        assert session.policy_id == policy.id
        assert workflow.state == WorkflowState()

        issued_draft, context, issued_session = issuer.calls[0]
        assert issued_session == session_id
        assert context.initiated_by_id == "agent-7"
        assert issued_draft.policy_data["final_premium"] == "19152"
        assert issued_draft.policy_data["add_ons_premium"] == "2160"

    @pytest.mark.asyncio
    async def test_declined_payment_can_be_retried(
        self,
        workflow: PurchaseWorkflow,
        gateway: ScriptedPaymentGateway,
        sessions: InMemorySessionStore,
    ) -> None:
        gateway.outcomes = [DECLINED_MESSAGE]
        await walk_to_payment(workflow)

        first = await workflow.pay()

        assert isinstance(first, Err)
        assert workflow.state.step == PurchaseStep.PAYMENT
        assert workflow.state.validation_errors == {"payment": [DECLINED_MESSAGE]}
        assert not workflow.state.processing_payment
        assert workflow.draft.payment_result is None
        session_id = workflow.state.session_id
        assert sessions.sessions[session_id].payment_status == PaymentStatus.FAILED

        second = await workflow.pay()

        assert second.is_ok()
        assert workflow.state.step == PurchaseStep.REVIEW
        assert workflow.state.validation_errors == {}

    @pytest.mark.asyncio
    async def test_pay_only_at_payment_step(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_add_ons(workflow)

        result = await workflow.pay()

        assert isinstance(result, Err)
        assert result.err_value == "Payment is only possible at the payment step"

    @pytest.mark.asyncio
    async def test_paid_draft_is_locked(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_payment(workflow)
        await workflow.pay()

        result = await workflow.select_provider("ins-2")

        assert isinstance(result, Err)
        assert result.err_value == "Purchase is already paid"
        assert (await workflow.pay()).err_value == "Payment is only possible at the payment step"

    @pytest.mark.asyncio
    async def test_review_is_last_step(self, workflow: PurchaseWorkflow) -> None:
        await walk_to_payment(workflow)
        await workflow.pay()

        result = await workflow.next_step()

        assert isinstance(result, Err)
        assert result.err_value.startswith("Review is the final step")

    @pytest.mark.asyncio
    async def test_failed_submission_keeps_state(
        self, workflow: PurchaseWorkflow, issuer: RecordingIssuer
    ) -> None:
        await walk_to_payment(workflow)
        await workflow.pay()
        before = workflow.state
        issuer.error = "Failed to create policy: disk full"

        result = await workflow.submit()

        assert isinstance(result, Err)
        assert workflow.state.model_dump() == before.model_dump()
        assert not workflow.state.submitting

    @pytest.mark.asyncio
    async def test_submit_requires_review(self, workflow: PurchaseWorkflow) -> None:
        result = await workflow.submit()

        assert isinstance(result, Err)
        assert result.err_value == "Purchase can only be submitted from the review step"


class TestRegistry:
    """Workflows addressed by id."""

    def test_start_get_remove(self, build: Any) -> None:
        registry = PurchaseWorkflowRegistry(build)

        workflow_id, workflow = registry.start(make_context())

        assert registry.get(workflow_id) is workflow
        assert len(registry) == 1
        registry.remove(workflow_id)
        registry.remove(workflow_id)
        assert registry.get(workflow_id) is None
        assert len(registry) == 0

    def test_idle_workflows_evicted(self, build: Any) -> None:
        now = [1000.0]
        registry = PurchaseWorkflowRegistry(build, idle_seconds=60, clock=lambda: now[0])
        stale_id, _ = registry.start(make_context())
        now[0] += 30
        active_id, _ = registry.start(make_context())
        now[0] += 45

        assert registry.get(stale_id) is None
        assert registry.get(active_id) is not None
        assert len(registry) == 1

    def test_access_keeps_workflow_alive(self, build: Any) -> None:
        now = [0.0]
        registry = PurchaseWorkflowRegistry(build, idle_seconds=60, clock=lambda: now[0])
        workflow_id, workflow = registry.start(make_context())

        for _ in range(3):
            now[0] += 50
            assert registry.get(workflow_id) is workflow

    def test_processing_payment_not_evicted(self, build: Any) -> None:
        now = [0.0]
        registry = PurchaseWorkflowRegistry(build, idle_seconds=60, clock=lambda: now[0])
        workflow_id, workflow = registry.start(make_context())
        workflow._state = workflow.state.model_copy(update={"processing_payment": True})
        now[0] += 120

        assert registry.evict_idle() == 0
        assert registry.get(workflow_id) is workflow
