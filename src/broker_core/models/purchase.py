# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Purchase wizard models: steps, customer details and the draft.

Customer details are a tagged union keyed by line of business. Every
variant can be built incrementally, so required fields are checked at the
step boundary via :py:meth:`CustomerDetailsBase.missing_fields` instead of
at construction.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig
from .common import InitiatorRole, LineOfBusiness, PartyType
from .payment import PaymentResult
from .quote import AddOn, Quote


class PurchaseStep(str, Enum):
    """Ordered wizard steps."""

    LOB = "LOB"
    CUSTOMER_DETAILS = "CustomerDetails"
    PROVIDER = "Provider"
    PRODUCT = "Product"
    QUOTE = "Quote"
    ADD_ONS = "AddOns"
    PAYMENT = "Payment"
    REVIEW = "Review"


PURCHASE_STEPS: tuple[PurchaseStep, ...] = tuple(PurchaseStep)


class CustomerDetailsBase(BaseModelConfig):
    """Fields collected for every line of business."""

    BASIC_REQUIRED: ClassVar[tuple[str, ...]] = (
        "full_name",
        "email",
        "phone",
        "date_of_birth",
    )
    LOB_REQUIRED: ClassVar[tuple[str, ...]] = ()

    line_of_business: str
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    age: int | None = Field(default=None, ge=0, le=120)

    @beartype
    def missing_fields(self) -> list[str]:
        """Names of required fields that are still empty."""
        missing = []
        for name in (*self.BASIC_REQUIRED, *self.LOB_REQUIRED):
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value):
                missing.append(name)
        return missing


class MotorDetails(CustomerDetailsBase):
    """Vehicle and no-claim bonus details."""

    LOB_REQUIRED: ClassVar[tuple[str, ...]] = (
        "vehicle_registration",
        "vehicle_manufacturer",
    )

    line_of_business: Literal["Motor"] = "Motor"
    vehicle_registration: str | None = None
    vehicle_manufacturer: str | None = None
    vehicle_model: str | None = None
    manufacturing_year: int | None = Field(default=None, ge=1900, le=2100)
    fuel_type: str | None = None
    ncb_percent: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), le=Decimal("100"))


class HealthDetails(CustomerDetailsBase):
    """Physical and medical history details."""

    LOB_REQUIRED: ClassVar[tuple[str, ...]] = ("height", "weight")

    line_of_business: Literal["Health"] = "Health"
    height: Decimal | None = Field(default=None, gt=Decimal("0"))
    weight: Decimal | None = Field(default=None, gt=Decimal("0"))
    smoker: bool = False
    pre_existing_conditions: list[str] = Field(default_factory=list)


class LifeDetails(CustomerDetailsBase):
    """Income, occupation and nominee details."""

    LOB_REQUIRED: ClassVar[tuple[str, ...]] = ("annual_income", "nominee_name")

    line_of_business: Literal["Life"] = "Life"
    annual_income: Decimal | None = Field(default=None, gt=Decimal("0"))
    occupation: str | None = None
    nominee_name: str | None = None
    nominee_relation: str | None = None
    smoker: bool = False


class TravelDetails(CustomerDetailsBase):
    """Trip details."""

    LOB_REQUIRED: ClassVar[tuple[str, ...]] = ("destination", "travel_start_date")

    line_of_business: Literal["Travel"] = "Travel"
    destination: str | None = None
    travel_start_date: date | None = None
    travel_end_date: date | None = None
    travel_purpose: str | None = None

    @property
    def is_adventure(self) -> bool:
        """Whether the trip purpose is adventure travel."""
        return (self.travel_purpose or "").lower() == "adventure"


class GenericDetails(CustomerDetailsBase):
    """Basic details only, for lines without a dedicated schema."""

    line_of_business: Literal["Loan"] = "Loan"


CustomerDetails = Annotated[
    MotorDetails | HealthDetails | LifeDetails | TravelDetails | GenericDetails,
    Field(discriminator="line_of_business"),
]

CUSTOMER_DETAILS_TYPES: dict[LineOfBusiness, type[CustomerDetailsBase]] = {
    LineOfBusiness.MOTOR: MotorDetails,
    LineOfBusiness.HEALTH: HealthDetails,
    LineOfBusiness.LIFE: LifeDetails,
    LineOfBusiness.TRAVEL: TravelDetails,
    LineOfBusiness.LOAN: GenericDetails,
}


@beartype
class OnBehalfOf(BaseModelConfig):
    """Party the purchase is made for, when not the initiator."""

    type: PartyType
    id: str = Field(..., min_length=1)
    name: str = ""


@beartype
class PurchaseContext(BaseModelConfig):
    """Who is driving the wizard."""

    initiated_by_role: InitiatorRole
    initiated_by_id: str = Field(..., min_length=1)
    can_select_on_behalf: bool = False
    contact_key: str | None = Field(
        default=None,
        description="Key quote sessions are stored under; defaults to role:id",
    )

    @property
    def session_key(self) -> str:
        """Contact key used to find the caller's quote session."""
        return self.contact_key or f"{self.initiated_by_role.value}:{self.initiated_by_id}"


@beartype
class PurchaseDraft(BaseModelConfig):
    """Versioned union of all step outputs.

    Drafts are never mutated; :py:meth:`evolve` returns the next version.
    """

    version: int = Field(default=0, ge=0)
    line_of_business: LineOfBusiness | None = None
    provider_id: str | None = None
    provider_name: str | None = None
    product_id: str | None = None
    product_name: str | None = None
    customer_details: CustomerDetails | None = None
    selected_quote: Quote | None = None
    selected_add_ons: list[AddOn] = Field(default_factory=list)
    policy_data: dict[str, Any] = Field(default_factory=dict)
    payment_result: PaymentResult | None = None
    on_behalf_of: OnBehalfOf | None = None

    @beartype
    def evolve(self, **changes: Any) -> "PurchaseDraft":
        """Return a validated copy with ``changes`` applied and version bumped."""
        data = dict(self)
        data.update(changes)
        data["version"] = self.version + 1
        return PurchaseDraft.model_validate(data)

    @property
    def add_ons_premium(self) -> Decimal:
        """Sum of selected add-on premiums."""
        return sum((add_on.premium for add_on in self.selected_add_ons), Decimal("0"))

    @property
    def final_premium(self) -> Decimal:
        """Quote total plus add-ons; the amount charged at payment."""
        if self.selected_quote is None:
            return self.add_ons_premium
        return self.selected_quote.total_premium + self.add_ons_premium
