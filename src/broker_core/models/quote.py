# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Quote and add-on models produced by the premium engine and catalog."""

from decimal import Decimal
from uuid import UUID, uuid4

from beartype import beartype
from pydantic import Field, model_validator

from .base import BaseModelConfig
from .common import LineOfBusiness, PaymentFrequency


@beartype
class QuoteRequest(BaseModelConfig):
    """Inputs collected on the quote step."""

    sum_insured: Decimal = Field(
        default=Decimal("500000"),
        gt=Decimal("0"),
        description="Coverage amount the premium is computed on",
    )
    payment_frequency: PaymentFrequency = Field(default=PaymentFrequency.YEARLY)
    age: int | None = Field(
        default=None,
        ge=0,
        le=120,
        description="Explicit age; derived from date of birth when omitted",
    )


@beartype
class Quote(BaseModelConfig):
    """Premium quote from one provider for one product.

    ``best_value`` and ``featured`` are display heuristics only.
    ``is_comparison`` marks illustrative quotes from alternate providers.
    """

    id: UUID = Field(default_factory=uuid4)
    line_of_business: LineOfBusiness
    provider_id: str = Field(..., min_length=1)
    provider_name: str = Field(default="")
    product_id: str = Field(..., min_length=1)
    product_name: str = Field(default="")

    sum_insured: Decimal = Field(..., gt=Decimal("0"))
    base_premium: Decimal = Field(..., ge=Decimal("0"))
    tax_amount: Decimal = Field(..., ge=Decimal("0"))
    total_premium: Decimal = Field(..., ge=Decimal("0"))
    payment_frequency: PaymentFrequency

    features: list[str] = Field(default_factory=list)
    exclusions: list[str] = Field(default_factory=list)
    waiting_period: str = Field(default="")

    best_value: bool = False
    featured: bool = False
    is_comparison: bool = False

    @model_validator(mode="after")
    def validate_total(self) -> "Quote":
        """Total is always base premium plus tax."""
        if self.total_premium != self.base_premium + self.tax_amount:
            raise ValueError(
                f"total_premium ({self.total_premium}) must equal base_premium "
                f"({self.base_premium}) + tax_amount ({self.tax_amount})"
            )
        return self


@beartype
class AddOn(BaseModelConfig):
    """Optional supplementary coverage priced off the base quote."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    category: str
    description: str
    premium: Decimal = Field(..., ge=Decimal("0"))
    sum_insured: Decimal | None = None
    features: list[str] = Field(default_factory=list)
    exclusions: list[str] = Field(default_factory=list)
    popular: bool = False
    recommended: bool = False


@beartype
class QuoteSet(BaseModelConfig):
    """Primary quote plus illustrative comparison quotes."""

    primary: Quote
    comparisons: list[Quote] = Field(default_factory=list)

    @property
    def quotes(self) -> list[Quote]:
        """All quotes, primary first."""
        return [self.primary, *self.comparisons]
