# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Deterministic premium calculation and comparison quotes.

Premiums are placeholder formulas per line of business, not certified
pricing. Given the same request, details and ``as_of`` date the engine
always returns the same figures.
"""

from datetime import date
from decimal import Decimal
from typing import Protocol
from uuid import uuid4

from attrs import field, frozen
from beartype import beartype

from ..core.config import get_settings
from ..core.money import round_currency
from ..core.result_types import Err, Ok, Result
from ..models.common import LineOfBusiness, PaymentFrequency
from ..models.purchase import (
    CustomerDetailsBase,
    HealthDetails,
    LifeDetails,
    MotorDetails,
    TravelDetails,
)
from ..models.quote import Quote, QuoteRequest, QuoteSet

DEFAULT_AGE = 30

FREQUENCY_SURCHARGE: dict[PaymentFrequency, Decimal] = {
    PaymentFrequency.MONTHLY: Decimal("1.1"),
    PaymentFrequency.QUARTERLY: Decimal("1.05"),
    PaymentFrequency.YEARLY: Decimal("1.0"),
}

EXCLUSIONS: dict[LineOfBusiness, tuple[str, ...]] = {
    LineOfBusiness.HEALTH: (
        "Pre-existing diseases (first year)",
        "Cosmetic surgeries",
        "Dental treatments",
    ),
    LineOfBusiness.MOTOR: (
        "Driving under influence",
        "Racing/competitions",
        "War risks",
    ),
    LineOfBusiness.LIFE: (
        "Suicide (first year)",
        "War risks",
        "Aviation risks",
    ),
    LineOfBusiness.TRAVEL: (
        "Adventure sports",
        "Pre-existing medical conditions",
        "War/terrorism",
    ),
}

WAITING_PERIODS: dict[LineOfBusiness, str] = {
    LineOfBusiness.HEALTH: "30 days for diseases, 2 years for pre-existing",
    LineOfBusiness.MOTOR: "No waiting period",
    LineOfBusiness.LIFE: "90 days for natural death",
    LineOfBusiness.TRAVEL: "No waiting period",
}
DEFAULT_WAITING_PERIOD = "As per policy terms"


@beartype
def resolve_age(
    request: QuoteRequest, details: CustomerDetailsBase | None, as_of: date
) -> int:
    """Explicit age, else year difference from date of birth, else 30."""
    if request.age is not None:
        return request.age
    if details is not None:
        if details.age is not None:
            return details.age
        if details.date_of_birth is not None:
            return as_of.year - details.date_of_birth.year
    return DEFAULT_AGE


@beartype
def resolve_vehicle_age(details: CustomerDetailsBase | None, as_of: date) -> int:
    """Vehicle age in years, 0 when the manufacturing year is unknown."""
    if isinstance(details, MotorDetails) and details.manufacturing_year is not None:
        return as_of.year - details.manufacturing_year
    return 0


@frozen
class ComparisonProvider:
    """Synthetic alternate provider with a multiplicative price variation."""

    provider_id: str = field()
    name: str = field()
    variation: Decimal = field()


class ComparisonQuoteSource(Protocol):
    """Port producing illustrative quotes from alternate providers."""

    def comparison_quotes(self, primary: Quote) -> list[Quote]:
        """Return quotes to show next to ``primary``."""
        ...


class SyntheticComparisonQuotes:
    """Fabricates comparison quotes by scaling the primary premium."""

    DEFAULT_PROVIDERS: tuple[ComparisonProvider, ...] = (
        ComparisonProvider("1", "Star Health Insurance", Decimal("0.95")),
        ComparisonProvider("2", "HDFC ERGO General Insurance", Decimal("1.08")),
        ComparisonProvider("3", "ICICI Lombard GIC", Decimal("1.02")),
    )

    def __init__(
        self,
        providers: tuple[ComparisonProvider, ...] = DEFAULT_PROVIDERS,
        limit: int = 2,
        tax_rate: Decimal | None = None,
    ) -> None:
        self._providers = providers
        self._limit = limit
        self._tax_rate = tax_rate if tax_rate is not None else get_settings().tax_rate

    @beartype
    def comparison_quotes(self, primary: Quote) -> list[Quote]:
        """Up to ``limit`` quotes, never from the primary's provider."""
        candidates = [
            provider
            for provider in self._providers
            if provider.provider_id != primary.provider_id
        ][: self._limit]

        quotes = []
        for index, provider in enumerate(candidates):
            premium = round_currency(primary.base_premium * provider.variation)
            tax = round_currency(premium * self._tax_rate)
            quotes.append(
                primary.model_copy(
                    update={
                        "id": uuid4(),
                        "provider_id": provider.provider_id,
                        "provider_name": provider.name,
                        "product_id": f"{primary.product_id}-comp-{index}",
                        "product_name": f"{primary.line_of_business.value} Insurance Plan",
                        "base_premium": premium,
                        "tax_amount": tax,
                        "total_premium": premium + tax,
                        "featured": False,
                        "best_value": False,
                        "is_comparison": True,
                    }
                )
            )
        return quotes


class PremiumQuoteEngine:
    """Compute base premium, tax and total for a line of business."""

    def __init__(
        self,
        comparison_source: ComparisonQuoteSource | None = None,
        tax_rate: Decimal | None = None,
    ) -> None:
        """Initialize engine; tax rate defaults to the configured GST."""
        self._tax_rate = tax_rate if tax_rate is not None else get_settings().tax_rate
        self._comparison_source = comparison_source or SyntheticComparisonQuotes(
            tax_rate=self._tax_rate
        )

    @beartype
    def base_premium(
        self,
        line_of_business: LineOfBusiness,
        request: QuoteRequest,
        details: CustomerDetailsBase | None,
        as_of: date,
    ) -> Decimal:
        """Premium before tax, including the frequency surcharge."""
        sum_insured = request.sum_insured
        age = Decimal(resolve_age(request, details, as_of))

        if line_of_business == LineOfBusiness.HEALTH:
            age_component = age * 50 if age > 45 else age * 30
            premium = sum_insured * Decimal("0.025") + age_component
            if isinstance(details, HealthDetails):
                if details.smoker:
                    premium *= Decimal("1.3")
                if details.pre_existing_conditions:
                    premium *= Decimal("1.2")
        elif line_of_business == LineOfBusiness.MOTOR:
            premium = sum_insured * Decimal("0.03")
            if resolve_vehicle_age(details, as_of) > 5:
                premium *= Decimal("1.2")
            if isinstance(details, MotorDetails):
                premium *= 1 - details.ncb_percent / 100
        elif line_of_business == LineOfBusiness.LIFE:
            premium = sum_insured * Decimal("0.02") + age * 100
            if isinstance(details, LifeDetails) and details.smoker:
                premium *= Decimal("1.5")
        elif line_of_business == LineOfBusiness.TRAVEL:
            premium = sum_insured * Decimal("0.01")
            if isinstance(details, TravelDetails) and details.is_adventure:
                premium *= Decimal("1.5")
        else:
            premium = sum_insured * Decimal("0.02")

        premium *= FREQUENCY_SURCHARGE[request.payment_frequency]
        return round_currency(premium)

    @beartype
    def quote(
        self,
        *,
        line_of_business: LineOfBusiness,
        provider_id: str,
        provider_name: str,
        product_id: str,
        product_name: str,
        request: QuoteRequest,
        details: CustomerDetailsBase | None,
        as_of: date,
        features: list[str] | None = None,
    ) -> Quote:
        """Primary quote for the chosen provider and product."""
        premium = self.base_premium(line_of_business, request, details, as_of)
        tax = round_currency(premium * self._tax_rate)
        features = features or []
        return Quote(
            line_of_business=line_of_business,
            provider_id=provider_id,
            provider_name=provider_name,
            product_id=product_id,
            product_name=product_name,
            sum_insured=request.sum_insured,
            base_premium=premium,
            tax_amount=tax,
            total_premium=premium + tax,
            payment_frequency=request.payment_frequency,
            features=features,
            exclusions=list(EXCLUSIONS.get(line_of_business, ())),
            waiting_period=WAITING_PERIODS.get(line_of_business, DEFAULT_WAITING_PERIOD),
            featured=bool(features),
        )

    @beartype
    def quote_set(
        self,
        *,
        line_of_business: LineOfBusiness,
        provider_id: str,
        provider_name: str,
        product_id: str,
        product_name: str,
        request: QuoteRequest,
        details: CustomerDetailsBase | None,
        as_of: date,
        features: list[str] | None = None,
    ) -> Result[QuoteSet, str]:
        """Primary quote plus comparison quotes with ``best_value`` marked."""
        if details is not None and details.line_of_business != line_of_business:
            return Err(
                f"Customer details are for {details.line_of_business}, "
                f"not {line_of_business.value}"
            )

        primary = self.quote(
            line_of_business=line_of_business,
            provider_id=provider_id,
            provider_name=provider_name,
            product_id=product_id,
            product_name=product_name,
            request=request,
            details=details,
            as_of=as_of,
            features=features,
        )
        comparisons = self._comparison_source.comparison_quotes(primary)

        cheapest = min(q.total_premium for q in [primary, *comparisons])
        return Ok(
            QuoteSet(
                primary=primary.model_copy(
                    update={"best_value": primary.total_premium == cheapest}
                ),
                comparisons=[
                    q.model_copy(update={"best_value": q.total_premium == cheapest})
                    for q in comparisons
                ],
            )
        )
