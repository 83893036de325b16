# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Optional coverages per line of business, priced off the base quote."""

from decimal import Decimal

from attrs import field, frozen
from beartype import beartype

from ..core.money import round_currency
from ..models.common import LineOfBusiness
from ..models.quote import AddOn, Quote

DEFAULT_BASE_PREMIUM = Decimal("50000")
DEFAULT_LIFE_SUM_INSURED = Decimal("1000000")


@frozen
class AddOnTemplate:
    """Catalog row; the premium is ``premium_pct`` of the base premium."""

    id: str = field()
    name: str = field()
    description: str = field()
    category: str = field()
    premium_pct: Decimal = field()
    features: tuple[str, ...] = field(default=())
    exclusions: tuple[str, ...] = field(default=())
    sum_insured: Decimal | None = field(default=None)
    sum_insured_from_quote: bool = field(default=False)
    popular: bool = field(default=False)
    recommended: bool = field(default=False)


CATALOG: dict[LineOfBusiness, tuple[AddOnTemplate, ...]] = {
    LineOfBusiness.MOTOR: (
        AddOnTemplate(
            id="zero-dep",
            name="Zero Depreciation Cover",
            description="Get full claim amount without depreciation deduction",
            category="Protection",
            premium_pct=Decimal("0.15"),
            features=(
                "No depreciation on parts",
                "Full claim settlement",
                "Plastic & metal parts covered",
            ),
            exclusions=("Glass breakage", "Consequential damages"),
            popular=True,
        ),
        AddOnTemplate(
            id="engine-protect",
            name="Engine Protection Cover",
            description="Protection against engine damage due to water ingression",
            category="Protection",
            premium_pct=Decimal("0.08"),
            features=(
                "Water damage coverage",
                "Hydrostatic lock protection",
                "Monsoon essential",
            ),
            recommended=True,
        ),
        AddOnTemplate(
            id="roadside-assistance",
            name="24x7 Roadside Assistance",
            description="Emergency assistance anywhere, anytime",
            category="Convenience",
            premium_pct=Decimal("0.05"),
            features=(
                "Towing service",
                "Battery jumpstart",
                "Flat tire assistance",
                "Emergency fuel",
            ),
        ),
        AddOnTemplate(
            id="consumables",
            name="Consumables Cover",
            description="Coverage for consumable items like engine oil, brake oil, etc.",
            category="Protection",
            premium_pct=Decimal("0.12"),
            features=("Engine oil coverage", "Brake oil & coolant", "Nuts, bolts & screws"),
        ),
        AddOnTemplate(
            id="key-replacement",
            name="Key Replacement Cover",
            description="Coverage for lost or damaged car keys",
            category="Convenience",
            premium_pct=Decimal("0.03"),
            sum_insured=Decimal("5000"),
            features=("Lost key replacement", "Damaged key repair", "Locksmith charges"),
        ),
    ),
    LineOfBusiness.HEALTH: (
        AddOnTemplate(
            id="critical-illness",
            name="Critical Illness Cover",
            description="Lump sum benefit on diagnosis of critical illness",
            category="Protection",
            premium_pct=Decimal("0.25"),
            sum_insured=Decimal("1000000"),
            features=(
                "25 critical illnesses covered",
                "Lump sum benefit",
                "Early stage coverage",
            ),
            exclusions=("Pre-existing conditions", "Genetic disorders"),
            popular=True,
        ),
        AddOnTemplate(
            id="maternity-cover",
            name="Maternity Cover",
            description="Coverage for normal & C-section delivery expenses",
            category="Family",
            premium_pct=Decimal("0.30"),
            sum_insured=Decimal("100000"),
            features=("Normal delivery", "C-section delivery", "Pre & post natal care"),
            recommended=True,
        ),
        AddOnTemplate(
            id="opd-cover",
            name="OPD Cover",
            description="Outpatient department consultation and medicine expenses",
            category="Convenience",
            premium_pct=Decimal("0.20"),
            sum_insured=Decimal("25000"),
            features=("Doctor consultation", "Diagnostic tests", "Pharmacy bills"),
        ),
        AddOnTemplate(
            id="personal-accident",
            name="Personal Accident Cover",
            description="Coverage for accidental death and disability",
            category="Protection",
            premium_pct=Decimal("0.15"),
            sum_insured=Decimal("1000000"),
            features=("Accidental death", "Permanent disability", "Temporary disability"),
        ),
    ),
    LineOfBusiness.TRAVEL: (
        AddOnTemplate(
            id="adventure-sports",
            name="Adventure Sports Cover",
            description="Coverage for adventure and sports activities",
            category="Adventure",
            premium_pct=Decimal("0.40"),
            features=(
                "Skiing & snowboarding",
                "Scuba diving",
                "Mountaineering",
                "Bungee jumping",
            ),
            popular=True,
        ),
        AddOnTemplate(
            id="gadget-protection",
            name="Gadget Protection",
            description="Protection for laptops, cameras, and mobile phones",
            category="Protection",
            premium_pct=Decimal("0.25"),
            sum_insured=Decimal("50000"),
            features=("Theft coverage", "Damage protection", "Worldwide coverage"),
        ),
        AddOnTemplate(
            id="trip-extension",
            name="Trip Extension Cover",
            description="Automatic extension if return is delayed",
            category="Convenience",
            premium_pct=Decimal("0.15"),
            features=(
                "Up to 7 days extension",
                "No additional premium",
                "Emergency situations",
            ),
        ),
    ),
    LineOfBusiness.LIFE: (
        AddOnTemplate(
            id="accidental-death",
            name="Accidental Death Benefit",
            description="Additional sum assured in case of accidental death",
            category="Protection",
            premium_pct=Decimal("0.20"),
            sum_insured=DEFAULT_LIFE_SUM_INSURED,
            sum_insured_from_quote=True,
            features=("Double benefit", "Worldwide coverage", "24x7 protection"),
            popular=True,
        ),
        AddOnTemplate(
            id="waiver-premium",
            name="Waiver of Premium",
            description="Premium waiver in case of disability",
            category="Protection",
            premium_pct=Decimal("0.10"),
            features=("Total disability waiver", "Policy continues", "Family protection"),
            recommended=True,
        ),
        AddOnTemplate(
            id="terminal-illness",
            name="Terminal Illness Benefit",
            description="Early payout on diagnosis of terminal illness",
            category="Protection",
            premium_pct=Decimal("0.08"),
            features=("Early benefit payout", "Medical support", "Family assistance"),
        ),
    ),
}


class AddOnCatalog:
    """Pure lookup of add-ons for a line of business and base quote."""

    def __init__(
        self, catalog: dict[LineOfBusiness, tuple[AddOnTemplate, ...]] | None = None
    ) -> None:
        self._catalog = catalog if catalog is not None else CATALOG

    @beartype
    def available(
        self, line_of_business: LineOfBusiness | None, quote: Quote | None
    ) -> list[AddOn]:
        """Add-ons for ``line_of_business``; empty for lines without a table."""
        if line_of_business is None:
            return []

        base_premium = quote.base_premium if quote is not None else DEFAULT_BASE_PREMIUM
        return [
            self._price(template, base_premium, quote)
            for template in self._catalog.get(line_of_business, ())
        ]

    @beartype
    def get(
        self, line_of_business: LineOfBusiness, add_on_id: str, quote: Quote | None
    ) -> AddOn | None:
        """Single add-on by id, or None when the line does not offer it."""
        for add_on in self.available(line_of_business, quote):
            if add_on.id == add_on_id:
                return add_on
        return None

    def _price(
        self, template: AddOnTemplate, base_premium: Decimal, quote: Quote | None
    ) -> AddOn:
        sum_insured = template.sum_insured
        if template.sum_insured_from_quote and quote is not None:
            sum_insured = quote.sum_insured

        return AddOn(
            id=template.id,
            name=template.name,
            category=template.category,
            description=template.description,
            premium=round_currency(base_premium * template.premium_pct),
            sum_insured=sum_insured,
            features=list(template.features),
            exclusions=list(template.exclusions),
            popular=template.popular,
            recommended=template.recommended,
        )
