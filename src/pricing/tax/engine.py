"""Tax engine.

Pure functions over a ``TaxConfiguration`` snapshot. Rates inside a zone are
applied in ascending ``(priority, sort_order)``; a compound rate taxes the
taxable amount plus all tax applied before it in the same calculation. Tax is
rounded once, at the end.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from pricing.shared.money import HUNDRED, ZERO, round_money, to_decimal
from pricing.shared.timestamps import utc_now
from pricing.tax.category import TaxCategory
from pricing.tax.matcher import match_category, match_zones
from pricing.tax.rate import TaxRate
from pricing.tax.zone import TaxZone

RATE_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class TaxConfiguration:
    zones: tuple[TaxZone, ...] = ()
    categories: tuple[TaxCategory, ...] = ()
    rates: tuple[TaxRate, ...] = ()

    def rates_for(self, zone: TaxZone, category: TaxCategory | None, now: datetime) -> list[TaxRate]:
        """Active, currently effective rates of a zone (and category, when resolved)."""
        rates = [
            r
            for r in self.rates
            if str(r.zone_id) == str(zone.id)
            and (category is None or str(r.category_id) == str(category.id))
            and r.is_active
            and r.is_currently_effective(now)
        ]
        return sorted(rates, key=lambda r: (r.priority or 0, r.sort_order or 0))

    def shipping_rates_for(self, zone: TaxZone, now: datetime) -> list[TaxRate]:
        """Shipping-taxable rates of a zone, whatever their category."""
        return [r for r in self.rates_for(zone, None, now) if r.tax_shipping]


@dataclass(frozen=True)
class TaxRequest:
    address: object | None
    amount: Decimal
    tax_class: str | None = None
    is_tax_exempt: bool = False
    exemption_number: str | None = None
    shipping_amount: Decimal = ZERO
    includes_shipping: bool = False


@dataclass(frozen=True)
class TaxBreakdown:
    jurisdiction_type: str
    jurisdiction_name: str
    rate: Decimal
    amount: Decimal
    is_compound: bool = False

    @property
    def key(self) -> str:
        return f"{self.jurisdiction_type}|{self.jurisdiction_name}"

    def to_payload(self) -> dict:
        return {
            "jurisdiction_type": self.jurisdiction_type,
            "jurisdiction_name": self.jurisdiction_name,
            "rate": str(self.rate),
            "amount": str(self.amount),
            "is_compound": self.is_compound,
        }


@dataclass(frozen=True)
class TaxResult:
    taxable_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    effective_rate: Decimal = ZERO
    is_exempt: bool = False
    exempt_amount: Decimal = ZERO
    exemption_reason: str | None = None
    breakdown: tuple[TaxBreakdown, ...] = ()


@dataclass(frozen=True)
class TaxableItem:
    item_id: str
    amount: Decimal
    quantity: int = 1
    tax_class: str | None = None
    is_tax_exempt: bool = False


@dataclass(frozen=True)
class TaxItemResult:
    item_id: str
    taxable_amount: Decimal
    tax_amount: Decimal
    effective_rate: Decimal
    is_exempt: bool


@dataclass(frozen=True)
class OrderTaxResult:
    item_results: tuple[TaxItemResult, ...] = ()
    total_taxable: Decimal = ZERO
    total_exempt: Decimal = ZERO
    shipping_tax: Decimal = ZERO
    total_tax: Decimal = ZERO
    jurisdiction_breakdown: tuple[TaxBreakdown, ...] = ()

    def tax_for(self, item_id: str) -> Decimal:
        result = next((r for r in self.item_results if r.item_id == item_id), None)
        return result.tax_amount if result is not None else ZERO


def effective_rate_of(tax: Decimal, taxable: Decimal) -> Decimal:
    if taxable <= ZERO:
        return ZERO
    return (tax / taxable * HUNDRED).quantize(RATE_PLACES)


def calculate_tax(config: TaxConfiguration, request: TaxRequest, now: datetime | None = None) -> TaxResult:
    now = now or utc_now()
    amount = round_money(request.amount)

    if request.is_tax_exempt or request.exemption_number:
        reason = f"Exempt: {request.exemption_number}" if request.exemption_number else "Customer is tax exempt"
        return TaxResult(is_exempt=True, exempt_amount=amount, exemption_reason=reason)

    zones = match_zones(config.zones, request.address)
    if not zones:
        # No zone configured for this address: zero tax, not an error
        return TaxResult(taxable_amount=amount)

    category = match_category(config.categories, request.tax_class)
    if category is not None and category.is_tax_exempt:
        return TaxResult(
            is_exempt=True,
            exempt_amount=amount,
            exemption_reason=f"Category '{category.name}' is tax exempt",
        )

    taxable = amount
    if request.includes_shipping:
        taxable += round_money(request.shipping_amount)

    total_tax = ZERO
    breakdown = []
    for zone in zones:
        for rate in config.rates_for(zone, category, now):
            tax = rate.calculate_tax(taxable, total_tax)
            if tax <= ZERO:
                continue
            total_tax += tax
            breakdown.append(
                TaxBreakdown(
                    jurisdiction_type=rate.jurisdiction_type or zone.name,
                    jurisdiction_name=rate.jurisdiction_name or rate.name,
                    rate=to_decimal(rate.rate),
                    amount=round_money(tax),
                    is_compound=bool(rate.is_compound),
                )
            )

    return TaxResult(
        taxable_amount=taxable,
        tax_amount=round_money(total_tax),
        effective_rate=effective_rate_of(total_tax, taxable),
        breakdown=tuple(breakdown),
    )


def calculate_order_tax(
    config: TaxConfiguration,
    address,
    items: Iterable[TaxableItem],
    shipping_amount: Decimal = ZERO,
    is_tax_exempt: bool = False,
    exemption_number: str | None = None,
    now: datetime | None = None,
) -> OrderTaxResult:
    """Tax every item, aggregate jurisdictions, and tax shipping separately.

    Shipping tax uses the full shipping amount and is not part of any item's
    compounding chain.
    """
    now = now or utc_now()
    item_results = []
    total_taxable = ZERO
    total_exempt = ZERO
    total_tax = ZERO
    jurisdictions: dict[str, TaxBreakdown] = {}

    for item in items:
        result = calculate_tax(
            config,
            TaxRequest(
                address=address,
                amount=to_decimal(item.amount) * item.quantity,
                tax_class=item.tax_class,
                is_tax_exempt=is_tax_exempt or item.is_tax_exempt,
                exemption_number=exemption_number,
            ),
            now,
        )
        item_results.append(
            TaxItemResult(
                item_id=item.item_id,
                taxable_amount=result.taxable_amount,
                tax_amount=result.tax_amount,
                effective_rate=result.effective_rate,
                is_exempt=result.is_exempt,
            )
        )

        if result.is_exempt:
            total_exempt += result.exempt_amount
        else:
            total_taxable += result.taxable_amount
            total_tax += result.tax_amount

        for entry in result.breakdown:
            existing = jurisdictions.get(entry.key)
            if existing is None:
                jurisdictions[entry.key] = entry
            else:
                jurisdictions[entry.key] = TaxBreakdown(
                    jurisdiction_type=existing.jurisdiction_type,
                    jurisdiction_name=existing.jurisdiction_name,
                    rate=existing.rate,
                    amount=existing.amount + entry.amount,
                    is_compound=existing.is_compound,
                )

    shipping_tax = ZERO
    shipping_amount = round_money(shipping_amount)
    if shipping_amount > ZERO and not (is_tax_exempt or exemption_number):
        for zone in match_zones(config.zones, address):
            for rate in config.shipping_rates_for(zone, now):
                shipping_tax += rate.calculate_tax(shipping_amount)
        shipping_tax = round_money(shipping_tax)
        total_tax += shipping_tax

    return OrderTaxResult(
        item_results=tuple(item_results),
        total_taxable=round_money(total_taxable),
        total_exempt=round_money(total_exempt),
        shipping_tax=shipping_tax,
        total_tax=round_money(total_tax),
        jurisdiction_breakdown=tuple(jurisdictions.values()),
    )


def effective_tax_rate(config: TaxConfiguration, address, tax_class: str | None = None, now=None) -> Decimal:
    """Combined rate for an address and tax class, measured on a base of 100."""
    result = calculate_tax(config, TaxRequest(address=address, amount=HUNDRED, tax_class=tax_class), now)
    return result.effective_rate


def is_taxable_address(config: TaxConfiguration, address, now=None) -> bool:
    return effective_tax_rate(config, address, now=now) > ZERO
