from typing import Iterable, Optional, Sequence, Tuple
from decimal import Decimal, ROUND_HALF_UP

from src.config import settings
from src.errors import CurrencyMismatchError
from src.pricing.schemas import OrderSummary, PricedLineItem

# Currencies whose minor unit is not two decimal places
MINOR_UNIT_DIGITS = {
    "JPY": 0, "KRW": 0, "VND": 0, "CLP": 0, "ISK": 0, "UGX": 0,
    "BHD": 3, "KWD": 3, "OMR": 3, "JOD": 3, "TND": 3,
}


def round_money(amount: Decimal, currency: str) -> Decimal:
    """Round half-up at the currency's minor unit"""
    digits = MINOR_UNIT_DIGITS.get(currency.upper(), 2)
    quantum = Decimal(1).scaleb(-digits)
    return Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)


class PricingEngine:
    """Computes order totals for a cart of ticket selections.

    Pure: no database access and no clock, so the same cart and discount
    always price to the same summary. Each cart entry is a ``(ticket_type,
    quantity)`` pair where the ticket type exposes ``id``, ``name``,
    ``unit_price`` and ``currency``.
    """

    def __init__(
        self,
        fee_rate: Optional[Decimal] = None,
        minimum_fee: Optional[Decimal] = None,
        default_currency: Optional[str] = None
    ):
        self.fee_rate = Decimal(str(fee_rate)) if fee_rate is not None else settings.SERVICE_FEE_RATE
        self.minimum_fee = Decimal(str(minimum_fee)) if minimum_fee is not None else settings.MINIMUM_FEE
        self.default_currency = default_currency or settings.DEFAULT_CURRENCY

    def price(
        self,
        items: Sequence[Tuple[object, int]],
        discount_percent: Decimal = Decimal("0")
    ) -> OrderSummary:
        """Price an ordered cart with an optional percentage discount"""

        discount_percent = Decimal(str(discount_percent))
        if discount_percent < 0 or discount_percent > 100:
            raise ValueError("Discount percent must be between 0 and 100")

        currency = self._resolve_currency(ticket_type for ticket_type, _ in items)

        line_items = []
        subtotal = Decimal("0")
        ticket_count = 0

        for ticket_type, quantity in items:
            if quantity < 0:
                raise ValueError("Quantity cannot be negative")
            unit_price = Decimal(str(ticket_type.unit_price))
            line_total = round_money(unit_price * quantity, currency)
            line_items.append(PricedLineItem(
                ticket_type_id=str(ticket_type.id),
                name=ticket_type.name,
                quantity=quantity,
                unit_price=round_money(unit_price, currency),
                line_total=line_total
            ))
            subtotal += line_total
            ticket_count += quantity

        subtotal = round_money(subtotal, currency)
        fees = self.calculate_fees(subtotal, currency)
        discount_amount = round_money(subtotal * discount_percent / Decimal("100"), currency)

        total = subtotal + fees - discount_amount
        if total < 0:
            total = Decimal("0")

        return OrderSummary(
            currency=currency,
            line_items=line_items,
            ticket_count=ticket_count,
            subtotal=subtotal,
            fees=fees,
            discount_percent=discount_percent,
            discount_amount=discount_amount,
            total=round_money(total, currency)
        )

    def calculate_fees(self, subtotal: Decimal, currency: str) -> Decimal:
        """Service fee: free orders pay nothing, others pay the rate with a floor"""
        if subtotal == 0:
            return round_money(Decimal("0"), currency)
        return round_money(max(subtotal * self.fee_rate, self.minimum_fee), currency)

    def _resolve_currency(self, ticket_types: Iterable[object]) -> str:
        currencies = {ticket_type.currency.upper() for ticket_type in ticket_types}
        if len(currencies) > 1:
            raise CurrencyMismatchError(currencies)
        if not currencies:
            return self.default_currency
        return currencies.pop()
