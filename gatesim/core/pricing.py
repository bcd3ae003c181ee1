"""
Sell price calculation for catalog offers.

Prices are computed with Decimal so the ceiling to the next 100 MNT is
applied to the exact product of price, margin and exchange rate.
"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_CEILING
from typing import Any

from gatesim.schemas.catalog import PricingConfig

logger = logging.getLogger(__name__)

LOW_COST_THRESHOLD = Decimal("5")
LOW_COST_MARGIN_CAP = Decimal("15")
ROUNDING_STEP = Decimal("100")
SUPPORTED_CURRENCIES = ("USD", "MNT")


class UnsupportedCurrencyError(ValueError):
    """The offer is priced in a currency there is no exchange rate for."""


def to_decimal(value: Any) -> Decimal:
    """Parse a feed number; anything unparseable, negative or non-finite becomes 0."""
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not number.is_finite() or number < 0:
        return Decimal(0)
    return number


def effective_margin_percent(original_price: Any, currency: str, margin_percent: float) -> Decimal:
    """Configured margin, capped at 15% for foreign-currency offers costing 5 or less."""
    margin = to_decimal(margin_percent)
    if currency != "MNT" and to_decimal(original_price) <= LOW_COST_THRESHOLD:
        return min(margin, LOW_COST_MARGIN_CAP)
    return margin


def compute_sell_price_mnt(original_price: Any, currency: str, config: PricingConfig) -> int:
    """Raises UnsupportedCurrencyError for anything but USD and MNT."""
    if currency not in SUPPORTED_CURRENCIES:
        raise UnsupportedCurrencyError(f"No exchange rate for {currency}")
    price = to_decimal(original_price)
    margin = effective_margin_percent(price, currency, config.margin_percent)
    multiplier = 1 + margin / 100

    if currency == "MNT":
        price_mnt = price * multiplier
    else:
        price_mnt = price * multiplier * to_decimal(config.usd_to_mnt_rate)

    steps = (price_mnt / ROUNDING_STEP).to_integral_value(rounding=ROUND_CEILING)
    return int(steps * ROUNDING_STEP)
