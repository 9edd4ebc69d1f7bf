"""
Price policy for bargaining.

WHAT: Floor computation, offer validation and the scripted counter-offer rule
WHY: One deterministic rule shared by the session service and the scripted seller
HOW: Pure functions, no I/O; limits default to settings but can be passed explicitly
"""

import math
import re
from typing import Optional

from ..core.config import settings

CENTS = 2

# $96, $96.50, 96 dollars, 96.50 USD
_AMOUNT_PATTERNS = [
    r'\$\s*(\d+(?:\.\d{1,2})?)',
    r'(\d+(?:\.\d{1,2})?)\s*(?:USD|dollars?)',
]


def _discount(max_discount: Optional[float]) -> float:
    return settings.MAX_DISCOUNT_FRACTION if max_discount is None else max_discount


def floor_price(reference_price: float, max_discount: Optional[float] = None) -> float:
    """
    Minimum acceptable price for a reference price.

    Args:
        reference_price: Listing price the session was opened at
        max_discount: Fraction in (0, 1); defaults to MAX_DISCOUNT_FRACTION

    Returns:
        reference × (1 − max_discount), unrounded; offers are compared against
        this exact value and only views round it for display
    """
    return reference_price * (1 - _discount(max_discount))


def display_floor(reference_price: float, max_discount: Optional[float] = None) -> float:
    return round(floor_price(reference_price, max_discount), CENTS)


def lowest_valid_cents(reference_price: float, max_discount: Optional[float] = None) -> float:
    """Smallest whole-cent amount at or above the floor."""
    # round() first so float noise like 9500.000000001 does not ceil up a cent
    return math.ceil(round(floor_price(reference_price, max_discount) * 100, 6)) / 100


def is_valid_offer(
    offer_amount: Optional[float],
    reference_price: float,
    max_discount: Optional[float] = None
) -> bool:
    """
    True iff floor(reference) <= offer < reference.

    An offer equal to or above the reference is not a discount; one below the
    floor concedes more than the seller allows.
    """
    if offer_amount is None or offer_amount <= 0:
        return False
    return floor_price(reference_price, max_discount) <= offer_amount < reference_price


def counter_offer(
    offer_amount: float,
    reference_price: float,
    max_discount: Optional[float] = None,
    step: Optional[float] = None
) -> float:
    """
    Seller counter to a buyer's proposed amount.

    Moves `step` of the way from the buyer's amount back toward the reference,
    never below the floor. The result is itself a valid offer.
    """
    step = settings.COUNTER_OFFER_STEP if step is None else step
    floor = lowest_valid_cents(reference_price, max_discount)
    proposed = round(offer_amount + (reference_price - offer_amount) * step, CENTS)
    counter = max(floor, proposed)
    if counter >= reference_price:
        counter = floor
    return counter


def extract_offer_amount(text: str) -> Optional[float]:
    """
    Find the first dollar amount mentioned in free text.

    Args:
        text: Chat message content

    Returns:
        Amount as float, or None if no amount is mentioned
    """
    if not text:
        return None

    for pattern in _AMOUNT_PATTERNS:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            try:
                return float(match.group(1))
            except ValueError:
                continue
    return None
