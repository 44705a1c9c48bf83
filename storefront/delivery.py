"""Delivery fee policy: free-text location → fee, by substring match against the zone table."""

from typing import Optional, Sequence, Tuple

from . import config

ZoneTable = Sequence[Tuple[str, int]]


def default_fee(rates: ZoneTable = config.DELIVERY_RATES, default_zone: str = config.DEFAULT_ZONE) -> int:
    for zone, fee in rates:
        if zone == default_zone:
            return fee
    return 0


def delivery_fee(
    location: Optional[str],
    rates: ZoneTable = config.DELIVERY_RATES,
    free_keyword: str = config.FREE_DELIVERY_KEYWORD,
    default_zone: str = config.DEFAULT_ZONE,
) -> int:
    """
    Computes the delivery fee for a free-text location.

    Args:
        location (str | None): What the customer typed, e.g. "Lagos Island Annex".
        rates: (zone label, fee) pairs; the first zone contained in the location wins.
        free_keyword (str): A location containing this keyword is delivered free.
        default_zone (str): Label of the zone used when nothing matches.

    Returns:
        int: The fee in the store currency.
    """
    fallback = default_fee(rates, default_zone)
    if not location:
        return fallback

    loc = location.lower()
    if free_keyword and free_keyword.lower() in loc:
        return 0

    for zone, fee in rates:
        if zone.lower() in loc:
            return fee
    return fallback
