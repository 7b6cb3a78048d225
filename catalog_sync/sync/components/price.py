# catalog_sync/sync/components/price.py
from __future__ import annotations

import math
from functools import partial
from typing import Any, Callable

PriceConverter = Callable[[Any], Any]


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    if isinstance(value, str):
        try:
            return math.isfinite(float(value.strip()))
        except ValueError:
            return False
    return False


def format_price(amount: float) -> str:
    """Integer string when there is no fractional part, else fixed to 2 decimals."""
    if float(amount) == int(amount):
        return str(int(amount))
    return f"{float(amount):.2f}"


def convert_price(price: Any, exchange_rate: float) -> Any:
    """
    ceil(price / exchange_rate), formatted by format_price.
    Empty or non-numeric input is returned unchanged.
    """
    if price in (None, "") or not _is_numeric(price):
        return price
    converted = math.ceil(float(price) / float(exchange_rate))
    return format_price(converted)


def make_price_converter(exchange_rate: float) -> PriceConverter:
    return partial(convert_price, exchange_rate=exchange_rate)
