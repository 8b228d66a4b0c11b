"""Minimal-unit to human-unit conversion using integer arithmetic only"""
from decimal import Decimal
from typing import Tuple

FRACTION_DIGITS = 4
FRACTION_SCALE = 10 ** FRACTION_DIGITS


def human_parts(amount: int, decimals: int) -> Tuple[int, int]:
    """
    Split |amount| into whole units and a 4-digit truncated fraction.

    e.g. human_parts(1_000_001_000_000, 10) == (100, 1)  # 100.0001
    """
    divisor = 10 ** decimals
    magnitude = abs(amount)
    whole = magnitude // divisor
    frac = (magnitude % divisor) * FRACTION_SCALE // divisor
    return whole, frac


def meets_threshold(amount: int, decimals: int, threshold: float) -> bool:
    """True when the human-unit magnitude of amount is at least threshold (inclusive)"""
    whole, frac = human_parts(amount, decimals)
    scaled = whole * FRACTION_SCALE + frac
    return Decimal(scaled) >= Decimal(str(threshold)) * FRACTION_SCALE


def format_token_amount(amount: int, decimals: int, symbol: str = "", signed: bool = False) -> str:
    """
    Format minimal units as "<whole>.<4 digits>[ symbol]".

    Negative amounts get a leading "-"; with signed=True positive amounts get "+".
    """
    whole, frac = human_parts(amount, decimals)
    sign = ""
    if amount < 0:
        sign = "-"
    elif signed and amount > 0:
        sign = "+"

    formatted = f"{sign}{whole}.{frac:0{FRACTION_DIGITS}d}"
    if symbol:
        formatted += f" {symbol}"
    return formatted


def format_address(address: str) -> str:
    if len(address) <= 16:
        return address
    return f"{address[:6]}...{address[-6:]}"
