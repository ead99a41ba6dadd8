"""
pgc_platform/formatting.py
==========================
Locale-aware number formatting for the analysis tables:
values (optionally in thousands), percentages and ratios.

Rounding is half away from zero on the exact binary value, which is what
``Number.prototype.toFixed`` and ``Intl.NumberFormat`` do in the browser.
"""
from __future__ import annotations
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .types import DisplayOptions

# locale → (group separator, decimal separator, minimum grouping digits)
_LOCALE_SEPARATORS = {
    "es-ES": (".", ",", 2),
    "en-US": (",", ".", 1),
}

MISSING = "—"


def _round_half_up(value: float, decimals: int) -> Decimal:
    return Decimal(value).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def format_localized(value: float, decimals: int = 2, locale: str = "es-ES") -> str:
    """
    Group and round ``value`` the way the browser locale would.
    e.g. es-ES: 1234.5 → "1234,50", 12345.678 → "12.345,68"
         en-US: 1234.5 → "1,234.50"
    """
    if locale not in _LOCALE_SEPARATORS:
        raise ValueError(f"Unsupported locale: {locale!r}")
    group, dec, min_group = _LOCALE_SEPARATORS[locale]

    d = _round_half_up(value, decimals)
    sign = "-" if d < 0 else ""
    int_part, _, frac = f"{abs(d):f}".partition(".")
    if len(int_part) >= 3 + min_group:
        int_part = f"{int(int_part):,}".replace(",", group)
    return f"{sign}{int_part}{dec}{frac}" if decimals else f"{sign}{int_part}"


def format_value(value: Optional[float], options: Optional[DisplayOptions] = None, decimals: int = 2) -> str:
    """Monetary value, divided by 1000 when the thousands toggle is on."""
    if value is None or not math.isfinite(value):
        return MISSING
    opts = options or DisplayOptions()
    display = value / 1000 if opts.thousands else value
    return format_localized(display, decimals, opts.locale)


def format_percent(value: Optional[float], decimals: int = 1) -> str:
    if value is None or not math.isfinite(value):
        return MISSING
    return f"{_round_half_up(value, decimals):f}%"


def format_ratio(value: Optional[float], decimals: int = 2) -> str:
    if value is None or not math.isfinite(value):
        return MISSING
    return f"{_round_half_up(value, decimals):f}"


def format_cell(value: Optional[float], kind: str, options: Optional[DisplayOptions] = None) -> str:
    """Dispatch on row kind: "value", "percent" or "ratio"."""
    if kind == "percent":
        return format_percent(value)
    if kind == "ratio":
        return format_ratio(value)
    return format_value(value, options)


def unit_label(options: Optional[DisplayOptions] = None) -> str:
    opts = options or DisplayOptions()
    return "Milers €" if opts.thousands else "€"


def year_label(year: int) -> str:
    return f"Exercici {year}"


def get_ratio_color(value: Optional[float], good: float, warn: float) -> str:
    """Green at or above ``good``, amber at or above ``warn``, red below."""
    if value is None:
        return "#6b7280"
    if value >= good:
        return "#10b981"
    if value >= warn:
        return "#f59e0b"
    return "#ef4444"
