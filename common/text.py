from __future__ import annotations

import math
from typing import Optional

import numpy as np


def parse_float(s: str) -> Optional[float]:
    try:
        return float(s)
    except ValueError:
        return None


def parse_finite_float(s: str) -> Optional[float]:
    value = parse_float(s)
    if value is None or not math.isfinite(value):
        return None
    return value


def parse_channel(s: str) -> Optional[int]:
    """Parse an 8-bit color channel; accepts ``255`` and ``255.0``."""
    value = parse_finite_float(s)
    if value is None or not value.is_integer() or not 0 <= value <= 255:
        return None
    return int(value)


def format_compact_float(value: float) -> str:
    """Shortest round-trip decimal without exponent: 0.0 -> '0', 0.25 -> '0.25'."""
    return np.format_float_positional(value, trim="-")
