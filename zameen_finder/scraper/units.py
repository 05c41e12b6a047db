"""Area unit inference.

The search API reports areas in square meters. Listings on the site are
quoted in kanal, marla or square feet, so areas are converted into whichever
of those reads naturally before falling back to square meters.
"""

import math
import re
from typing import Optional, Tuple

from .base import AreaUnit

SQFT_PER_SQM = 10.76391041671
SQFT_PER_MARLA = 225.0
MARLA_PER_KANAL = 20.0
SQFT_PER_KANAL = SQFT_PER_MARLA * MARLA_PER_KANAL

# Relative distance from a whole number still accepted for kanal/marla
WHOLE_UNIT_TOLERANCE = 0.08
# Square feet are reported when within this many sq ft of a multiple of 50
SQFT_ROUND_STEP = 50
SQFT_ABS_TOLERANCE = 2.0

SQFT_PER_SQYD = 9.0

_AREA_TEXT_RE = re.compile(
    r"(\d[\d,]*(?:\.\d+)?)\s*(kanal|marla|sq\.?\s*ft\.?|sq\.?\s*feet|sqft|sq\.?\s*yd\.?|sqyd|sq\.?\s*m\.?|sqm)",
    re.IGNORECASE,
)


def normalize_area(sqm) -> Tuple[Optional[float], Optional[str]]:
    """Convert an area in square meters to the locally idiomatic unit.

    Kanal is tried before marla; the first whose converted value is within
    8% of a whole number wins and is reported as that whole number. Otherwise
    square feet are used when close to a round figure, else square meters
    rounded to 2 decimals.

    Args:
        sqm: Area in square meters

    Returns:
        Tuple of (area, unit), or (None, None) for non-positive or non-finite input
    """
    if sqm is None or isinstance(sqm, bool):
        return None, None
    try:
        sqm = float(sqm)
    except (TypeError, ValueError):
        return None, None
    if not math.isfinite(sqm) or sqm <= 0:
        return None, None

    sqft = sqm * SQFT_PER_SQM
    for unit, value in (
        (AreaUnit.KANAL, sqft / SQFT_PER_KANAL),
        (AreaUnit.MARLA, sqft / SQFT_PER_MARLA),
    ):
        whole = round(value)
        if whole >= 1 and abs(value - whole) / whole <= WHOLE_UNIT_TOLERANCE:
            return int(whole), unit.value

    nearest = round(sqft / SQFT_ROUND_STEP) * SQFT_ROUND_STEP
    if nearest > 0 and abs(sqft - nearest) <= SQFT_ABS_TOLERANCE:
        return int(round(sqft)), AreaUnit.SQFT.value

    return round(sqm, 2), AreaUnit.SQM.value


def unit_from_code(code: Optional[str]) -> Optional[str]:
    """Map a declared unit code or text (e.g. ``FTK``, ``sq ft``, ``MTK``) to a unit."""
    if not code:
        return None
    code = str(code).lower()
    if "kanal" in code:
        return AreaUnit.KANAL.value
    if "marla" in code:
        return AreaUnit.MARLA.value
    if "ft" in code or "feet" in code:
        return AreaUnit.SQFT.value
    if "m" in code:
        return AreaUnit.SQM.value
    return None


def _is_square_yards(code: str) -> bool:
    code = code.lower().replace(".", "").replace(" ", "")
    return code in ("ydk", "yd2", "yd") or "sqyd" in code or "yard" in code


def declared_area(value, code: Optional[str]) -> Tuple[Optional[float], Optional[str]]:
    """Pair a declared area value with its unit code or text.

    Square yards are converted to square feet since they are not an output
    unit. An area whose unit is missing or unknown is dropped.

    Returns:
        Tuple of (area, unit), or (None, None)
    """
    if value is None or isinstance(value, bool) or not code:
        return None, None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None, None
    if not math.isfinite(value) or value <= 0:
        return None, None

    if _is_square_yards(str(code)):
        return round(value * SQFT_PER_SQYD, 2), AreaUnit.SQFT.value
    unit = unit_from_code(code)
    if unit is None:
        return None, None
    if value.is_integer():
        value = int(value)
    return value, unit


def parse_area_text(text: Optional[str]) -> Tuple[Optional[float], Optional[str]]:
    """Parse area text shown in markup, e.g. ``"5 Marla"`` or ``"1,250 Sq. Ft."``."""
    if not text:
        return None, None
    match = _AREA_TEXT_RE.search(str(text))
    if not match:
        return None, None
    return declared_area(match.group(1).replace(",", ""), match.group(2))
