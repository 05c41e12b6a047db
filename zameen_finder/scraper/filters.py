"""Search-API filter compilation and block-page detection."""

import json
import logging
from typing import Any, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

# Keys in the filter map that never become filter expressions
RESERVED_FILTER_KEYS = frozenset({"page"})

BLOCK_MARKERS = (
    "captcha",
    "recaptcha",
    "access denied",
    "pardon our interruption",
)


def compile_filters(filters: Optional[Mapping[str, Any]]) -> str:
    """Compile a map of named filter specs into a search-API filter expression.

    Each filter is a mapping with ``active``, ``attribute``, ``value`` (scalar
    or list) and an optional ``selectionType`` (``"union"`` joins values with
    OR, anything else with AND). Active filters are ANDed together.

    Args:
        filters: Filter specs keyed by filter name

    Returns:
        Filter expression, empty string when no filter is active

    Example:
        >>> compile_filters({"price": {"active": True, "attribute": "price",
        ...                            "value": [1000, 2000], "selectionType": "union"}})
        '(price:1000 OR price:2000)'
    """
    if not filters:
        return ""

    clauses = []
    for name, definition in filters.items():
        if name in RESERVED_FILTER_KEYS or not isinstance(definition, Mapping):
            continue
        if not definition.get("active"):
            continue
        attribute = definition.get("attribute") or name
        terms = [f"{attribute}:{_format_value(v)}" for v in _filter_values(definition.get("value"))]
        if not terms:
            continue
        if len(terms) == 1:
            clauses.append(terms[0])
        else:
            joiner = " OR " if definition.get("selectionType") == "union" else " AND "
            clauses.append("(" + joiner.join(terms) + ")")

    return " AND ".join(clauses)


def _filter_values(value: Any) -> List[Any]:
    values: Iterable[Any] = value if isinstance(value, (list, tuple)) else [value]
    reduced = []
    for v in values:
        if isinstance(v, Mapping):
            v = next((v[k] for k in ("slug", "id", "externalID", "name") if v.get(k) is not None), None)
        if v is None or v == "":
            continue
        reduced.append(v)
    return reduced


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def is_blocked(body: Optional[str]) -> bool:
    """Case-insensitive check of a fetched body against known block-page phrases."""
    if not body:
        return False
    lowered = body.lower()
    return any(marker in lowered for marker in BLOCK_MARKERS)


def parse_json(body: Optional[str]) -> Optional[Any]:
    """Parse JSON text, returning None on failure."""
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        logger.debug("Failed to parse JSON payload")
        return None
