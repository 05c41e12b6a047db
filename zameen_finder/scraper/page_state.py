"""Extraction of the JSON page-state object inlined in server-rendered pages."""

import json
import logging
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

PAGE_STATE_MARKERS = (
    "window.state = ",
    "window.state=",
    "window.__INITIAL_STATE__ = ",
    "window.__INITIAL_STATE__=",
)


def extract_json_object(text: str, marker: str) -> Optional[str]:
    """Return the JSON object text that starts after ``marker``.

    Scans from the first ``{`` after the marker, tracking brace depth while
    ignoring braces inside quoted strings (escape sequences included), and
    stops at the brace that closes the object. Whatever follows the object
    in the script is left alone.

    Args:
        text: Page markup
        marker: String that precedes the object

    Returns:
        Exact object text, or None if the marker is missing or the object never closes
    """
    if not text or not marker:
        return None
    start = text.find(marker)
    if start == -1:
        return None
    start = text.find("{", start + len(marker))
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_page_state(html: str, markers: Iterable[str] = PAGE_STATE_MARKERS) -> Optional[Dict[str, Any]]:
    """Find and decode the page-state object, trying each known marker."""
    for marker in markers:
        raw = extract_json_object(html, marker)
        if raw is None:
            continue
        try:
            state = json.loads(raw)
        except ValueError as e:
            logger.debug(f"Page state after {marker!r} is not valid JSON: {e}")
            continue
        if isinstance(state, dict):
            return state
    return None


def dig(data: Any, *path: str) -> Any:
    """Follow a chain of mapping keys, returning None on the first miss."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data
