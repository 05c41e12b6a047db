"""Location graph collection and fuzzy location resolution.

Pages embed the site's location hierarchy (country -> province -> city ->
area -> sub-area) somewhere inside their page state. Nodes are collected
with a bounded worklist scan and free-text input is matched against them
with a token-based score.
"""

import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Levels in the site's location hierarchy
COUNTRY_LEVEL = 0
CITY_LEVEL = 2
AREA_LEVEL = 3

MAX_VISITED = 50_000
MAX_COLLECTED = 5_000
MAX_DEPTH = 40

MIN_MATCH_SCORE = 120

SCORE_EXACT_NAME = 200
SCORE_EXACT_HIERARCHY = 150
SCORE_NAME_PREFIX = 120
SCORE_HIERARCHY_CONTAINS = 80
SCORE_ALL_TOKENS = 80
SCORE_CITY_TOKENS = 40
SCORE_PER_LEVEL = 2

_NON_WORD_RE = re.compile(r"[^\w\s]+", re.UNICODE)
_SPACE_RE = re.compile(r"[\s_]+")


@dataclass(frozen=True)
class LocationNode:
    """One entry of the location hierarchy."""
    name: str
    slug: str
    external_id: str
    level: int
    hierarchy: Tuple[str, ...] = ()

    @property
    def hierarchy_text(self) -> str:
        names = self.hierarchy or (self.name,)
        return " ".join(names)

    @property
    def depth(self) -> int:
        return max(self.level, len(self.hierarchy) - 1, 0)

    @property
    def path_segment(self) -> str:
        """Slug as used in listing URLs, without leading slash or trailing id."""
        segment = self.slug.strip("/")
        suffix = f"-{self.external_id}"
        if segment.endswith(suffix):
            segment = segment[: -len(suffix)]
        return segment


@dataclass
class LocationMatch:
    node: LocationNode
    score: float


def normalize_text(text: Optional[str]) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    if not text:
        return ""
    text = _NON_WORD_RE.sub(" ", str(text).lower())
    return _SPACE_RE.sub(" ", text).strip()


def tokenize(text: Optional[str]) -> set:
    return set(normalize_text(text).split())


def _node_from_mapping(obj: dict) -> Optional[LocationNode]:
    name = obj.get("name")
    slug = obj.get("slug")
    external_id = obj.get("externalID", obj.get("external_id"))
    level = obj.get("level")
    if not isinstance(name, str) or not name or not isinstance(slug, str) or not slug:
        return None
    if external_id is None or isinstance(external_id, (dict, list)):
        return None
    try:
        level = int(level)
    except (TypeError, ValueError):
        return None

    hierarchy: Tuple[str, ...] = ()
    chain = obj.get("hierarchy")
    if isinstance(chain, list):
        hierarchy = tuple(
            item["name"] for item in chain
            if isinstance(item, dict) and isinstance(item.get("name"), str)
        )
    if hierarchy and hierarchy[-1] != name:
        hierarchy = hierarchy + (name,)
    return LocationNode(
        name=name.strip(),
        slug=slug,
        external_id=str(external_id),
        level=level,
        hierarchy=hierarchy,
    )


def collect_location_nodes(
    graph: Any,
    max_visited: int = MAX_VISITED,
    max_collected: int = MAX_COLLECTED,
    max_depth: int = MAX_DEPTH,
) -> List[LocationNode]:
    """Collect location nodes from an arbitrary nested object graph.

    Breadth-first over dicts and lists, with caps on visited containers,
    collected nodes and depth so huge or cyclic graphs still terminate.
    The first node seen for a slug is kept.

    Args:
        graph: Decoded page state (or any part of it)
        max_visited: Maximum number of containers to visit
        max_collected: Maximum number of nodes to return
        max_depth: Maximum nesting depth to descend into

    Returns:
        Location nodes in discovery order
    """
    nodes: List[LocationNode] = []
    seen_slugs = set()
    seen_ids = set()
    queue = deque([(graph, 0)])
    visited = 0

    while queue and visited < max_visited and len(nodes) < max_collected:
        obj, depth = queue.popleft()
        if not isinstance(obj, (dict, list)) or id(obj) in seen_ids:
            continue
        seen_ids.add(id(obj))
        visited += 1

        if isinstance(obj, dict):
            node = _node_from_mapping(obj)
            if node is not None and node.slug not in seen_slugs:
                seen_slugs.add(node.slug)
                nodes.append(node)
            children = obj.values()
        else:
            children = obj

        if depth >= max_depth:
            continue
        for child in children:
            if isinstance(child, (dict, list)):
                queue.append((child, depth + 1))

    if visited >= max_visited:
        logger.debug(f"Location scan stopped after visiting {visited} containers")
    return nodes


def score_node(node: LocationNode, query: str, city_hint: str = "") -> float:
    """Score how well ``node`` matches free-text ``query``."""
    q = normalize_text(query)
    if not q:
        return 0.0
    name = normalize_text(node.name)
    hierarchy = normalize_text(node.hierarchy_text)
    hierarchy_tokens = set(hierarchy.split())

    score = 0.0
    if name == q:
        score += SCORE_EXACT_NAME
    if hierarchy == q:
        score += SCORE_EXACT_HIERARCHY
    if name and q.startswith(name):
        score += SCORE_NAME_PREFIX
    if q in hierarchy:
        score += SCORE_HIERARCHY_CONTAINS
    if set(q.split()) <= hierarchy_tokens:
        score += SCORE_ALL_TOKENS
    city_tokens = tokenize(city_hint)
    if city_tokens and city_tokens <= hierarchy_tokens:
        score += SCORE_CITY_TOKENS
    if score:
        score += SCORE_PER_LEVEL * node.depth
    return score


def resolve_location(
    query: str,
    nodes: Sequence[LocationNode],
    city_hint: str = "",
    min_score: float = MIN_MATCH_SCORE,
    levels: Optional[Iterable[int]] = None,
) -> Optional[LocationMatch]:
    """Pick the best-matching location node for free-text input.

    Args:
        query: Combined free-text query
        nodes: Candidate nodes
        city_hint: Optional city name that boosts nodes under that city
        min_score: Confidence floor; below it resolution fails
        levels: Restrict candidates to these hierarchy levels

    Returns:
        Best match, or None if nothing clears the floor
    """
    allowed = set(levels) if levels is not None else None
    best: Optional[LocationMatch] = None
    for node in nodes:
        if allowed is not None and node.level not in allowed:
            continue
        score = score_node(node, query, city_hint)
        if best is None or score > best.score:
            best = LocationMatch(node=node, score=score)

    if best is None or best.score < min_score:
        logger.debug(f"No location above {min_score} for {query!r}")
        return None
    logger.debug(f"Resolved {query!r} to {best.node.name} (score {best.score})")
    return best


def residual_query(query: str, node: LocationNode) -> str:
    """Tokens of ``query`` not explained by ``node``'s hierarchy."""
    covered = tokenize(node.hierarchy_text)
    return " ".join(t for t in normalize_text(query).split() if t not in covered)
