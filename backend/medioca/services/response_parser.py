"""Best-effort structured data extraction from free-form model output.

The model is asked for JSON but is not guaranteed to return it. Parsing runs
an ordered list of strategies and the first success wins:

1. direct   - the whole (trimmed) text is a JSON object
2. fenced   - the first ``` / ```json fenced block holds a JSON object
3. scan     - the longest balanced {...} span that parses (bracket-depth scan)
4. fallback - a low-confidence object wrapping the raw text verbatim

parse_ai_response() never raises; fallback results are tagged with
ParseStrategy.FALLBACK.
"""

import json
import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# Confidence attached to fallback objects
FALLBACK_CONFIDENCE = 0.6
EMPTY_RESPONSE_CONFIDENCE = 0.4

# Objects nested deeper than this are not treated as model output
MAX_NESTING_DEPTH = 32

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL)


class ParseStrategy(str, Enum):
    """Which strategy produced a parse result."""

    DIRECT = "direct"
    FENCED = "fenced"
    SCAN = "scan"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing model output.

    Attributes:
        value: The extracted object, or the synthesized fallback object.
        strategy: Strategy that produced value.
        fallback_reason: Why no strategy succeeded (fallback results only).
    """

    value: dict[str, Any]
    strategy: ParseStrategy
    fallback_reason: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.strategy == ParseStrategy.FALLBACK


def _nesting_depth(value: Any) -> int:
    depth = 0
    stack = [(value, 1)]
    while stack:
        item, level = stack.pop()
        if isinstance(item, dict):
            children = item.values()
        elif isinstance(item, list):
            children = item
        else:
            continue
        depth = max(depth, level)
        stack.extend((child, level + 1) for child in children)
    return depth


def _load_object(text: str) -> dict[str, Any] | None:
    """Parse text as JSON, returning None unless it is a reasonably shallow object."""
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict) or _nesting_depth(parsed) > MAX_NESTING_DEPTH:
        return None
    return parsed


def _accepts(obj: dict[str, Any] | None, required_key: str | None) -> bool:
    if obj is None:
        return False
    return required_key is None or required_key in obj


def _balanced_spans(text: str) -> list[tuple[int, int, int]]:
    """Return (start, end, brace depth) of every balanced {...} span, by start.

    Single pass over text with a stack of open-brace positions. Quotes open a
    JSON string literal only inside a brace, so stray quotes in surrounding
    prose are ignored; backslash escapes are honoured inside strings.
    """
    spans: list[tuple[int, int, int]] = []
    # [start index, deepest brace depth nested inside]
    open_braces: list[list[int]] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and open_braces:
            in_string = True
        elif ch == "{":
            open_braces.append([i, 0])
        elif ch == "}" and open_braces:
            start, inner = open_braces.pop()
            if open_braces:
                open_braces[-1][1] = max(open_braces[-1][1], inner + 1)
            spans.append((start, i, inner + 1))
    spans.sort()
    return spans


def iter_balanced_objects(text: str) -> Iterator[str]:
    """Yield every balanced {...} substring of text, nested ones included."""
    for start, end, _depth in _balanced_spans(text):
        yield text[start:end + 1]


def _parse_direct(text: str, required_key: str | None) -> dict[str, Any] | None:
    stripped = text.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        obj = _load_object(stripped)
        if _accepts(obj, required_key):
            return obj
    return None


def _parse_fenced(text: str, required_key: str | None) -> dict[str, Any] | None:
    match = _FENCED_BLOCK_RE.search(text)
    if match is None:
        return None
    obj = _load_object(match.group(1))
    if _accepts(obj, required_key):
        return obj
    return None


def _parse_scan(text: str, required_key: str | None) -> dict[str, Any] | None:
    best: dict[str, Any] | None = None
    best_size = 0
    for start, end, depth in _balanced_spans(text):
        size = end - start + 1
        if size <= best_size or depth > MAX_NESTING_DEPTH:
            continue
        obj = _load_object(text[start:end + 1])
        if _accepts(obj, required_key):
            best = obj
            best_size = size
    return best


_STRATEGIES: list[tuple[ParseStrategy, Callable[[str, str | None], dict[str, Any] | None]]] = [
    (ParseStrategy.DIRECT, _parse_direct),
    (ParseStrategy.FENCED, _parse_fenced),
    (ParseStrategy.SCAN, _parse_scan),
]


def build_fallback_object(text: str) -> dict[str, Any]:
    """Wrap unstructured model output in the standard analysis shape."""
    if not text or not text.strip():
        return {
            "analysis": text or "",
            "confidence": EMPTY_RESPONSE_CONFIDENCE,
            "clinical_reasoning": "Empty AI response - manual interpretation required",
            "recommendations": [
                {
                    "category": "system_error",
                    "action": "AI returned no content - clinical review required",
                    "priority": "high",
                }
            ],
        }
    return {
        "analysis": text,
        "confidence": FALLBACK_CONFIDENCE,
        "clinical_reasoning": "Parsed from unstructured AI response - manual review recommended",
        "recommendations": [
            {
                "category": "clinical_review",
                "action": "Review AI response for clinical insights",
                "priority": "medium",
            }
        ],
    }


def parse_ai_response(text: str | None, required_key: str | None = None) -> ParseResult:
    """Extract a JSON object from model output.

    Args:
        text: Raw completion text. None is treated as empty.
        required_key: If given, only objects containing this key count as a
            successful parse (e.g. "medications" for prescriptions).

    Returns:
        ParseResult tagged with the strategy that produced it.
    """
    text = text or ""
    for strategy, parse in _STRATEGIES:
        value = parse(text, required_key)
        if value is not None:
            logger.debug("Parsed AI response via %s strategy (%d chars)", strategy.value, len(text))
            return ParseResult(value=value, strategy=strategy)

    reason = "empty response" if not text.strip() else "no JSON object found"
    if required_key and text.strip():
        reason = f"no JSON object with '{required_key}' found"
    logger.warning("Falling back to unstructured AI response: %s (%d chars)", reason, len(text))
    return ParseResult(
        value=build_fallback_object(text),
        strategy=ParseStrategy.FALLBACK,
        fallback_reason=reason,
    )


def normalize_confidence(value: Any, default: float) -> float:
    """Coerce a confidence value onto the 0.0-1.0 scale.

    Values above 1 are read as percentages. Missing or non-numeric values
    (booleans included) take the default. Results are clamped to [0, 1].
    """
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return default
    if not isinstance(value, (int, float)):
        return default
    score = float(value)
    if score != score:  # NaN
        return default
    if score > 1.0:
        score /= 100.0
    return min(max(score, 0.0), 1.0)
