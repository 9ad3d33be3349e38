"""
Parsing of structured completion output

Model output is unreliable: it may wrap JSON in prose or markdown fences,
return the wrong shape, or not be JSON at all. ``parse_structured`` turns it
into a tagged outcome:

- ``strict``: the payload parsed and matched the expected shape
- ``normalized``: it parsed but needed defaults filled in
- ``fallback``: unusable, the caller substitutes its canonical value

Parse exceptions never escape this module.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")
CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

STRICT = "strict"
NORMALIZED = "normalized"
FALLBACK = "fallback"


@dataclass
class ParseOutcome:
    """Result of parsing one completion response"""
    kind: str
    value: Any
    notes: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.kind == FALLBACK


def extract_json_payload(raw: str) -> str:
    """
    Locate the JSON object inside a raw completion

    The outermost ``{...}`` span wins; without one, markdown fences are
    stripped and the trimmed text is returned as-is.
    """
    match = JSON_OBJECT_PATTERN.search(raw or "")
    if match:
        return match.group(0)
    return CODE_FENCE_PATTERN.sub("", (raw or "").strip()).strip()


def load_json_object(raw: str) -> dict:
    """Strictly parse a completion into a dict, raising ValueError otherwise"""
    payload = extract_json_payload(raw)
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_structured(
    raw: str,
    normalize: Callable[[dict], Tuple[Any, List[str]]],
    fallback: Callable[[], Any],
    label: str = "completion",
) -> ParseOutcome:
    """
    Parse a completion with a normalizer and a canonical fallback

    Args:
        raw: Raw completion text
        normalize: Maps the parsed dict to (value, notes). Notes list every
            default that had to be filled; raise ValueError when the payload
            is structurally unusable.
        fallback: Produces the canonical value
        label: Used in log messages

    Returns:
        ParseOutcome tagged strict / normalized / fallback
    """
    try:
        data = load_json_object(raw)
        value, notes = normalize(data)
    except (ValueError, TypeError, KeyError, ArithmeticError) as e:
        # json.JSONDecodeError is a ValueError; Infinity and NaN overflow int()
        logger.warning(f"Unparseable {label} output, using fallback: {str(e)}")
        logger.debug(f"Raw {label} output: {(raw or '')[:500]}")
        return ParseOutcome(kind=FALLBACK, value=fallback(), error=str(e))

    if notes:
        logger.info(f"Normalized {label} output: {'; '.join(notes)}")
        return ParseOutcome(kind=NORMALIZED, value=value, notes=notes)
    return ParseOutcome(kind=STRICT, value=value)


def as_string_list(value: Any) -> List[str]:
    """Coerce a model-provided list field; scalars become one-element lists"""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    text = str(value).strip()
    return [text] if text else []


def unique_preserving_order(items: List[str]) -> List[str]:
    """Drop case-insensitive duplicates, keeping first occurrences"""
    seen = set()
    result = []
    for item in items:
        key = item.strip().casefold()
        if key and key not in seen:
            seen.add(key)
            result.append(item.strip())
    return result
