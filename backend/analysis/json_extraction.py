"""
Structured-output extraction for unreliable model text.

Tiers, in order:
1. direct  - strip fences, try each balanced JSON span in turn, parse, validate
2. repair  - from each candidate bracket, fix smart quotes, trailing commas,
             unescaped inner quotes, raw newlines, truncated strings/brackets;
             parse, validate
3. partial - caller-supplied fragment extractor pulls individual items
4. failed  - nothing usable; raw excerpt kept for diagnostics
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from .errors import ExtractionError

logger = logging.getLogger(__name__)

RAW_EXCERPT_CHARS = 500
# Bracket positions tried per tier before giving up
MAX_CANDIDATES = 10

DIRECT = "direct"
REPAIR = "repair"
PARTIAL = "partial"
FAILED = "failed"

FragmentExtractor = Callable[[str], Dict[str, Any]]

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*")
_OPENER_RE = re.compile(r"[\[{]")
_SMART_QUOTES = {
    "“": '"', "”": '"', "„": '"', "‟": '"',
    "‘": "'", "’": "'", "‚": "'", "‛": "'",
}
_CLOSERS = {"{": "}", "[": "]"}
# Characters that may legitimately follow a closing quote
_AFTER_STRING = set(",:}]")


@dataclass
class ParseOutcome:
    success: bool
    strategy: str
    data: Any = None
    error: Optional[str] = None
    attempts: List[Tuple[str, str]] = field(default_factory=list)
    raw_excerpt: Optional[str] = None

    def unwrap(self) -> Any:
        """Return the parsed data, raising ExtractionError on failure."""
        if not self.success:
            raise ExtractionError(self.error or "extraction failed")
        return self.data


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _first_opener(text: str) -> int:
    positions = [p for p in (text.find("{"), text.find("[")) if p != -1]
    return min(positions) if positions else -1


def find_json_span(text: str) -> Optional[str]:
    """Return the balanced {...} or [...] span at the first bracket, or None if unbalanced."""
    start = _first_opener(text)
    if start == -1:
        return None
    return _balanced_span(text, start)


def _balanced_span(text: str, start: int) -> Optional[str]:
    stack = []
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
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]":
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return text[start:i + 1]
    return None


def candidate_starts(text: str, limit: int = MAX_CANDIDATES) -> List[Tuple[int, Optional[str]]]:
    """
    Top-level bracket positions, left to right, with the balanced span at each.

    Brackets nested inside a balanced span are skipped; after an unbalanced
    bracket the scan resumes at the next one.
    """
    found: List[Tuple[int, Optional[str]]] = []
    pos = 0
    while len(found) < limit:
        match = _OPENER_RE.search(text, pos)
        if match is None:
            break
        start = match.start()
        span = _balanced_span(text, start)
        found.append((start, span))
        pos = start + len(span) if span is not None else start + 1
    return found


def _next_significant(text: str, i: int) -> str:
    while i < len(text) and text[i] in " \t\r\n":
        i += 1
    return text[i] if i < len(text) else ""


def repair_json(text: str) -> str:
    """
    Apply lenient fixes to near-JSON text.

    Works on a single top-level value starting at the first bracket; anything
    after it closes is dropped. Truncated output is closed off at the last
    point that parses.
    """
    for smart, plain in _SMART_QUOTES.items():
        text = text.replace(smart, plain)
    text = text.replace("\\'", "'")

    start = _first_opener(text)
    if start == -1:
        return text

    out: List[str] = []
    stack: List[str] = []
    # (output length, stack copy) at each top-level-safe comma, for truncation
    cut_points: List[Tuple[int, List[str]]] = []
    in_string = False
    escaped = False
    i = start

    while i < len(text):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
                out.append(ch)
            elif ch == "\\":
                escaped = True
                out.append(ch)
            elif ch == '"':
                nxt = _next_significant(text, i + 1)
                if nxt in _AFTER_STRING or nxt == "":
                    in_string = False
                    out.append(ch)
                else:
                    out.append('\\"')
            elif ch == "\n":
                out.append("\\n")
            elif ch == "\r":
                pass
            elif ch == "\t":
                out.append("\\t")
            else:
                out.append(ch)
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
            out.append(ch)
        elif ch in "}]":
            if stack:
                stack.pop()
            out.append(ch)
            if not stack:
                break
        elif ch == ",":
            if _next_significant(text, i + 1) in ("}", "]"):
                i += 1
                continue
            cut_points.append((len(out), list(stack)))
            out.append(ch)
        else:
            out.append(ch)
        i += 1

    repaired = "".join(out)
    if not stack and not in_string:
        return repaired

    # Truncated: close the open string and brackets
    candidate = repaired + ('"' if in_string else "")
    candidate = re.sub(r"[,:\s]+$", "", candidate)
    closed = candidate + "".join(reversed(stack))
    if _loads_ok(closed):
        return closed

    for length, snapshot in reversed(cut_points):
        closed = repaired[:length] + "".join(reversed(snapshot))
        if _loads_ok(closed):
            return closed
    return closed


def _loads_ok(text: str) -> bool:
    try:
        json.loads(text)
        return True
    except json.JSONDecodeError:
        return False


def _validate(data: Any, schema: Optional[Type[BaseModel]]) -> Any:
    if schema is None:
        return data
    return schema.model_validate(data)


class ExtractionPipeline:
    """
    Tiered parser that turns model text into validated data.

    Usage:
        outcome = ExtractionPipeline().parse(text, BatchAnalysis, fragment_extractor=extract)
        if outcome.success:
            ...
    """

    def __init__(self, label: str = "response"):
        self.label = label

    def parse(
        self,
        raw_text: Optional[str],
        schema: Optional[Type[BaseModel]] = None,
        fragment_extractor: Optional[FragmentExtractor] = None,
    ) -> ParseOutcome:
        raw_text = raw_text or ""
        attempts: List[Tuple[str, str]] = []
        cleaned = strip_code_fences(raw_text)

        # Strategy 1: direct parse of each balanced span, left to right
        candidates = candidate_starts(cleaned)
        spans = [span for _, span in candidates if span is not None]
        direct_error = "no balanced JSON span"
        for span in spans:
            try:
                data = _validate(json.loads(span), schema)
                attempts.append((DIRECT, "ok"))
                logger.debug(f"Parsed {self.label} directly")
                return ParseOutcome(True, DIRECT, data=data, attempts=attempts)
            except (json.JSONDecodeError, ValidationError) as e:
                direct_error = _short_error(e)
        attempts.append((DIRECT, direct_error))
        logger.info(f"Direct parse of {self.label} failed on {len(spans)} span(s): {direct_error}")

        # Strategy 2: repair and re-parse from each candidate bracket
        repair_error = "no JSON opener"
        for start, _ in candidates:
            try:
                data = _validate(json.loads(repair_json(cleaned[start:])), schema)
                attempts.append((REPAIR, "ok"))
                logger.warning(f"Parsed {self.label} after JSON repair")
                return ParseOutcome(True, REPAIR, data=data, attempts=attempts)
            except (json.JSONDecodeError, ValidationError) as e:
                repair_error = _short_error(e)
        attempts.append((REPAIR, repair_error))
        logger.info(f"Repair parse of {self.label} failed: {repair_error}")

        # Strategy 3: fragment extraction
        if fragment_extractor is not None:
            recovered = fragment_extractor(raw_text)
            if recovered:
                attempts.append((PARTIAL, f"recovered {len(recovered)} item(s)"))
                logger.warning(f"Recovered {len(recovered)} item(s) from malformed {self.label}")
                return ParseOutcome(True, PARTIAL, data=recovered, attempts=attempts)
            attempts.append((PARTIAL, "no fragments"))

        excerpt = raw_text[:RAW_EXCERPT_CHARS]
        logger.error(f"Failed to parse {self.label} after all strategies: {excerpt}...")
        return ParseOutcome(
            False,
            FAILED,
            error=f"Failed to parse {self.label} as JSON after all strategies",
            attempts=attempts,
            raw_excerpt=excerpt,
        )


def _short_error(exc: Exception) -> str:
    text = str(exc).splitlines()[0] if str(exc) else exc.__class__.__name__
    return f"{exc.__class__.__name__}: {text}"[:200]
