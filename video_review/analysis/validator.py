"""Response validation and normalization.

Two phases:
1. extract_json_object() pulls the first balanced, well-formed JSON object
   out of the model's prose (untyped dict).
2. normalize_payload() validates every field independently into a
   NormalizedResponse. Only a missing summary is fatal; everything else
   degrades to an explicit placeholder plus a diagnostic message.
"""

import json
import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from video_review.analysis.categories import lookup_keys, normalize_key
from video_review.analysis.schemas import CategoryResult, NormalizedResponse
from video_review.exceptions import ErrorKind, ResponseParseError

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 10

NO_ANALYSIS_FEEDBACK = "No analysis was provided for this category."


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the first balanced `{...}` in `text` that parses as a JSON object.

    Raises:
        ResponseParseError(NoStructuredData): no such object exists.
    """
    for candidate in _balanced_objects(text or ""):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    raise ResponseParseError(
        "Failed to parse analysis response: no structured data found in model output",
        kind=ErrorKind.NO_STRUCTURED_DATA,
    )


def _balanced_objects(text: str) -> Iterator[str]:
    """Yield top-level balanced brace-delimited substrings, left to right.

    Braces inside JSON string literals are ignored. Scanning resumes after the
    closing brace of each candidate, so objects nested inside another are never
    tried on their own. An object still open at the end of the text (truncated
    output) ends the scan.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    end = index
                    break
        if end == -1:
            return
        yield text[start:end + 1]
        start = text.find("{", end + 1)


def validate_response(
    raw_text: str,
    requested_categories: Sequence[str],
) -> Tuple[NormalizedResponse, List[str]]:
    """Extract and validate a model response against the requested categories."""
    payload = extract_json_object(raw_text)
    return normalize_payload(payload, requested_categories)


def normalize_payload(
    payload: Dict[str, Any],
    requested_categories: Sequence[str],
) -> Tuple[NormalizedResponse, List[str]]:
    diagnostics: List[str] = []

    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ResponseParseError(
            "Failed to parse analysis response: required field 'summary' is missing",
            kind=ErrorKind.MISSING_FIELD,
            field="summary",
        )

    transcript = payload.get("transcript")
    if transcript is None:
        _warn(diagnostics, "transcript missing; defaulting to empty")
        transcript = ""
    elif not isinstance(transcript, str):
        _warn(diagnostics, f"transcript has invalid type {type(transcript).__name__}; defaulting to empty")
        transcript = ""

    categories = _normalize_categories(payload.get("categories"), requested_categories, diagnostics)
    duration = _normalize_duration(payload, diagnostics)
    recommendations = _normalize_recommendations(payload.get("recommendations"), diagnostics)

    response = NormalizedResponse(
        summary=summary.strip(),
        transcript=transcript.strip(),
        categories=tuple(categories),
        duration_seconds=duration,
        recommendations=tuple(recommendations),
    )
    return response, diagnostics


def _normalize_categories(
    raw: Any,
    requested: Sequence[str],
    diagnostics: List[str],
) -> List[CategoryResult]:
    if raw is None:
        _warn(diagnostics, "categories missing from model response")
        raw = []
    elif not isinstance(raw, list):
        _warn(diagnostics, f"categories has invalid type {type(raw).__name__}; expected a list")
        raw = []

    index: Dict[str, Dict[str, Any]] = {}
    for position, entry in enumerate(raw):
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            _warn(diagnostics, f"categories[{position}] is not a named object; ignored")
            continue
        key = normalize_key(entry["name"])
        if key in index:
            _warn(diagnostics, f"duplicate entry for category '{entry['name']}'; first one kept")
            continue
        index[key] = entry

    results = []
    for name in requested:
        entry = _find_entry(index, name)
        if entry is None:
            _warn(diagnostics, f"no analysis returned for category '{name}'")
            results.append(CategoryResult(name=name, score=None, feedback=NO_ANALYSIS_FEEDBACK))
        else:
            results.append(_validate_entry(name, entry, diagnostics))
    return results


def _find_entry(index: Dict[str, Dict[str, Any]], name: str) -> Optional[Dict[str, Any]]:
    if name in index:
        return index[name]
    for key in lookup_keys(name):
        if key in index:
            return index[key]
    return None


def _validate_entry(name: str, entry: Dict[str, Any], diagnostics: List[str]) -> CategoryResult:
    raw_score = entry.get("score")
    raw_feedback = entry.get("feedback")
    feedback = raw_feedback.strip() if isinstance(raw_feedback, str) else ""
    score = _coerce_score(raw_score)

    if score is None:
        _warn(diagnostics, f"category '{name}' has invalid score {raw_score!r}")
        message = (
            f"Invalid score received ({raw_score!r}); expected an integer "
            f"from {MIN_SCORE} to {MAX_SCORE}."
        )
        if feedback:
            message = f"{message} Model feedback: {feedback}"
        return CategoryResult(name=name, score=None, feedback=message)

    if not feedback:
        _warn(diagnostics, f"category '{name}' has score {score} but no feedback")
        return CategoryResult(
            name=name,
            score=None,
            feedback=f"Score {score} was received without any feedback, so it was not counted.",
        )

    return CategoryResult(name=name, score=score, feedback=feedback)


def _coerce_score(value: Any) -> Optional[int]:
    """Integers (and integral floats) in [MIN_SCORE, MAX_SCORE]; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int) and MIN_SCORE <= value <= MAX_SCORE:
        return value
    return None


def _normalize_duration(payload: Dict[str, Any], diagnostics: List[str]) -> Optional[int]:
    for key in ("durationSeconds", "duration"):
        if key not in payload:
            continue
        value = payload[key]
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        _warn(diagnostics, f"{key} has invalid value {value!r}; video length unavailable")
        return None
    return None


def _normalize_recommendations(raw: Any, diagnostics: List[str]) -> List[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        _warn(diagnostics, f"recommendations has invalid type {type(raw).__name__}; ignored")
        return []
    kept = []
    for item in raw:
        if isinstance(item, str) and item.strip():
            kept.append(item.strip())
        else:
            _warn(diagnostics, f"recommendation {item!r} is not a non-empty string; dropped")
    return list(dict.fromkeys(kept))


def _warn(diagnostics: List[str], message: str) -> None:
    logger.warning(f"{__name__}:normalize_payload - {message}")
    diagnostics.append(message)
