# mindmate/domain/normalizer.py
"""
Turns the chat model's raw text into an AnalysisResult.

The model is asked for a bare JSON object but often wraps it in ```json fences,
adds prose around it, or breaks the JSON. normalize_response() handles the
recoverable cases and reports the rest as a tagged outcome instead of raising;
salvage_reply() is the last resort the analyzer tries before the fallback
responder.
"""
from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from mindmate.domain.models import (
    DEFAULT_INTENSITY,
    DEFAULT_RISK_SCORE,
    SOURCE_MODEL,
    SOURCE_SALVAGED,
    AnalysisResult,
    is_usable_reply,
    normalize_emotion,
)
from mindmate.exceptions import InvalidReply, MalformedResponse

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_REPLY_RE = re.compile(r'"reply"\s*:\s*"((?:[^"\\]|\\.)*)"')


@dataclass(frozen=True)
class NormalizeOutcome:
    """Either `result` (success) or `error` (MalformedResponse / InvalidReply)."""

    result: Optional[AnalysisResult] = None
    error: Optional[Union[MalformedResponse, InvalidReply]] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _balanced_object_from(text: str, start: int) -> Optional[str]:
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
                return text[start : i + 1]
    return None


def extract_first_object(text: str) -> Optional[str]:
    """First balanced {...} region; braces inside JSON strings are ignored."""
    start = text.find("{")
    while start != -1:
        candidate = _balanced_object_from(text, start)
        if candidate is not None:
            return candidate
        start = text.find("{", start + 1)
    return None


def coerce_score(value: Any, default: float) -> float:
    """Numbers and numeric strings, clamped to [0, 1]; anything else -> default."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if not math.isfinite(number):
        return default
    return min(1.0, max(0.0, number))


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else None


def build_result(payload: Dict[str, Any], source: str = SOURCE_MODEL) -> AnalysisResult:
    """Apply the per-field defaults to an already validated payload."""
    return AnalysisResult(
        reply=payload["reply"],
        primary_emotion=normalize_emotion(payload.get("primary_emotion")),
        intensity=coerce_score(payload.get("intensity"), DEFAULT_INTENSITY),
        hidden_emotion=_optional_text(payload.get("hidden_emotion")),
        risk_score=coerce_score(payload.get("risk_score"), DEFAULT_RISK_SCORE),
        distortion=_optional_text(payload.get("distortion")),
        source=source,
    )


def normalize_response(raw_text: Optional[str]) -> NormalizeOutcome:
    if not raw_text:
        return NormalizeOutcome(error=MalformedResponse("empty model response"))

    cleaned = strip_code_fences(raw_text)

    candidate = extract_first_object(cleaned)
    if candidate is None:
        return NormalizeOutcome(error=MalformedResponse("no JSON object in model response"))

    try:
        payload = json.loads(candidate)
    except (ValueError, RecursionError) as e:
        return NormalizeOutcome(error=MalformedResponse(f"model JSON does not parse: {e}"))

    if not isinstance(payload, dict):
        return NormalizeOutcome(error=MalformedResponse("model JSON is not an object"))

    if not is_usable_reply(payload.get("reply")):
        return NormalizeOutcome(error=InvalidReply("reply missing or shorter than 3 characters"))

    return NormalizeOutcome(result=build_result(payload))


def salvage_reply(raw_text: Optional[str]) -> Optional[AnalysisResult]:
    """Pull a bare "reply": "..." out of broken JSON; everything else neutral."""
    if not raw_text:
        return None

    match = _REPLY_RE.search(raw_text)
    if not match:
        return None

    escaped = match.group(1)
    try:
        reply = json.loads(f'"{escaped}"')
    except json.JSONDecodeError:
        reply = escaped

    if not is_usable_reply(reply):
        return None

    return AnalysisResult(reply=reply, source=SOURCE_SALVAGED)
