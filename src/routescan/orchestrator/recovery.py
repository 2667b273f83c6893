"""Recover a JSON payload from loosely formatted model output."""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Union

from ..logging import get_logger
from .errors import MalformedResponse

LOG = get_logger("recovery")

USER_MESSAGE = "Could not process the extraction service response."

_JSON_FENCE = re.compile(r"```json\s?(.*?)\s?```", re.DOTALL)
_ANY_FENCE = re.compile(r"```\s?(.*?)\s?```", re.DOTALL)

JsonPayload = Union[dict, list]


def _loads_container(text: str) -> JsonPayload:
    data = json.loads(text)
    if not isinstance(data, (dict, list)):
        raise ValueError(f"expected a JSON object or array, got {type(data).__name__}")
    return data


def _primary_candidate(text: str) -> str:
    """Pick the fenced ```json block, else any fenced block, else the text."""
    match = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    return match.group(1) if match else text


def _brace_slice(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def recover_json(text: Optional[str]) -> JsonPayload:
    """Return the JSON object (or array) embedded in ``text``.

    Tries the fenced/whole-text candidate first, then the slice between the
    first ``{`` and the last ``}``. Raises MalformedResponse when neither
    parses; the parser error is logged and chained, not used as the message.
    """
    if not text or not text.strip():
        raise MalformedResponse(USER_MESSAGE, {"reason": "empty text"})

    try:
        return _loads_container(_primary_candidate(text).strip())
    except ValueError as exc:
        LOG.debug("Primary JSON parse failed (%s); trying brace slice", exc)
        first_error: Exception = exc

    sliced = _brace_slice(text)
    if sliced is None:
        LOG.error("No JSON object found in response; first 200 chars: %r", text[:200])
        raise MalformedResponse(USER_MESSAGE, {"reason": "no braces"}) from first_error
    try:
        return _loads_container(sliced)
    except ValueError as exc:
        LOG.error("Brace-slice JSON parse failed: %s; first 200 chars: %r", exc, text[:200])
        raise MalformedResponse(USER_MESSAGE, {"reason": "unparseable"}) from exc
