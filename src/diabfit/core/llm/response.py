"""Response parsing for vision model output."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from diabfit.core.llm.errors import DecodingError, InvalidResponseError

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


def extract_json_text(content: str) -> str:
    """Return the span from the first ``{`` to the last ``}`` in ``content``.

    Models often wrap the JSON in prose or a Markdown fence.

    Raises:
        InvalidResponseError: If no braces enclose an object.
    """
    cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", content.strip()))
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise InvalidResponseError()
    return cleaned[start : end + 1]


def extract_json_object(content: str) -> dict[str, Any]:
    """Extract and decode the JSON object embedded in a model response.

    Raises:
        InvalidResponseError: If the response contains no object.
        DecodingError: If the extracted text is not a JSON object.
    """
    text = extract_json_text(content)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("Vision response JSON did not decode: %s", exc)
        raise DecodingError(str(exc)) from exc
    if not isinstance(data, dict):
        raise DecodingError("top-level JSON value is not an object")
    return data
