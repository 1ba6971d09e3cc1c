"""Normalisation and schema validation of classification payloads.

The classifier is asked for bare JSON but may wrap it in markdown fences,
reasoning blocks or a sentence of prose. Everything returned here has been
validated against the pydantic schemas in ``models``.
"""

import json
import logging
import re
from typing import Any, Dict, List, Tuple

from pydantic import TypeAdapter, ValidationError

from errors import ResponseParseError
from models import RoleIdentification, TagAssignment

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?[ \t]*\n?")
_THINK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_DELIMITERS = {"object": ("{", "}"), "array": ("[", "]")}

_TAG_LIST = TypeAdapter(List[TagAssignment])


def strip_wrappers(text: str, expect: str = "object") -> str:
    """Remove code fences and reasoning blocks, then cut to the outermost JSON value."""
    cleaned = _THINK_PATTERN.sub("", text or "")
    cleaned = _FENCE_PATTERN.sub("", cleaned).strip()

    open_char, close_char = _DELIMITERS[expect]
    first = cleaned.find(open_char)
    last = cleaned.rfind(close_char)
    if first != -1 and last > first:
        cleaned = cleaned[first:last + 1]
    return cleaned


def parse_json_payload(text: str, expect: str = "object") -> Any:
    """Parse a classifier payload as a JSON object or array."""
    if expect not in _DELIMITERS:
        raise ValueError(f"expect must be 'object' or 'array', got {expect!r}")

    cleaned = strip_wrappers(text, expect)
    if not cleaned:
        raise ResponseParseError("Classification payload is empty", raw=text)

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning(f"Unparseable classification payload (first 200 chars): {text[:200]!r}")
        raise ResponseParseError(f"Classification payload is not valid JSON: {e}", raw=text) from e

    expected_type = dict if expect == "object" else list
    if not isinstance(payload, expected_type):
        raise ResponseParseError(
            f"Expected a JSON {expect}, got {type(payload).__name__}", raw=text
        )
    return payload


def parse_role_payload(text: str) -> Tuple[Dict[str, Any], RoleIdentification]:
    """Validate a role identification payload.

    Returns the parsed JSON exactly as the classifier sent it, alongside the
    validated model with normalised roles.
    """
    payload = parse_json_payload(text, "object")
    try:
        return payload, RoleIdentification.model_validate(payload)
    except ValidationError as e:
        raise ResponseParseError(f"Role identification payload failed validation: {e}", raw=text) from e


def parse_role_identification(text: str) -> RoleIdentification:
    return parse_role_payload(text)[1]


def parse_tag_assignments(text: str) -> List[TagAssignment]:
    payload = parse_json_payload(text, "array")
    try:
        return _TAG_LIST.validate_python(payload)
    except ValidationError as e:
        raise ResponseParseError(f"Tag assignment payload failed validation: {e}", raw=text) from e
