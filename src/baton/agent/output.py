"""Structured output extraction from model text."""

from __future__ import annotations

import logging
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> str:
    """Pull a JSON payload out of text that may wrap it in a code fence."""
    match = _FENCE_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = _OBJECT_RE.search(text)
    if match:
        return match.group(0)
    return text.strip()


def parse_output(text: str, output_type: type[M]) -> M | None:
    """Validate ``text`` as ``output_type``; None when it does not fit."""
    try:
        return output_type.model_validate_json(extract_json(text))
    except ValidationError as e:
        logger.debug("Output does not match %s: %s", output_type.__name__, e)
        return None
