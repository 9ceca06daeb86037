"""Pull a workflow JSON object out of free-form model output."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator

from ..errors import CodecError, ParseError
from ..toon import decode

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
_GREEDY_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> Any:
    """Return the first JSON value found in ``text``.

    Tried in order: the whole text, a fenced ```json block, the first
    balanced ``{...}`` span, and finally the widest ``{...}`` span.
    """
    for value in _parsed_candidates(text):
        return value
    raise ParseError("No valid JSON found in model response")


def extract_workflow(text: str, allow_toon: bool = False) -> dict[str, Any]:
    """Extract a workflow object, optionally falling back to a TOON ``workflow`` entry.

    Candidates that parse to something other than an object are skipped.
    """
    skipped: list[str] = []
    for value in _parsed_candidates(text):
        if isinstance(value, dict):
            return value
        skipped.append(type(value).__name__)

    if allow_toon:
        return _toon_workflow(text)
    if skipped:
        raise ParseError(f"Expected a JSON object, got {skipped[0]}")
    raise ParseError("No valid JSON found in model response")


def _parsed_candidates(text: str) -> Iterator[Any]:
    for candidate in _candidates(text.strip()):
        try:
            yield json.loads(candidate)
        except ValueError:
            continue


def _candidates(text: str):
    if text:
        yield text

    for match in _FENCED_BLOCK.finditer(text):
        block = match.group(1).strip()
        if block:
            yield block

    balanced = _first_balanced_object(text)
    if balanced is not None:
        yield balanced

    match = _GREEDY_OBJECT.search(text)
    if match:
        yield match.group(0)


def _first_balanced_object(text: str) -> str | None:
    start = text.find("{")
    while start != -1:
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
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def _toon_workflow(text: str) -> Any:
    body = text
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        body = fenced.group(1)
    try:
        decoded = decode(body)
    except CodecError as exc:
        raise ParseError(f"Response is neither JSON nor TOON: {exc}") from exc

    if "workflow" in decoded and isinstance(decoded["workflow"], dict):
        logger.debug("Recovered workflow from TOON response")
        return decoded["workflow"]
    if isinstance(decoded.get("nodes"), list):
        logger.debug("Recovered workflow from TOON entries")
        return decoded
    raise ParseError("No valid JSON or TOON workflow found in model response")
