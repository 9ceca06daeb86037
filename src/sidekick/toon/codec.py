"""TOON (token-oriented object notation) encoder and decoder.

A TOON document is a sequence of top-level entries, one per root name:

    count: 3
    settings{executionOrder,saveData}:
      v1,true
    nodes[2]{id,name,position}:
      1,webhook1,Webhook,[240,300]
      2,email1,Send Email,[460,300]

Array rows carry a 1-based index that is discarded on decode. Nested
dicts/lists inside a cell are written as compact JSON text; that is the wire
format and it is kept even though it is not real TOON nesting.

Decoding is tolerant because the text usually comes from an LLM: short rows
are padded with ``None``, extra fields are dropped and unrecognised lines are
skipped. ``undefined`` decodes to ``None``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from ..errors import CodecError

logger = logging.getLogger(__name__)


class _Undefined:
    """Marker for a key that one element of an encoded array does not have."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()

_ARRAY_HEADER = re.compile(r"^(\w+)\[(\d+)\](?:\{([^}]*)\})?:$")
_OBJECT_HEADER = re.compile(r"^(\w+)\{([^}]*)\}:$")
_PRIMITIVE_LINE = re.compile(r"^(\w+):\s*(.+)$")
_BARE_LABEL = re.compile(r"^\w+:$")
_ROOT_NAME = re.compile(r"^\w+$")
_INTEGER = re.compile(r"^-?[0-9]+$")
_DECIMAL = re.compile(r"^-?[0-9]*\.[0-9]+$")
_ROW_INDEX = re.compile(r"^[0-9]+\s*,")

_QUOTE_TRIGGERS = (",", '"', "\n", "\r", "\t", "\\")
_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}
_UNESCAPES = {'"': '"', "\\": "\\", "n": "\n", "r": "\r", "t": "\t"}
_FORBIDDEN_KEY_CHARS = (",", "{", "}", "\n", "\r")


# ----------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------


def encode(value: Any, root_name: str = "data") -> str:
    """Serialize ``value`` under ``root_name`` as a TOON entry."""
    if not _ROOT_NAME.match(root_name):
        raise CodecError(f"Root name must be a single word, got {root_name!r}")

    if isinstance(value, (list, tuple)):
        return _encode_array(list(value), root_name)
    if isinstance(value, dict):
        return _encode_object(value, root_name)
    return f"{root_name}: {format_value(value)}"


def encode_many(entries: dict[str, Any]) -> str:
    """Serialize several root entries into one document."""
    return "\n".join(encode(value, name) for name, value in entries.items())


def format_value(value: Any) -> str:
    """Render a single cell or primitive value."""
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return _format_string(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


def _encode_array(items: list[Any], name: str) -> str:
    if not items:
        return f"{name}[0]:"

    keys: dict[str, None] = {}
    for item in items:
        if isinstance(item, dict):
            for key in item:
                keys.setdefault(_header_key(key), None)
    key_list = list(keys)

    if not key_list:
        logger.debug("Array %r has no object elements; rows will not decode", name)

    lines = [f"{name}[{len(items)}]{{{','.join(key_list)}}}:"]
    for index, item in enumerate(items, 1):
        if isinstance(item, dict):
            row = {_header_key(k): v for k, v in item.items()}
            cells = [format_value(row.get(key, UNDEFINED)) for key in key_list]
        else:
            cells = [format_value(item)]
        lines.append(f"  {index},{','.join(cells)}")
    return "\n".join(lines)


def _encode_object(obj: dict[Any, Any], name: str) -> str:
    keys = [_header_key(key) for key in obj]
    header = f"{name}{{{','.join(keys)}}}:"
    if not keys:
        return header
    return header + "\n  " + ",".join(format_value(v) for v in obj.values())


def _header_key(key: Any) -> str:
    text = str(key)
    if not text or text != text.strip() or any(ch in text for ch in _FORBIDDEN_KEY_CHARS):
        raise CodecError(f"Key {text!r} cannot be written in a TOON header")
    return text


def _format_string(text: str) -> str:
    if _needs_quotes(text):
        return '"' + "".join(_ESCAPES.get(ch, ch) for ch in text) + '"'
    return text


def _needs_quotes(text: str) -> bool:
    if not text or text != text.strip():
        return True
    if any(ch in text for ch in _QUOTE_TRIGGERS):
        return True
    # Unquoted cells opening with a bracket are read as nested JSON
    if text[0] in "[{":
        return True
    # Text that would read back as null/bool/number/JSON must stay a string
    decoded = parse_value(text)
    return not isinstance(decoded, str) or decoded != text


# ----------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------


def decode(text: str) -> dict[str, Any]:
    """Parse a TOON document into ``{root_name: value}``."""
    lines = [line for line in text.split("\n") if line.strip()]
    result: dict[str, Any] = {}
    cursor = 0

    while cursor < len(lines):
        line = lines[cursor].strip()
        cursor += 1

        match = _ARRAY_HEADER.match(line)
        if match:
            name, declared, keys = match.group(1), int(match.group(2)), _split_keys(match.group(3))
            rows: list[str] = []
            while cursor < len(lines) and not _is_entry_start(lines[cursor].strip()):
                rows.append(lines[cursor].strip())
                cursor += 1
            result[name] = _decode_rows(name, declared, keys, rows)
            continue

        match = _OBJECT_HEADER.match(line)
        if match:
            name, keys = match.group(1), _split_keys(match.group(2))
            values: list[Any] = []
            if keys and cursor < len(lines) and not _is_unindented_header(lines[cursor]):
                values = split_fields(lines[cursor].strip())
                cursor += 1
            elif keys:
                logger.debug("Object %r has no data line; fields default to None", name)
            result[name] = _zip_fields(name, keys, values)
            continue

        match = _PRIMITIVE_LINE.match(line)
        if match:
            result[match.group(1)] = parse_value(match.group(2).strip())
            continue

        logger.debug("Skipping unrecognised TOON line: %r", line)

    return result


def decode_value(text: str, root_name: str = "data") -> Any:
    """Decode ``text`` and return the value stored under ``root_name``."""
    decoded = decode(text)
    if root_name not in decoded:
        raise CodecError(f"TOON document has no entry named {root_name!r}")
    return decoded[root_name]


def split_fields(line: str) -> list[Any]:
    """Split one data line into parsed values, honouring quotes.

    Cells that open with ``[`` or ``{`` are read up to their matching bracket
    so that embedded JSON survives the split. If the brackets never balance
    the line is split again treating brackets as plain text.
    """
    fields = _tokenize(line, nested=True)
    if fields is None:
        fields = _tokenize(line, nested=False) or []
    return [parse_value(field.strip()) for field in fields]


def parse_value(text: str) -> Any:
    """Interpret a single raw field or primitive right-hand side."""
    if text in ("null", "undefined"):
        return None
    if text == "true":
        return True
    if text == "false":
        return False
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return _unescape(text[1:-1])
    if _INTEGER.match(text):
        return int(text)
    if _DECIMAL.match(text):
        return float(text)
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        return text


def _decode_rows(name: str, declared: int, keys: list[str], rows: list[str]) -> list[dict[str, Any]]:
    if not keys:
        if rows:
            raise CodecError(f"Array {name!r} declares no keys but has {len(rows)} data row(s)")
        return []

    if declared != len(rows):
        logger.debug("Array %r declares %d rows but has %d", name, declared, len(rows))

    return [_zip_fields(name, keys, split_fields(_ROW_INDEX.sub("", row, count=1))) for row in rows]


def _zip_fields(name: str, keys: list[str], values: list[Any]) -> dict[str, Any]:
    if len(values) > len(keys):
        logger.debug("Dropping %d extra field(s) in %r", len(values) - len(keys), name)
    return {key: values[i] if i < len(values) else None for i, key in enumerate(keys)}


def _split_keys(group: str | None) -> list[str]:
    if not group:
        return []
    return [key.strip() for key in group.split(",") if key.strip()]


def _is_entry_start(line: str) -> bool:
    return bool(
        _ARRAY_HEADER.match(line)
        or _OBJECT_HEADER.match(line)
        or _PRIMITIVE_LINE.match(line)
        or _BARE_LABEL.match(line)
    )


def _is_unindented_header(raw_line: str) -> bool:
    if raw_line[:1].isspace():
        return False
    line = raw_line.strip()
    return bool(_ARRAY_HEADER.match(line) or _OBJECT_HEADER.match(line))


def _tokenize(line: str, nested: bool) -> list[str] | None:
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    in_json_string = False
    depth = 0
    i = 0

    while i < len(line):
        ch = line[i]

        # Escapes are kept verbatim; parse_value interprets them later
        if ch == "\\" and i + 1 < len(line):
            current.append(line[i : i + 2])
            i += 2
            continue

        if depth:
            current.append(ch)
            if in_json_string:
                in_json_string = ch != '"'
            elif ch == '"':
                in_json_string = True
            elif ch in "[{":
                depth += 1
            elif ch in "]}":
                depth -= 1
            i += 1
            continue

        if ch == '"':
            in_quotes = not in_quotes
        elif not in_quotes:
            if ch == ",":
                fields.append("".join(current))
                current = []
                i += 1
                continue
            if nested and ch in "[{" and not "".join(current).strip():
                depth = 1

        current.append(ch)
        i += 1

    if nested and (depth or in_json_string):
        return None

    tail = "".join(current)
    if tail.strip():
        fields.append(tail)
    return fields


def _unescape(body: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_UNESCAPES.get(nxt, "\\" + nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-JSON constant {name}")
