"""
Compact text format for authoring rule sets.

Grammar:
    record   := <conditions> "|" <text> "|" <rewards> "<<<"
    pairs    := "" | key "=" value ("," key "=" value)*

Every record, including the last, is terminated by "<<<". Booleans and
None are written as true/false/null; everything else as its literal text.

Known limitations:
- There is no escaping. Keys, values and texts must not contain "|",
  ",", "=" or "<<<" (text may contain "," and "=").
- Whitespace around a record is not significant, so a record may not
  start or end with it (a leading space in the first key, a trailing
  space in the last value).
- Numeric-looking strings decode as numbers, so the string "42" comes
  back as the int 42.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Dict, Iterable, List, Mapping, Union

from .types import NpcMessage, Scalar
from .validation import FormatError, ValidationError, is_number

logger = logging.getLogger(__name__)

RECORD_TERMINATOR = "<<<"
FIELD_SEPARATOR = "|"
PAIR_SEPARATOR = ","
KEY_VALUE_SEPARATOR = "="

_RESERVED_IN_PAIRS = (RECORD_TERMINATOR, FIELD_SEPARATOR, PAIR_SEPARATOR, KEY_VALUE_SEPARATOR)
_RESERVED_IN_TEXT = (RECORD_TERMINATOR, FIELD_SEPARATOR)

_INT_RE = re.compile(r"-?\d+")
_FLOAT_RE = re.compile(r"-?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?")


def encode_scalar(value: Scalar) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    return str(value)


def decode_scalar(token: str) -> Scalar:
    """Inverse of encode_scalar. Numeric tokens become int or float."""
    if token == "true":
        return True
    if token == "false":
        return False
    if token == "null":
        return None
    if _INT_RE.fullmatch(token):
        return int(token)
    if _FLOAT_RE.fullmatch(token):
        return float(token)
    return token


def _check_reserved(token: str, reserved: Iterable[str], what: str) -> None:
    for r in reserved:
        if r in token:
            raise FormatError(f"{what} {token!r} contains reserved sequence {r!r}")


def encode_pairs(mapping: Mapping[str, Scalar]) -> str:
    """Encode a mapping as "k=v,k=v"."""
    parts = []
    for key, value in (mapping or {}).items():
        if is_number(value) and not math.isfinite(value):
            raise FormatError(f"Value for {key!r} is not finite")
        encoded = encode_scalar(value)
        _check_reserved(key, _RESERVED_IN_PAIRS, "Key")
        _check_reserved(encoded, _RESERVED_IN_PAIRS, "Value")
        parts.append(f"{key}{KEY_VALUE_SEPARATOR}{encoded}")
    return PAIR_SEPARATOR.join(parts)


def decode_pairs(text: str) -> Dict[str, Scalar]:
    """Decode "k=v,k=v" into a dict. The empty string is an empty dict."""
    result: Dict[str, Scalar] = {}
    if not text:
        return result

    for pair in text.split(PAIR_SEPARATOR):
        key, sep, value = pair.partition(KEY_VALUE_SEPARATOR)
        if not sep:
            raise FormatError(f"Pair {pair!r} is missing '{KEY_VALUE_SEPARATOR}'")
        if not key:
            raise FormatError(f"Pair {pair!r} has an empty key")
        if KEY_VALUE_SEPARATOR in value:
            raise FormatError(f"Pair {pair!r} has more than one '{KEY_VALUE_SEPARATOR}'")
        result[key] = decode_scalar(value)

    return result


def encode(messages: Iterable[Union[NpcMessage, Mapping]]) -> str:
    """
    Encode a rule set into a single string.

    Raises:
        FormatError: a key, value or text contains a reserved sequence
    """
    records = []
    for message in messages:
        if not isinstance(message, NpcMessage):
            message = NpcMessage.from_dict(dict(message))
        _check_reserved(message.text, _RESERVED_IN_TEXT, "Text")
        record = FIELD_SEPARATOR.join([
            encode_pairs(message.conditions),
            message.text,
            encode_pairs(message.rewards),
        ])
        # a trailing "<" would merge into the terminator
        if record.endswith(RECORD_TERMINATOR[0]):
            raise FormatError(f"Record {record!r} must not end with {RECORD_TERMINATOR[0]!r}")
        # decode strips whitespace around each record
        if record != record.strip():
            raise FormatError(f"Record {record!r} must not start or end with whitespace")
        records.append(record + RECORD_TERMINATOR)
    return "".join(records)


def decode(text: str) -> List[NpcMessage]:
    """
    Decode a rule set string into messages.

    Whitespace around the document and around each record is ignored,
    so records can be written one per line.

    Raises:
        FormatError: the text is malformed or a record is not a valid message
    """
    if not isinstance(text, str):
        raise FormatError(f"Expected a string, got {type(text).__name__}")

    body = text.strip()
    if not body:
        return []
    if not body.endswith(RECORD_TERMINATOR):
        raise FormatError(f"Rule text must end with {RECORD_TERMINATOR!r}")

    chunks = body[: -len(RECORD_TERMINATOR)].split(RECORD_TERMINATOR)
    messages: List[NpcMessage] = []

    for index, chunk in enumerate(chunks):
        record = chunk.strip()
        fields = record.split(FIELD_SEPARATOR)
        if len(fields) != 3:
            raise FormatError(
                f"Record {index} has {len(fields)} fields, expected 3: {record!r}"
            )
        conditions, line, rewards = fields
        try:
            messages.append(NpcMessage(
                conditions=decode_pairs(conditions),
                text=line,
                rewards=decode_pairs(rewards),
            ))
        except FormatError as e:
            raise FormatError(f"Record {index}: {e}") from e
        except ValidationError as e:
            raise FormatError(f"Record {index} is not a valid message: {e}") from e

    logger.debug(f"Decoded {len(messages)} messages")
    return messages


def as_mapping(value: Union[str, Mapping[str, Scalar], None]) -> Dict[str, Scalar]:
    """Accept either a mapping or "k=v,k=v" text."""
    if value is None:
        return {}
    if isinstance(value, str):
        return decode_pairs(value.strip())
    return dict(value)


def as_messages(value: Union[str, Iterable[Union[NpcMessage, Mapping]], None]) -> List[NpcMessage]:
    """Accept rule text, a list of NpcMessage, or a list of dicts."""
    if value is None:
        return []
    if isinstance(value, str):
        return decode(value)
    return [
        m if isinstance(m, NpcMessage) else NpcMessage.from_dict(dict(m))
        for m in value
    ]
