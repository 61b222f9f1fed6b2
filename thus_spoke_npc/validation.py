"""
Input validation and error taxonomy for the NPC engine.

Validates:
- Authored messages (conditions, text, rewards)
- Per-NPC timing/range options

Raises:
- ValidationError for bad messages or options
- FormatError for malformed rule text (see codec)
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Mapping


class NpcError(Exception):
    """Base class for engine errors."""


class ValidationError(NpcError, ValueError):
    """A message or NPC option failed validation."""


class FormatError(NpcError, ValueError):
    """Rule text could not be decoded."""


@dataclass
class ValidationIssue:
    """A single validation problem."""
    field: str
    message: str
    value: str = ""


class ValidationResult:
    """Result of validation check."""

    def __init__(self):
        self.errors: List[ValidationIssue] = []

    def add_error(self, field: str, message: str, value: Any = "") -> None:
        self.errors.append(ValidationIssue(field, message, str(value)))

    def extend(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def raise_if_invalid(self, context: str = "Validation") -> None:
        if not self.is_valid:
            msgs = [f"{e.field}: {e.message}" for e in self.errors]
            raise ValidationError(f"{context} failed:\n" + "\n".join(msgs))


def is_scalar(value: Any) -> bool:
    """True for str, int, float, bool or None."""
    return value is None or isinstance(value, (str, int, float, bool))


def is_number(value: Any) -> bool:
    """True for int/float, excluding bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_mapping(name: str, mapping: Any) -> ValidationResult:
    """Validate a condition or reward mapping of string keys to scalars."""
    result = ValidationResult()

    if not isinstance(mapping, Mapping):
        result.add_error(name, "Must be a mapping", type(mapping).__name__)
        return result

    for key, value in mapping.items():
        if not isinstance(key, str) or not key:
            result.add_error(name, "Keys must be non-empty strings", repr(key))
        elif not is_scalar(value):
            result.add_error(name, f"Value for {key!r} is not a scalar", type(value).__name__)

    return result


def validate_message(conditions: Any, text: Any, rewards: Any = None) -> ValidationResult:
    """Validate the parts of an authored message."""
    result = ValidationResult()

    if not conditions:
        result.add_error("conditions", "Conditions are required")
    else:
        result.extend(validate_mapping("conditions", conditions))

    if not text:
        result.add_error("text", "Text is required")
    elif not isinstance(text, str):
        result.add_error("text", "Text must be a string", type(text).__name__)

    if rewards:
        result.extend(validate_mapping("rewards", rewards))

    return result


def validate_npc_options(
    tolerance_ms: Any,
    range: Any,
    banter_chance_percent: Any,
    banter_interval_ms: Any,
) -> ValidationResult:
    """Validate the numeric options of an NPC."""
    result = ValidationResult()

    for name, value in (
        ("tolerance_ms", tolerance_ms),
        ("range", range),
        ("banter_interval_ms", banter_interval_ms),
    ):
        if not is_number(value):
            result.add_error(name, "Must be a number", value)
        elif not math.isfinite(value):
            result.add_error(name, "Must be finite", value)
        elif value < 0:
            result.add_error(name, "Must not be negative", value)

    if not is_number(banter_chance_percent):
        result.add_error("banter_chance_percent", "Must be a number", banter_chance_percent)
    elif not math.isfinite(banter_chance_percent):
        result.add_error("banter_chance_percent", "Must be finite", banter_chance_percent)
    elif banter_chance_percent < 0 or banter_chance_percent > 100:
        result.add_error("banter_chance_percent", "Must be between 0 and 100", banter_chance_percent)

    return result
