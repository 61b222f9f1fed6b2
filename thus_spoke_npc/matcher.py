"""
Rule matching: pick the message an NPC answers a query with.

Policy:
- A query whose "range" exceeds the NPC's range is rejected outright.
- Messages are scanned in authoring order. A message matches when every
  key of its own conditions is in the query with an identical value.
  Extra query keys are ignored. The first match wins.
- With no match, the first message carrying a "greeting" condition key
  is returned, whether or not its other conditions matched.

Authors must therefore order specific rules before general ones.
"""
from __future__ import annotations

from typing import List, Mapping, Optional

from .types import NpcMessage, NpcState, Scalar
from .validation import is_number

GREETING_KEY = "greeting"
BANTER_KEY = "banter"
RANGE_KEY = "range"


def same_scalar(a: Scalar, b: Scalar) -> bool:
    """
    Strict scalar equality.

    Booleans only equal booleans and numbers only equal numbers, so
    True does not match 1 and "1" does not match 1.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) or is_number(b):
        return is_number(a) and is_number(b) and a == b
    if a is None or b is None:
        return a is None and b is None
    return type(a) is type(b) and a == b


def out_of_range(conditions: Mapping[str, Scalar], npc: NpcState) -> bool:
    """True if the query is farther away than the NPC will talk."""
    if not npc.range:
        return False
    distance = conditions.get(RANGE_KEY)
    return is_number(distance) and distance > npc.range


def conditions_met(message: NpcMessage, conditions: Mapping[str, Scalar]) -> bool:
    """Subset test: all of the message's keys present with equal values."""
    for key, wanted in message.conditions.items():
        if key not in conditions:
            return False
        if not same_scalar(wanted, conditions[key]):
            return False
    return True


def match(conditions: Mapping[str, Scalar], npc: NpcState) -> Optional[NpcMessage]:
    """
    Select the message an NPC answers a query with.

    Args:
        conditions: The query (e.g. {"item": "ring", "range": 3})
        npc: The NPC whose rule set and range are consulted

    Returns:
        The first fully matching message, else the first greeting
        message, else None
    """
    if out_of_range(conditions, npc):
        return None

    greeting: Optional[NpcMessage] = None
    for message in npc.messages:
        if conditions_met(message, conditions):
            return message
        if greeting is None and GREETING_KEY in message.conditions:
            greeting = message

    return greeting


def find_banter_candidates(npc: NpcState) -> List[NpcMessage]:
    """Every message with a "banter" condition key, whatever its value."""
    return [m for m in npc.messages if BANTER_KEY in m.conditions]
