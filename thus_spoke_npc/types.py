from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union

from .scheduler import TimerHandle
from .validation import validate_message, validate_npc_options

Scalar = Union[str, int, float, bool, None]
Conditions = Dict[str, Scalar]
Rewards = Dict[str, Scalar]
NpcId = Union[str, int]


class SpeakSink(Protocol):
    """Receives everything an NPC says. Must not raise."""

    def __call__(self, npc_id: NpcId, text: str, rewards: Rewards) -> None: ...


@dataclass
class NpcMessage:
    """
    One authored response rule.

    Attributes:
        conditions: Keys/values a query must carry for this message to match
        text: The line the NPC speaks
        rewards: Extra payload handed to the speak sink with the text
    """
    conditions: Conditions
    text: str
    rewards: Rewards = field(default_factory=dict)

    def __post_init__(self):
        if self.rewards is None:
            self.rewards = {}
        validate_message(self.conditions, self.text, self.rewards).raise_if_invalid("NpcMessage")
        self.conditions = dict(self.conditions)
        self.rewards = dict(self.rewards)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conditions": dict(self.conditions),
            "text": self.text,
            "rewards": dict(self.rewards),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NpcMessage":
        """Build from a mapping. Missing conditions/text fail validation."""
        return cls(
            conditions=data.get("conditions"),
            text=data.get("text"),
            rewards=data.get("rewards") or {},
        )


class InteractionState(str, Enum):
    """Per-NPC interaction states."""
    IDLE = "idle"
    COOLDOWN = "cooldown"


@dataclass
class NpcState:
    """
    Live, mutable state of one registered NPC.

    Attributes:
        id: Registry key
        speak: Sink invoked as speak(id, text, rewards)
        tolerance_ms: Quiet period after an answer (0 = no cooldown)
        range: Max interaction distance (0 = unlimited)
        banter_chance_percent: Chance per tick that banter fires (0..100)
        banter_interval_ms: Banter tick period (0 = no banter)
        messages: Rule set in authoring order
        interaction_state: IDLE or COOLDOWN
        banter_timer: Pending banter tick, if any
        cooldown_timer: Pending cooldown expiry, if any
    """
    id: NpcId
    speak: SpeakSink
    tolerance_ms: float = 0
    range: float = 0
    banter_chance_percent: float = 0
    banter_interval_ms: float = 0
    messages: List[NpcMessage] = field(default_factory=list)
    interaction_state: InteractionState = InteractionState.IDLE
    banter_timer: Optional[TimerHandle] = None
    cooldown_timer: Optional[TimerHandle] = None

    def __post_init__(self):
        validate_npc_options(
            self.tolerance_ms,
            self.range,
            self.banter_chance_percent,
            self.banter_interval_ms,
        ).raise_if_invalid(f"NPC {self.id!r}")

    @property
    def in_cooldown(self) -> bool:
        return self.interaction_state == InteractionState.COOLDOWN

    def cancel_timers(self) -> None:
        """Cancel and release both timers. Safe to call repeatedly."""
        if self.banter_timer is not None:
            self.banter_timer.cancel()
            self.banter_timer = None
        if self.cooldown_timer is not None:
            self.cooldown_timer.cancel()
            self.cooldown_timer = None

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view for status endpoints and logs."""
        return {
            "id": self.id,
            "tolerance_ms": self.tolerance_ms,
            "range": self.range,
            "banter_chance_percent": self.banter_chance_percent,
            "banter_interval_ms": self.banter_interval_ms,
            "interaction_state": self.interaction_state.value,
            "messages": [copy.deepcopy(m.to_dict()) for m in self.messages],
        }
