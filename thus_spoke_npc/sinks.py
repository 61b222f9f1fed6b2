"""
Ready-made speak sinks.

A sink is any callable speak(npc_id, text, rewards). These cover the
common host needs: keep a transcript, print to a terminal, or log.
"""
from __future__ import annotations

import logging
import sys
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, List, Optional, TextIO

from .types import NpcId, Rewards

logger = logging.getLogger(__name__)


@dataclass
class Utterance:
    npc_id: NpcId
    text: str
    rewards: Rewards = field(default_factory=dict)
    time: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict:
        return {
            "npc_id": self.npc_id,
            "text": self.text,
            "rewards": dict(self.rewards),
            "time": self.time,
        }


class TranscriptSink:
    """
    Keeps the most recent lines of every NPC.

    Example:
        >>> transcript = TranscriptSink(max_lines=50)
        >>> engine.create("guard", transcript, messages=...)
        >>> transcript.last("guard").text
    """

    def __init__(self, max_lines: int = 100):
        self.max_lines = max_lines
        self._lines: Dict[NpcId, Deque[Utterance]] = {}
        self._lock = threading.Lock()

    def __call__(self, npc_id: NpcId, text: str, rewards: Rewards) -> None:
        with self._lock:
            lines = self._lines.setdefault(npc_id, deque(maxlen=self.max_lines))
            lines.append(Utterance(npc_id, text, dict(rewards or {})))

    def lines(self, npc_id: NpcId, limit: Optional[int] = None) -> List[Utterance]:
        with self._lock:
            lines = list(self._lines.get(npc_id, ()))
        if limit is not None:
            return lines[-limit:] if limit > 0 else []
        return lines

    def last(self, npc_id: NpcId) -> Optional[Utterance]:
        lines = self.lines(npc_id)
        return lines[-1] if lines else None

    def texts(self, npc_id: NpcId) -> List[str]:
        return [u.text for u in self.lines(npc_id)]

    def clear(self, npc_id: Optional[NpcId] = None) -> None:
        with self._lock:
            if npc_id is None:
                self._lines.clear()
            else:
                self._lines.pop(npc_id, None)


class PrintSink:
    """Writes "<npc>: <text>" lines to a stream."""

    def __init__(self, stream: Optional[TextIO] = None, show_rewards: bool = True):
        self.stream = stream
        self.show_rewards = show_rewards

    def __call__(self, npc_id: NpcId, text: str, rewards: Rewards) -> None:
        line = f"{npc_id}: {text}"
        if self.show_rewards and rewards:
            extras = ", ".join(f"{k}={v}" for k, v in rewards.items())
            line = f"{line}  [{extras}]"
        print(line, file=self.stream or sys.stdout, flush=True)


class LoggingSink:
    """Logs every line at the given level."""

    def __init__(self, level: int = logging.INFO, name: str = "thus_spoke_npc.speech"):
        self.level = level
        self.logger = logging.getLogger(name)

    def __call__(self, npc_id: NpcId, text: str, rewards: Rewards) -> None:
        self.logger.log(
            self.level,
            text,
            extra={"npc_id": npc_id, "subsystem": "speech", "rewards": dict(rewards or {})},
        )


class FanoutSink:
    """Forwards every line to several sinks in order."""

    def __init__(self, *sinks):
        self.sinks = list(sinks)

    def __call__(self, npc_id: NpcId, text: str, rewards: Rewards) -> None:
        for sink in self.sinks:
            sink(npc_id, text, rewards)
