"""
Banter scheduler: unscripted lines an idle NPC says on its own.

Every banter_interval_ms the scheduler draws randint(0, 100). If the draw
is below banter_chance_percent, or the chance is 100, it picks one
banter-flagged message uniformly at random and speaks it. The tick is
re-armed as long as the NPC stays idle; the interaction state machine
stops it during cooldown.
"""
from __future__ import annotations

import logging
import random
from typing import Callable, Optional

from .matcher import find_banter_candidates
from .metrics import EngineMetrics
from .scheduler import Scheduler
from .types import NpcMessage, NpcState

logger = logging.getLogger(__name__)

RandInt = Callable[[int, int], int]


class BanterScheduler:
    """
    Periodic banter for one NPC.

    Args:
        npc: The NPC that speaks
        scheduler: Timer service
        randint: Uniform integer in [a, b] inclusive
        metrics: Optional counters
    """

    def __init__(
        self,
        npc: NpcState,
        scheduler: Scheduler,
        randint: Optional[RandInt] = None,
        metrics: Optional[EngineMetrics] = None,
    ):
        self.npc = npc
        self.scheduler = scheduler
        self.randint = randint or random.Random().randint
        self.metrics = metrics
        self.closed = False

    @property
    def enabled(self) -> bool:
        return self.npc.banter_interval_ms > 0

    @property
    def running(self) -> bool:
        timer = self.npc.banter_timer
        return timer is not None and timer.active

    def start(self) -> None:
        """Arm the next tick, replacing any pending one."""
        self.stop()
        if self.closed or not self.enabled or self.npc.in_cooldown:
            return
        self.npc.banter_timer = self.scheduler.call_later(
            self.npc.banter_interval_ms, self._on_tick
        )

    def stop(self) -> None:
        if self.npc.banter_timer is not None:
            self.npc.banter_timer.cancel()
            self.npc.banter_timer = None

    def close(self) -> None:
        """Stop for good; later start() calls do nothing."""
        self.closed = True
        self.stop()

    def _on_tick(self) -> None:
        self.npc.banter_timer = None
        self.tick()
        self.start()

    def tick(self) -> Optional[NpcMessage]:
        """
        Run one probability draw.

        Returns:
            The message spoken, or None if nothing was said
        """
        if self.metrics:
            self.metrics.banter_ticks.inc()

        chance = self.npc.banter_chance_percent
        draw = self.randint(0, 100)
        # full chance fires even on a draw of 100
        if draw >= chance and chance < 100:
            return None

        candidates = find_banter_candidates(self.npc)
        if not candidates:
            return None

        message = candidates[self.randint(0, len(candidates) - 1)]
        logger.debug(
            f"Banter: {message.text!r}",
            extra={"npc_id": self.npc.id, "subsystem": "banter", "event_type": "banter"},
        )
        self.npc.speak(self.npc.id, message.text, dict(message.rewards))
        if self.metrics:
            self.metrics.banter_emitted.inc()
        return message
