"""
Interaction state machine for one NPC.

States:
    IDLE      questions are matched and answered; banter runs
    COOLDOWN  questions are rejected unheard; banter is stopped

Transitions:
    IDLE --ask matched, tolerance_ms > 0--> COOLDOWN
    COOLDOWN --tolerance_ms elapsed--> IDLE (banter restarted)

The state machine owns both timers of its NPC: entering cooldown cancels
the banter timer and arms the cooldown timer; leaving it does the
reverse. shutdown() cancels both.
"""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from .banter import BanterScheduler
from .matcher import match, out_of_range
from .metrics import EngineMetrics
from .scheduler import Scheduler
from .types import InteractionState, NpcMessage, NpcState, Scalar

logger = logging.getLogger(__name__)


class InteractionStateMachine:
    """Gates questions to one NPC and drives its cooldown."""

    def __init__(
        self,
        npc: NpcState,
        scheduler: Scheduler,
        banter: BanterScheduler,
        metrics: Optional[EngineMetrics] = None,
    ):
        self.npc = npc
        self.scheduler = scheduler
        self.banter = banter
        self.metrics = metrics
        self.closed = False

    @property
    def state(self) -> InteractionState:
        return self.npc.interaction_state

    def _log(self, msg: str, event_type: str) -> None:
        logger.debug(
            msg,
            extra={"npc_id": self.npc.id, "subsystem": "interaction", "event_type": event_type},
        )

    def ask(self, conditions: Mapping[str, Scalar]) -> Optional[NpcMessage]:
        """
        Put a question to the NPC.

        Returns:
            The message spoken, or None if the NPC stayed silent
            (cooldown, out of range, or no match)
        """
        if self.metrics:
            self.metrics.asks.inc()

        if self.npc.in_cooldown:
            self._log("Question rejected during cooldown", "rejected_cooldown")
            if self.metrics:
                self.metrics.rejected_cooldown.inc()
            return None

        message = match(conditions, self.npc)
        if message is None:
            if out_of_range(conditions, self.npc):
                self._log("Question rejected: out of range", "rejected_range")
                if self.metrics:
                    self.metrics.rejected_range.inc()
            else:
                self._log("No message matched", "no_match")
                if self.metrics:
                    self.metrics.no_match.inc()
            return None

        self._log(f"Answering: {message.text!r}", "answer")
        self.npc.speak(self.npc.id, message.text, dict(message.rewards))
        if self.metrics:
            self.metrics.answered.inc()

        # the sink may have destroyed the NPC
        if self.npc.tolerance_ms > 0 and not self.closed:
            self.enter_cooldown()
        return message

    def enter_cooldown(self) -> None:
        """Stop banter and arm the cooldown timer."""
        self.banter.stop()
        if self.npc.cooldown_timer is not None:
            self.npc.cooldown_timer.cancel()
        self.npc.interaction_state = InteractionState.COOLDOWN
        self.npc.cooldown_timer = self.scheduler.call_later(
            self.npc.tolerance_ms, self._on_cooldown_expired
        )
        self._log(f"Cooldown for {self.npc.tolerance_ms}ms", "cooldown_start")

    def _on_cooldown_expired(self) -> None:
        self.npc.cooldown_timer = None
        self.npc.interaction_state = InteractionState.IDLE
        self._log("Cooldown over", "cooldown_end")
        self.banter.start()

    def shutdown(self) -> None:
        """Cancel both timers. Idempotent."""
        self.closed = True
        self.banter.close()
        self.npc.cancel_timers()
