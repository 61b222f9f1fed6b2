from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .banter import BanterScheduler, RandInt
from .codec import as_mapping, as_messages
from .interaction import InteractionStateMachine
from .metrics import EngineMetrics
from .scheduler import ManualScheduler, Scheduler
from .types import NpcId, NpcMessage, NpcState, Scalar, SpeakSink

logger = logging.getLogger(__name__)

ConditionsInput = Union[str, Mapping[str, Scalar], None]
MessagesInput = Union[str, Iterable[Union[NpcMessage, Mapping[str, Any]]], None]


@dataclass
class _Entry:
    """An NPC's state plus the machinery that drives it."""
    state: NpcState
    interaction: InteractionStateMachine
    banter: BanterScheduler


class NpcEngine:
    """
    Registry of NPCs and entry point for every interaction.

    Each engine owns its NPC table, so several engines can live in one
    process. All public methods run under the scheduler lock, which is
    also held while timer callbacks run, so questions, banter ticks and
    cooldown expiries never interleave.

    Unknown ids are silently ignored by add/ask/say/destroy.

    Example:
        >>> engine = NpcEngine()
        >>> engine.create(1, print, tolerance_ms=1000, messages=[
        ...     {"conditions": {"greeting": True}, "text": "Hello!"},
        ...     {"conditions": {"item": "ring"}, "text": "You found my ring!"},
        ... ])
        >>> spoken = engine.ask(1, {"item": "ring"})
        1 You found my ring! {}
        >>> engine.scheduler.advance(1000)  # cooldown over
    """

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        randint: Optional[RandInt] = None,
        metrics: Optional[EngineMetrics] = None,
    ):
        """
        Args:
            scheduler: Timer service (defaults to a ManualScheduler the
                host advances itself)
            randint: Uniform integer in [a, b] inclusive, for banter
            metrics: Counters (a fresh set by default)
        """
        self.scheduler = scheduler or ManualScheduler()
        self.randint = randint or random.Random().randint
        self.metrics = metrics or EngineMetrics()
        self._npcs: Dict[NpcId, _Entry] = {}

    def __contains__(self, npc_id: NpcId) -> bool:
        return npc_id in self._npcs

    def __len__(self) -> int:
        return len(self._npcs)

    def ids(self) -> List[NpcId]:
        with self.scheduler.lock:
            return list(self._npcs.keys())

    def get(self, npc_id: NpcId) -> Optional[NpcState]:
        """The live state of an NPC, or None."""
        entry = self._npcs.get(npc_id)
        return entry.state if entry else None

    def interaction(self, npc_id: NpcId) -> Optional[InteractionStateMachine]:
        entry = self._npcs.get(npc_id)
        return entry.interaction if entry else None

    def create(
        self,
        npc_id: NpcId,
        speak: SpeakSink,
        tolerance_ms: float = 0,
        range: float = 0,
        banter_chance_percent: float = 0,
        banter_interval_ms: float = 0,
        messages: MessagesInput = None,
    ) -> NpcState:
        """
        Register an NPC, replacing any NPC already using this id.

        The previous NPC's timers are cancelled before the new one is
        installed. Banter starts right away when banter_interval_ms > 0.

        Raises:
            ValidationError: a message or option is invalid
            FormatError: messages were given as malformed rule text
        """
        state = NpcState(
            id=npc_id,
            speak=speak,
            tolerance_ms=tolerance_ms,
            range=range,
            banter_chance_percent=banter_chance_percent,
            banter_interval_ms=banter_interval_ms,
            messages=as_messages(messages),
        )

        with self.scheduler.lock:
            if npc_id in self._npcs:
                logger.info(
                    f"Replacing NPC {npc_id!r}",
                    extra={"npc_id": npc_id, "subsystem": "registry", "event_type": "replace"},
                )
                self._teardown(npc_id)

            banter = BanterScheduler(state, self.scheduler, self.randint, self.metrics)
            interaction = InteractionStateMachine(state, self.scheduler, banter, self.metrics)
            self._npcs[npc_id] = _Entry(state=state, interaction=interaction, banter=banter)
            banter.start()

        logger.info(
            f"Created NPC {npc_id!r} with {len(state.messages)} messages",
            extra={"npc_id": npc_id, "subsystem": "registry", "event_type": "create"},
        )
        return state

    def create_from_config(self, npc_id: NpcId, speak: SpeakSink, config: Any) -> NpcState:
        """Register an NPC from an NpcConfig (see config.py)."""
        return self.create(
            npc_id,
            speak,
            tolerance_ms=config.tolerance_ms,
            range=config.range,
            banter_chance_percent=config.banter_chance_percent,
            banter_interval_ms=config.banter_interval_ms,
            messages=config.messages,
        )

    def _teardown(self, npc_id: NpcId) -> Optional[_Entry]:
        entry = self._npcs.pop(npc_id, None)
        if entry is not None:
            entry.interaction.shutdown()
        return entry

    def destroy(self, npc_id: NpcId) -> None:
        """Cancel an NPC's timers and remove it. No-op for unknown ids."""
        with self.scheduler.lock:
            entry = self._teardown(npc_id)
        if entry is None:
            logger.debug(f"destroy: unknown NPC {npc_id!r}")
            return
        logger.info(
            f"Destroyed NPC {npc_id!r}",
            extra={"npc_id": npc_id, "subsystem": "registry", "event_type": "destroy"},
        )

    def add(
        self,
        npc_id: NpcId,
        conditions: ConditionsInput,
        text: str,
        rewards: ConditionsInput = None,
    ) -> Optional[NpcMessage]:
        """
        Append a message to an NPC's rule set.

        Returns:
            The new message, or None for an unknown id

        Raises:
            ValidationError: conditions or text missing
        """
        with self.scheduler.lock:
            entry = self._npcs.get(npc_id)
            if entry is None:
                logger.debug(f"add: unknown NPC {npc_id!r}")
                return None
            message = NpcMessage(
                conditions=as_mapping(conditions),
                text=text,
                rewards=as_mapping(rewards),
            )
            entry.state.messages.append(message)
            return message

    def ask(self, npc_id: NpcId, conditions: ConditionsInput = None) -> Optional[NpcMessage]:
        """
        Put a question to an NPC.

        Speaks at most once through the NPC's sink.

        Returns:
            The message spoken, or None if the NPC stayed silent
        """
        with self.scheduler.lock:
            entry = self._npcs.get(npc_id)
            if entry is None:
                logger.debug(f"ask: unknown NPC {npc_id!r}")
                return None
            return entry.interaction.ask(as_mapping(conditions))

    def say(self, npc_id: NpcId, text: str, rewards: ConditionsInput = None) -> None:
        """Speak a scripted line directly, bypassing matching and cooldown."""
        with self.scheduler.lock:
            entry = self._npcs.get(npc_id)
            if entry is None:
                logger.debug(f"say: unknown NPC {npc_id!r}")
                return
            entry.state.speak(npc_id, text, as_mapping(rewards))
            self.metrics.said.inc()

    def shutdown(self) -> None:
        """Destroy every NPC."""
        with self.scheduler.lock:
            npc_ids = list(self._npcs.keys())
            for npc_id in npc_ids:
                self._teardown(npc_id)
        logger.info(f"Engine shut down ({len(npc_ids)} NPCs released)")

    def stats(self) -> Dict[str, Any]:
        with self.scheduler.lock:
            return {
                "npcs": len(self._npcs),
                "cooldown": sum(1 for e in self._npcs.values() if e.state.in_cooldown),
                "metrics": self.metrics.snapshot(),
            }
