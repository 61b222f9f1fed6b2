"""
Configuration for NPC rule sets and engine settings.

NPC definitions can be written in JSON or YAML (or as rule text inside
either) and loaded without touching code. A few presets ship built in.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .codec import as_messages
from .types import NpcMessage
from .validation import NpcError, validate_npc_options

logger = logging.getLogger(__name__)


def _is_yaml(path: str) -> bool:
    return path.endswith((".yaml", ".yml"))


@dataclass
class NpcConfig:
    """
    Definition of one NPC.

    Attributes:
        tolerance_ms: Quiet period after an answer (0 = no cooldown)
        range: Max interaction distance (0 = unlimited)
        banter_chance_percent: Chance per banter tick (0..100)
        banter_interval_ms: Banter tick period (0 = no banter)
        messages: Rule set, as NpcMessage objects, dicts or rule text
    """
    tolerance_ms: float = 0
    range: float = 0
    banter_chance_percent: float = 0
    banter_interval_ms: float = 0
    messages: List[NpcMessage] = field(default_factory=list)

    def __post_init__(self):
        validate_npc_options(
            self.tolerance_ms,
            self.range,
            self.banter_chance_percent,
            self.banter_interval_ms,
        ).raise_if_invalid("NpcConfig")
        self.messages = as_messages(self.messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tolerance_ms": self.tolerance_ms,
            "range": self.range,
            "banter_chance_percent": self.banter_chance_percent,
            "banter_interval_ms": self.banter_interval_ms,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NpcConfig":
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def save(self, path: str) -> None:
        """Write as YAML for .yaml/.yml paths, JSON otherwise."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        data = self.to_dict()
        with open(path, "w", encoding="utf-8") as f:
            if _is_yaml(path):
                yaml.safe_dump(data, f, sort_keys=False)
            else:
                json.dump(data, f, indent=2)

    @classmethod
    def load(cls, path: str) -> Optional["NpcConfig"]:
        """
        Read a config written by save() or by hand.

        Returns None when the file is missing. A file that cannot be
        parsed or does not describe a valid NPC is logged and also
        yields None.
        """
        if not os.path.isfile(path):
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) if _is_yaml(path) else json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a mapping, got {type(data).__name__}")
            return cls.from_dict(data)
        except (OSError, ValueError, TypeError, yaml.YAMLError, NpcError) as e:
            logger.warning(f"Ignoring NPC config {path}: {e}")
            return None


# Shipped NPCs, also reachable by name through ConfigManager
PRESETS: Dict[str, NpcConfig] = {
    "innkeeper": NpcConfig(
        tolerance_ms=2000,
        banter_chance_percent=25,
        banter_interval_ms=15000,
        messages=[
            {"conditions": {"item": "coin"}, "text": "A room for the night? Up the stairs, second door.", "rewards": {"room": True}},
            {"conditions": {"topic": "rumors"}, "text": "They say the old mill is haunted again."},
            {"conditions": {"greeting": True}, "text": "Welcome, traveler! Warm yourself by the fire."},
            {"conditions": {"banter": True}, "text": "Another round for the table by the window!"},
            {"conditions": {"banter": True}, "text": "Mind the mud on my floors."},
        ],
    ),
    "guard": NpcConfig(
        tolerance_ms=5000,
        range=5,
        banter_chance_percent=10,
        banter_interval_ms=30000,
        messages=[
            {"conditions": {"crime": True}, "text": "Stop right there!", "rewards": {"bounty": 40}},
            {"conditions": {"topic": "gate"}, "text": "The gate closes at dusk."},
            {"conditions": {"greeting": True}, "text": "Move along."},
            {"conditions": {"banter": True}, "text": "Quiet night. Too quiet."},
        ],
    ),
    "merchant": NpcConfig(
        tolerance_ms=1000,
        messages=(
            "item=ring|You found my ring! Take this for your trouble.|gold=50<<<"
            "topic=wares|Finest goods this side of the river.|<<<"
            "greeting=true|Looking to buy? Looking to sell?|<<<"
        ),
    ),
}


def get_preset(name: str) -> Optional[NpcConfig]:
    """Built-in preset by case-insensitive name, or None."""
    return PRESETS.get(name.lower())


def list_presets() -> List[str]:
    return list(PRESETS)


class ConfigManager:
    """
    Resolves NPC names to configs.

    A file in config_dir (<name>.json, .yaml or .yml) shadows the built-in
    preset of the same name. Names are case-insensitive and results are
    cached for the life of the manager.

    Example:
        >>> manager = ConfigManager("./npc_configs")
        >>> manager.get("guard")       # built-in preset
        >>> manager.get("blacksmith")  # ./npc_configs/blacksmith.yaml
    """

    EXTENSIONS = (".json", ".yaml", ".yml")

    def __init__(self, config_dir: str = "./npc_configs"):
        self.config_dir = config_dir
        self._cache: Dict[str, NpcConfig] = {}

    def _candidates(self, key: str) -> List[str]:
        return [os.path.join(self.config_dir, key + ext) for ext in self.EXTENSIONS]

    def get(self, name: str) -> Optional[NpcConfig]:
        """Cached config, else the first loadable file, else a preset."""
        key = name.lower()
        config = self._cache.get(key)
        if config is not None:
            return config

        for path in self._candidates(key):
            config = NpcConfig.load(path)
            if config is not None:
                logger.debug(f"Loaded NPC config {key!r} from {path}")
                break
        else:
            config = get_preset(key)

        if config is not None:
            self._cache[key] = config
        return config

    def save(self, config: NpcConfig, name: str, fmt: str = "json") -> str:
        """Write config_dir/<name>.<fmt> and return its path."""
        key = name.lower()
        path = os.path.join(self.config_dir, f"{key}.{fmt}")
        config.save(path)
        self._cache[key] = config
        return path

    def list_available(self) -> List[str]:
        """Preset names plus every config file stem, sorted."""
        names = set(PRESETS)
        if os.path.isdir(self.config_dir):
            names.update(
                os.path.splitext(entry)[0]
                for entry in os.listdir(self.config_dir)
                if entry.endswith(self.EXTENSIONS)
            )
        return sorted(names)


@dataclass
class EngineSettings:
    """Process-level settings, read from the environment."""
    log_level: str = "INFO"
    config_dir: str = "./npc_configs"

    ENV_PREFIX = "THUS_SPOKE_NPC_"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "EngineSettings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            log_level=env.get(f"{cls.ENV_PREFIX}LOG_LEVEL", defaults.log_level),
            config_dir=env.get(f"{cls.ENV_PREFIX}CONFIG_DIR", defaults.config_dir),
        )
