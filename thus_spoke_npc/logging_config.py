"""
Logging setup for hosts, the API server and the CLI.

Library modules only call logging.getLogger(__name__) and pass structured
fields through extra=:
- npc_id
- subsystem (registry, interaction, banter, speech)
- event_type (create, answer, cooldown_start, banter, ...)
- rewards (speech only)

configure_logging() decides where those records go: a console stream and,
optionally, rotating plain and JSON-lines files.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional, Union

STRUCTURED_FIELDS = ("subsystem", "npc_id", "event_type", "rewards")

# JSON key for each structured field
_JSON_KEYS = {"event_type": "event"}

LOG_FILE = "npc.log"
JSON_LOG_FILE = "npc.json.log"


def _structured(record: logging.LogRecord) -> Dict[str, Any]:
    fields = {}
    for name in STRUCTURED_FIELDS:
        value = getattr(record, name, None)
        if value is None or value == {}:
            continue
        fields[_JSON_KEYS.get(name, name)] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_structured(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """
    Terminal-friendly lines:

        12:03:44.120 INFO [banter] npc=guard: Banter: 'Quiet night.'
    """

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        head = [clock, record.levelname[:4]]

        subsystem = getattr(record, "subsystem", None)
        if subsystem:
            head.append(f"[{subsystem}]")
        npc_id = getattr(record, "npc_id", None)
        if npc_id is not None:
            head.append(f"npc={npc_id}")

        line = f"{' '.join(head)}: {record.getMessage()}"
        if self.use_colors and sys.stderr.isatty():
            line = self.COLORS.get(record.levelno, "") + line + self.RESET
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _file_handler(
    path: str,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: Union[str, int] = "INFO",
    log_dir: Optional[str] = None,
    json_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        level: Level name ("debug", "INFO", ...) or number
        log_dir: If set, also write npc.log and npc.json.log here
        json_file: Alternative JSON log path (relative to log_dir)
        max_bytes: Rotation size for each file
        backup_count: Rotated files kept per log
    """
    if isinstance(level, str):
        number = logging.getLevelName(level.upper())
        if not isinstance(number, int):
            raise ValueError(f"Unknown log level: {level}")
        level = number

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(HumanFormatter())
    root.addHandler(console)

    if not log_dir:
        return

    os.makedirs(log_dir, exist_ok=True)
    json_path = os.path.join(log_dir, json_file or JSON_LOG_FILE)

    root.addHandler(_file_handler(
        os.path.join(log_dir, LOG_FILE), HumanFormatter(use_colors=False), max_bytes, backup_count,
    ))
    root.addHandler(_file_handler(json_path, JSONFormatter(), max_bytes, backup_count))
