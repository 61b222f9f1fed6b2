from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

import yaml

from . import codec
from .config import ConfigManager, EngineSettings, NpcConfig
from .engine import NpcEngine
from .logging_config import configure_logging
from .scheduler import ThreadingScheduler
from .sinks import PrintSink
from .validation import NpcError

logger = logging.getLogger(__name__)


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def cmd_encode(args) -> int:
    """Structured rules (JSON/YAML list, or a config with "messages") -> rule text."""
    raw = _read(args.path)
    data = yaml.safe_load(raw) if args.path.endswith((".yaml", ".yml")) else json.loads(raw)
    if isinstance(data, dict):
        data = data.get("messages", [])
    print(codec.encode(data))
    return 0


def cmd_decode(args) -> int:
    """Rule text -> JSON list."""
    messages = codec.decode(_read(args.path))
    print(json.dumps([m.to_dict() for m in messages], indent=2))
    return 0


def _load_config(args) -> Optional[NpcConfig]:
    if args.config:
        return NpcConfig.load(args.config)
    return ConfigManager(args.config_dir).get(args.preset)


def cmd_chat(args) -> int:
    """Interactive session: each input line is a query in k=v,k=v form."""
    config = _load_config(args)
    if config is None:
        print(f"NPC config not found: {args.config or args.preset}", file=sys.stderr)
        return 1

    scheduler = ThreadingScheduler()
    engine = NpcEngine(scheduler=scheduler)
    npc_id = args.name
    engine.create_from_config(npc_id, PrintSink(), config)

    print(f"[Talking to {npc_id}. Queries look like item=ring,range=2. Ctrl-D to quit.]")
    print("[Commands: /say <text>, /add <conditions>|<text>|<rewards>, /stats]")
    try:
        for line in sys.stdin:
            line = line.strip()
            if not line:
                engine.ask(npc_id, {})
                continue
            try:
                if line.startswith("/say "):
                    engine.say(npc_id, line[5:], {})
                elif line.startswith("/add "):
                    for m in codec.decode(line[5:] + codec.RECORD_TERMINATOR):
                        engine.add(npc_id, m.conditions, m.text, m.rewards)
                elif line == "/stats":
                    print(json.dumps(engine.stats(), indent=2))
                elif engine.ask(npc_id, line) is None:
                    print("...")
            except NpcError as e:
                print(f"[error] {e}", file=sys.stderr)
    except KeyboardInterrupt:
        pass
    finally:
        engine.shutdown()
        scheduler.shutdown()
    return 0


def cmd_serve(args) -> int:
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="thus-spoke-npc",
        description="Rule-based NPC dialog engine",
    )
    ap.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("encode", help="Convert a JSON/YAML rule list to rule text")
    p.add_argument("path", help="Input file ('-' for stdin, read as JSON)")
    p.set_defaults(func=cmd_encode)

    p = sub.add_parser("decode", help="Convert rule text to a JSON rule list")
    p.add_argument("path", help="Input file ('-' for stdin)")
    p.set_defaults(func=cmd_decode)

    p = sub.add_parser("chat", help="Talk to an NPC interactively")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--preset", default="innkeeper", help="Preset or config name")
    group.add_argument("--config", help="Path to a JSON/YAML NPC config")
    p.add_argument("--config-dir", default=None, help="Directory of NPC configs")
    p.add_argument("--name", default="npc", help="NPC id used in output")
    p.set_defaults(func=cmd_chat)

    p = sub.add_parser("serve", help="Run the REST API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.set_defaults(func=cmd_serve)

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = EngineSettings.from_env()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    if getattr(args, "config_dir", "unset") is None:
        args.config_dir = settings.config_dir

    try:
        return args.func(args)
    except (NpcError, OSError, ValueError, yaml.YAMLError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
