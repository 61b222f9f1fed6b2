"""
REST API server for the NPC engine.

Lets a game or tool that is not written in Python register NPCs, ask
them questions and read back what they said.

Run with:
    python -m thus_spoke_npc.api --port 8000
"""
from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import codec
from .config import get_preset, list_presets
from .engine import NpcEngine
from .scheduler import ThreadingScheduler
from .sinks import FanoutSink, LoggingSink, TranscriptSink
from .validation import NpcError

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


# ============================================================================
# Pydantic Models for API
# ============================================================================

class MessageModel(BaseModel):
    conditions: Dict[str, Any]
    text: str
    rewards: Dict[str, Any] = Field(default_factory=dict)


class NpcCreateRequest(BaseModel):
    """Request to create or replace an NPC."""
    preset: Optional[str] = Field(None, description="Built-in preset name")
    tolerance_ms: float = Field(0, ge=0)
    range: float = Field(0, ge=0)
    banter_chance_percent: float = Field(0, ge=0, le=100)
    banter_interval_ms: float = Field(0, ge=0)
    messages: Union[str, List[MessageModel], None] = Field(
        None, description="Rule list or rule text"
    )


class AskRequest(BaseModel):
    conditions: Union[str, Dict[str, Any]] = Field(default_factory=dict)


class SayRequest(BaseModel):
    text: str
    rewards: Union[str, Dict[str, Any]] = Field(default_factory=dict)


class RuleRequest(BaseModel):
    conditions: Union[str, Dict[str, Any]]
    text: str
    rewards: Union[str, Dict[str, Any]] = Field(default_factory=dict)


class SpokenResponse(BaseModel):
    spoken: Optional[str] = None
    rewards: Dict[str, Any] = Field(default_factory=dict)


class EncodeRequest(BaseModel):
    messages: List[MessageModel]


class DecodeRequest(BaseModel):
    text: str


def _raw(value: Any) -> Any:
    """Unwrap pydantic message models into plain dicts."""
    if isinstance(value, list):
        return [m.model_dump() if isinstance(m, BaseModel) else m for m in value]
    return value


# ============================================================================
# API Server
# ============================================================================

def create_app(
    engine: Optional[NpcEngine] = None,
    transcript: Optional[TranscriptSink] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        engine: Engine to serve (a wall-clock engine by default)
        transcript: Where NPC speech is recorded for the transcript endpoint
    """
    engine = engine or NpcEngine(scheduler=ThreadingScheduler())
    transcript = transcript or TranscriptSink()
    sink = FanoutSink(transcript, LoggingSink(level=logging.DEBUG))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        engine.shutdown()
        engine.scheduler.shutdown()

    app = FastAPI(
        lifespan=lifespan,
        title="Thus Spoke NPC",
        description="Rule-based NPC dialog with cooldowns and banter",
        version=API_VERSION,
    )
    app.state.engine = engine
    app.state.transcript = transcript

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NpcError)
    async def npc_error_handler(request: Request, exc: NpcError):
        return JSONResponse(
            status_code=422,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.get("/")
    def root():
        """API health check."""
        return {
            "status": "ok",
            "engine": "thus-spoke-npc",
            "version": API_VERSION,
            **engine.stats(),
        }

    @app.get("/presets", response_model=List[str])
    async def get_presets():
        return list_presets()

    @app.get("/npcs")
    def list_npcs():
        states = (engine.get(npc_id) for npc_id in engine.ids())
        return {str(s.id): s.interaction_state.value for s in states if s is not None}

    @app.get("/npc/{npc_id}")
    def get_npc(npc_id: str):
        state = engine.get(npc_id)
        if state is None:
            raise HTTPException(status_code=404, detail=f"Unknown NPC: {npc_id}")
        return state.snapshot()

    @app.put("/npc/{npc_id}")
    def create_npc(npc_id: str, request: NpcCreateRequest):
        """Create or replace an NPC."""
        if request.preset:
            config = get_preset(request.preset)
            if config is None:
                raise HTTPException(status_code=404, detail=f"Unknown preset: {request.preset}")
            state = engine.create_from_config(npc_id, sink, config)
        else:
            state = engine.create(
                npc_id,
                sink,
                tolerance_ms=request.tolerance_ms,
                range=request.range,
                banter_chance_percent=request.banter_chance_percent,
                banter_interval_ms=request.banter_interval_ms,
                messages=_raw(request.messages),
            )
        transcript.clear(npc_id)
        return {"status": "created", "npc_id": npc_id, "messages": len(state.messages)}

    @app.delete("/npc/{npc_id}")
    def destroy_npc(npc_id: str):
        engine.destroy(npc_id)
        transcript.clear(npc_id)
        return {"status": "destroyed", "npc_id": npc_id}

    @app.post("/npc/{npc_id}/rules")
    def add_rule(npc_id: str, request: RuleRequest):
        message = engine.add(npc_id, request.conditions, request.text, request.rewards)
        return {"added": message is not None}

    @app.post("/npc/{npc_id}/ask", response_model=SpokenResponse)
    def ask_npc(npc_id: str, request: AskRequest):
        message = engine.ask(npc_id, request.conditions)
        if message is None:
            return SpokenResponse()
        return SpokenResponse(spoken=message.text, rewards=message.rewards)

    @app.post("/npc/{npc_id}/say", response_model=SpokenResponse)
    def say(npc_id: str, request: SayRequest):
        if npc_id not in engine:
            return SpokenResponse()
        rewards = codec.as_mapping(request.rewards)
        engine.say(npc_id, request.text, rewards)
        return SpokenResponse(spoken=request.text, rewards=rewards)

    @app.get("/npc/{npc_id}/transcript")
    def get_transcript(npc_id: str, limit: int = Query(20, ge=1, le=100)):
        if npc_id not in engine:
            raise HTTPException(status_code=404, detail=f"Unknown NPC: {npc_id}")
        lines = transcript.lines(npc_id, limit)
        return {"npc_id": npc_id, "lines": [u.to_dict() for u in lines]}

    @app.post("/codec/encode")
    async def encode_rules(request: EncodeRequest):
        return {"text": codec.encode(_raw(request.messages))}

    @app.post("/codec/decode")
    async def decode_rules(request: DecodeRequest):
        return {"messages": [m.to_dict() for m in codec.decode(request.text)]}

    return app


def main():
    """Run the API server from command line."""
    import uvicorn

    from .config import EngineSettings
    from .logging_config import configure_logging

    parser = argparse.ArgumentParser(description="Thus Spoke NPC API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    args = parser.parse_args()

    settings = EngineSettings.from_env()
    configure_logging(settings.log_level)

    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
