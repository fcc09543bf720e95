"""
Local command API.

Stands in for the hotkey + speech front end: a transcript posted here runs
one pass of the intent pipeline. Also exposes read endpoints for events,
the loaded capability table and endpoint health.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from intent_pipeline.capabilities import load_capabilities
from intent_pipeline.config import get_config
from intent_pipeline.intent_client import EndpointState, IntentClient
from intent_pipeline.pipeline import CommandPipeline, PipelineBusy
from intent_pipeline.prompt import build_transcription_hint
from logging_setup import get_logger, Component
from observability.event_store import event_store
from observability.events import Component as ObsComponent, EventEmitter, Severity


logger = get_logger(Component.COMMAND_API)
emitter = EventEmitter(ObsComponent.COMMAND_API)

_pipeline: Optional[CommandPipeline] = None
_endpoint_state = EndpointState()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Load the capability table and warm up the chat endpoint before serving."""
    pipeline = get_pipeline()
    if isinstance(pipeline.client, IntentClient) and not await pipeline.client.check_ready():
        logger.warning(
            "Chat endpoint not ready; commands will be rejected until it starts",
            endpoint=pipeline.client.endpoint,
        )
    yield


app = FastAPI(title="Voice Buddy Command API", lifespan=lifespan)


def get_pipeline() -> CommandPipeline:
    """Build the pipeline on first use from environment + capability file."""
    global _pipeline
    if _pipeline is None:
        config = get_config()
        table = load_capabilities(config.capabilities_file)
        _pipeline = CommandPipeline.from_config(config, table, endpoint_state=_endpoint_state)
        logger.info(
            "Pipeline ready",
            files=len(table.files),
            applications=len(table.applications),
            system_actions=len(table.system),
            endpoint=config.chat_endpoint,
            model=config.model,
        )
    return _pipeline


def set_pipeline(pipeline: Optional[CommandPipeline]) -> None:
    global _pipeline
    _pipeline = pipeline


class CommandRequest(BaseModel):
    transcript: str = Field(..., max_length=2000, description="Transcribed utterance")


class CommandResponse(BaseModel):
    command_id: str
    state: str
    status: Optional[str] = None
    action: Optional[dict] = None
    rejection: Optional[dict] = None
    error: Optional[str] = None
    message: Optional[str] = None


def _parse_ts(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        # "+" in a query string may arrive as a space
        clean = value.replace(" ", "+").replace("Z", "+00:00")
        if "+" not in clean and "-" not in clean[-6:]:
            clean += "+00:00"
        return datetime.fromisoformat(clean)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} timestamp: {value}")


@app.post("/command", response_model=CommandResponse)
async def post_command(req: CommandRequest) -> CommandResponse:
    """Run one voice command. 409 while another command is in flight."""
    pipeline = get_pipeline()
    try:
        run = await pipeline.submit(req.transcript)
    except PipelineBusy:
        raise HTTPException(status_code=409, detail="busy")
    return CommandResponse(**run.to_dict())


@app.get("/commands/{command_id}/events")
async def get_command_events(
    command_id: str,
    event_type: Optional[str] = Query(None, description="Filter by event_type"),
    component: Optional[str] = Query(None, description="Filter by component"),
    since: Optional[str] = Query(None, description="ISO timestamp (inclusive)"),
    until: Optional[str] = Query(None, description="ISO timestamp (inclusive)"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max events to return"),
) -> dict:
    events = event_store.by_command(
        command_id,
        event_type=event_type,
        component=component,
        since=_parse_ts(since, "since"),
        until=_parse_ts(until, "until"),
        limit=limit,
    )
    if not events:
        raise HTTPException(status_code=404, detail="Command not found")
    return {"command_id": command_id, "events": events, "count": len(events)}


@app.get("/commands/{command_id}")
async def get_command(command_id: str) -> dict:
    """How a command ended, condensed from its events."""
    summary = event_store.command_summary(command_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Command not found")
    return summary


@app.get("/capabilities")
async def get_capabilities() -> dict:
    table = get_pipeline().table
    return {**table.to_dict(), "transcription_hint": build_transcription_hint(table)}


@app.get("/health")
async def health() -> dict:
    """Liveness of this process plus a readiness probe of the chat endpoint."""
    pipeline = get_pipeline()
    client = pipeline.client
    if isinstance(client, IntentClient):
        await client.check_ready()
        state = client.state
    else:
        state = _endpoint_state
    if not state.ready:
        emitter.emit(
            "endpoint.unavailable",
            command_id="health",
            severity=Severity.WARN,
            last_error=state.last_error,
        )
    return {
        "status": "ok",
        "component": "command_api",
        "busy": pipeline.busy,
        "llm_ready": state.ready,
        "llm_last_error": state.last_error,
        "llm_last_latency_ms": state.last_latency_ms,
    }
