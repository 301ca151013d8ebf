"""Debate management and event streaming endpoints."""

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Header, HTTPException, Query
from fastapi.responses import StreamingResponse

from faultline.engine.debate_engine.engine import DebateEngine
from faultline.engine.debate_engine.events import replay_events
from faultline.engine.debate_engine.models import to_jsonable
from faultline.engine.web.debate_manager import DebateManager
from faultline.engine.web.debate_response import DebateResponse, DebateStateResponse
from faultline.engine.web.debate_setup_request import DebateSetupRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def setup_debate_manager() -> DebateManager:
    """Get the global debate manager."""
    # Import here to avoid circular imports
    from faultline.engine.web import api

    return api.debate_manager


def _debate_response(debate_info: dict) -> DebateResponse:
    engine: DebateEngine = debate_info["engine"]
    config = debate_info["config"]
    return DebateResponse(
        id=debate_info["id"],
        topic=config.debate.topic,
        status=debate_info["status"],
        phase=int(engine.state.phase),
        turn_count=engine.state.turn_count,
        max_turns=engine.max_turns,
        event_count=len(debate_info["events"]),
        participants=config.participants,
        regime=engine.output.regime.value if engine.output else None,
        error=debate_info["error"],
    )


@router.post("/debates", response_model=DebateResponse)
async def create_debate(setup: DebateSetupRequest):
    """Create a new debate."""
    try:
        debate_manager = setup_debate_manager()
        debate_id = await debate_manager.create_debate(setup)
        return _debate_response(debate_manager.active_debates[debate_id])
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to create debate: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/debates/{debate_id}/start")
async def start_debate(debate_id: str):
    """Start a debate."""
    debate_manager = setup_debate_manager()
    await debate_manager.start_debate(debate_id)
    return {"status": "started", "debate_id": debate_id}


@router.post("/debates/{debate_id}/cancel")
async def cancel_debate(debate_id: str):
    """Cancel a debate."""
    debate_manager = setup_debate_manager()
    await debate_manager.cancel_debate(debate_id)
    return {"status": "cancelling", "debate_id": debate_id}


@router.get("/debates/{debate_id}", response_model=DebateResponse)
async def get_debate(debate_id: str):
    """Get debate status and info."""
    debate_manager = setup_debate_manager()
    if debate_id not in debate_manager.active_debates:
        raise HTTPException(status_code=404, detail="Debate not found")
    return _debate_response(debate_manager.active_debates[debate_id])


@router.get("/debates/{debate_id}/events")
async def stream_debate_events(
    debate_id: str,
    after: int = Query(default=-1, description="Only send events with a larger sequence number"),
    last_event_id: str | None = Header(default=None),
):
    """Stream debate events as Server-Sent Events."""
    debate_manager = setup_debate_manager()
    if debate_id not in debate_manager.active_debates:
        raise HTTPException(status_code=404, detail="Debate not found")

    # Reconnecting EventSource clients resume from their last seen id
    if last_event_id is not None and last_event_id.isdigit():
        after = max(after, int(last_event_id))

    async def event_source() -> AsyncIterator[str]:
        async for event in debate_manager.stream_events(debate_id, after):
            yield event.to_sse()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/debates/{debate_id}/state", response_model=DebateStateResponse)
async def get_debate_state(debate_id: str):
    """Rebuild the debate state from its recorded events."""
    debate_manager = setup_debate_manager()
    if debate_id not in debate_manager.active_debates:
        raise HTTPException(status_code=404, detail="Debate not found")

    debate_info = debate_manager.active_debates[debate_id]
    replayed = replay_events(debate_info["events"])
    status = replayed.status.value if replayed.last_sequence >= 0 else debate_info["status"]

    return DebateStateResponse(
        id=debate_id,
        last_sequence=replayed.last_sequence,
        status=status,
        phase=int(replayed.state.phase),
        turn_count=replayed.state.turn_count,
        transcript=[to_jsonable(turn) for turn in replayed.transcript],
        graph=to_jsonable(replayed.graph.snapshot()),
        contested_frontier_history=list(replayed.state.contested_frontier_history),
        concessions=[to_jsonable(c) for c in replayed.state.concessions],
        crux=to_jsonable(replayed.crux) if replayed.crux else None,
        malformed_crystallizations=replayed.malformed_crystallizations,
        error=replayed.error,
    )
