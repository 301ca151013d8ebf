"""In-process registry of debate runs, their tasks and their event subscribers."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeAlias

from fastapi import HTTPException

from faultline.engine.config.settings import (
    AppConfig,
    DebateConfig,
    SystemConfig,
    get_default_config,
)
from faultline.engine.debate_engine.capabilities import CrystallizationExtractor, TurnGenerator
from faultline.engine.debate_engine.engine import DebateEngine
from faultline.engine.debate_engine.events import DebateEvent
from faultline.engine.debate_engine.llm_capabilities import build_llm_capabilities
from faultline.engine.debate_engine.types import EventType
from faultline.engine.models.manager import ModelManager
from faultline.engine.web.debate_setup_request import DebateSetupRequest

logger = logging.getLogger(__name__)

CapabilityFactory: TypeAlias = Callable[[AppConfig], tuple[TurnGenerator, CrystallizationExtractor]]

TERMINAL_EVENTS = {EventType.ENGINE_COMPLETE, EventType.ENGINE_ERROR}
FINISHED_STATUSES = {"complete", "error", "cancelled"}


def llm_capability_factory(config: AppConfig) -> tuple[TurnGenerator, CrystallizationExtractor]:
    """Build model-backed capabilities for a debate configuration."""
    model_manager = ModelManager(config.system)
    return build_llm_capabilities(model_manager, config.participants, config.crystallizer)


class DebateManager:
    """Manages active debates and their event subscribers."""

    def __init__(
        self,
        capability_factory: CapabilityFactory | None = None,
        base_config: AppConfig | None = None,
    ):
        self.capability_factory = capability_factory or llm_capability_factory
        self._base_config = base_config
        self.active_debates: dict[str, dict[str, Any]] = {}
        self.subscribers: dict[str, list[asyncio.Queue[DebateEvent | None]]] = {}

    @property
    def system_config(self) -> SystemConfig:
        return (self._base_config or get_default_config()).system

    def _get_debate(self, debate_id: str) -> dict[str, Any]:
        if debate_id not in self.active_debates:
            raise HTTPException(status_code=404, detail="Debate not found")
        return self.active_debates[debate_id]

    def build_config(self, setup: DebateSetupRequest) -> AppConfig:
        """Overlay a setup request onto the base configuration."""
        base_config = self._base_config or get_default_config()
        return AppConfig(
            debate=DebateConfig(topic=setup.topic, max_turns=setup.max_turns),
            participants=setup.participants,
            crystallizer=setup.crystallizer or base_config.crystallizer,
            engine=setup.engine or base_config.engine,
            system=base_config.system,
        )

    async def create_debate(self, setup: DebateSetupRequest) -> str:
        """Create a new debate session."""
        debate_id = str(uuid.uuid4())

        config = self.build_config(setup)
        try:
            turn_generator, extractor = self.capability_factory(config)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        engine = DebateEngine.from_config(config, turn_generator, extractor)

        self.active_debates[debate_id] = {
            "id": debate_id,
            "config": config,
            "engine": engine,
            "events": [],
            "status": "created",
            "task": None,
            "error": None,
        }
        self.subscribers[debate_id] = []

        logger.info(f"Created debate {debate_id}: {setup.topic}")
        return debate_id

    async def start_debate(self, debate_id: str) -> None:
        """Start a debate session in the background."""
        debate_info = self._get_debate(debate_id)
        if debate_info["status"] != "created":
            raise HTTPException(
                status_code=400, detail=f"Debate cannot be started from status {debate_info['status']}"
            )

        debate_info["status"] = "running"
        debate_info["task"] = asyncio.create_task(self._run_debate(debate_id))
        logger.info(f"Started debate {debate_id}")

    async def cancel_debate(self, debate_id: str) -> None:
        """Cancel a debate; a running debate stops before its next turn."""
        debate_info = self._get_debate(debate_id)

        if debate_info["status"] == "created":
            debate_info["status"] = "cancelled"
            self._close_subscribers(debate_id)
        elif debate_info["status"] == "running":
            debate_info["engine"].cancel()
        else:
            raise HTTPException(
                status_code=400, detail=f"Debate already finished with status {debate_info['status']}"
            )
        logger.info(f"Cancellation requested for debate {debate_id}")

    async def _run_debate(self, debate_id: str) -> None:
        """Consume the engine's event stream, recording and broadcasting each event."""
        debate_info = self.active_debates[debate_id]
        engine: DebateEngine = debate_info["engine"]

        try:
            async for event in engine.run():
                debate_info["events"].append(event)
                await self._broadcast(debate_id, event)
                if event.type is EventType.ENGINE_ERROR:
                    debate_info["error"] = event.data.get("message")
            debate_info["status"] = engine.status.value
        except asyncio.CancelledError:
            logger.info(f"Debate task {debate_id} cancelled")
            debate_info["status"] = "cancelled"
            raise
        except Exception as e:
            logger.error(f"Debate {debate_id} failed: {type(e).__name__}: {e}")
            debate_info["status"] = "error"
            debate_info["error"] = str(e)
        finally:
            self._close_subscribers(debate_id)

    async def _broadcast(self, debate_id: str, event: DebateEvent) -> None:
        for queue in self.subscribers.get(debate_id, []):
            await queue.put(event)

    def _close_subscribers(self, debate_id: str) -> None:
        for queue in self.subscribers.get(debate_id, []):
            queue.put_nowait(None)

    async def stream_events(self, debate_id: str, after: int = -1) -> AsyncIterator[DebateEvent]:
        """Yield recorded events after ``after``, then live ones until the run ends."""
        debate_info = self._get_debate(debate_id)
        queue: asyncio.Queue[DebateEvent | None] = asyncio.Queue()
        self.subscribers[debate_id].append(queue)

        try:
            last_sequence = after
            for event in list(debate_info["events"]):
                if event.sequence <= last_sequence:
                    continue
                last_sequence = event.sequence
                yield event
                if event.type in TERMINAL_EVENTS:
                    return

            if debate_info["status"] in FINISHED_STATUSES:
                return

            while True:
                event = await queue.get()
                if event is None:
                    return
                if event.sequence <= last_sequence:
                    continue
                last_sequence = event.sequence
                yield event
                if event.type in TERMINAL_EVENTS:
                    return
        finally:
            self.subscribers[debate_id].remove(queue)

    async def shutdown(self) -> None:
        """Cancel every debate task that is still running."""
        tasks = [
            info["task"]
            for info in self.active_debates.values()
            if info["task"] is not None and not info["task"].done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Stopped {len(tasks)} running debate(s)")
