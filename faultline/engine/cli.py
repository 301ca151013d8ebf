"""Command-line entry point: run a debate in the terminal or start the web server."""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from faultline.engine.config.settings import AppConfig, get_default_config
from faultline.engine.debate_engine.engine import DebateEngine
from faultline.engine.debate_engine.events import DebateEvent
from faultline.engine.debate_engine.llm_capabilities import build_llm_capabilities
from faultline.engine.debate_engine.models import to_jsonable
from faultline.engine.debate_engine.types import EventType, RunStatus
from faultline.engine.models.manager import ModelManager

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the CLI and web server."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Suppress noisy third-party loggers
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="faultline",
        description="Run a dialectical debate between AI personas.",
    )
    parser.add_argument("--web", action="store_true", help="Start the HTTP API server")
    parser.add_argument("--topic", help="Debate topic (overrides the config file)")
    parser.add_argument("--config", type=Path, help="JSON or YAML configuration file")
    parser.add_argument("--max-turns", type=int, help="Turn budget (overrides the config file)")
    parser.add_argument("--output", type=Path, help="Write the final output JSON to this path")
    return parser


def load_config(args: argparse.Namespace) -> AppConfig:
    """Load the configuration and apply command-line overrides."""
    config = AppConfig.load_from_file(args.config) if args.config else get_default_config()
    if args.topic:
        config.debate.topic = args.topic
    if args.max_turns is not None:
        if args.max_turns < 1:
            raise ValueError("--max-turns must be positive")
        config.debate.max_turns = args.max_turns
    return config


def format_event(event: DebateEvent) -> str | None:
    """Render the events worth showing in a terminal; None for the rest."""
    data = event.data
    match event.type:
        case EventType.PHASE_START:
            return f"\n=== Phase {data['phase']} ==="
        case EventType.DIALOGUE_TURN:
            turn = data["turn"]
            return f"[{turn['turn_index']}] {turn['persona_id']} ({turn['move']}): {turn['dialogue']}"
        case EventType.STEERING:
            return f"    >> steering {data['target_persona_id']}: {data['hint']}"
        case EventType.CONCESSION:
            concession = data["concession"]
            return f"    !! {concession['persona_id']} conceded ({concession['type']}): {concession['effect']}"
        case EventType.CRUX_PROPOSED:
            return f"    ** crux proposed by {data['persona_id']}: {data['statement']}"
        case EventType.GRAPH_UPDATED:
            return (
                f"    graph: IN={data['in_count']} OUT={data['out_count']} "
                f"UNDEC={data['undec_count']} frontier={data['contested_frontier']}"
            )
        case EventType.ENGINE_COMPLETE:
            output = data["output"]
            return f"\nRegime: {output['regime']}\n{output['regime_description']}"
        case EventType.ENGINE_ERROR:
            return f"\nDebate failed: {data['message']}"
    return None


async def run_debate(config: AppConfig, output_path: Path | None = None) -> RunStatus:
    """Run a debate with model-backed capabilities, printing events as they arrive."""
    model_manager = ModelManager(config.system)
    turn_generator, extractor = build_llm_capabilities(
        model_manager, config.participants, config.crystallizer
    )
    engine = DebateEngine.from_config(config, turn_generator, extractor)

    print(f"Topic: {config.debate.topic}")
    print(f"Participants: {', '.join(config.persona_ids)}")

    async for event in engine.run():
        line = format_event(event)
        if line:
            print(line)

    for model_id, usage in model_manager.usage.items():
        logger.info(
            "%s: %d calls, %d prompt / %d completion tokens",
            model_id,
            usage.calls,
            usage.prompt_tokens,
            usage.completion_tokens,
        )

    if output_path and engine.output:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(to_jsonable(engine.output), f, indent=2)
        print(f"\nOutput written to {output_path}")

    return engine.status


def start_web_server() -> None:
    """Start the FastAPI web server."""
    import uvicorn

    from faultline.engine.web.api import app

    port = int(os.environ.get("PORT", 8000))
    print("Starting Faultline Debate Engine API...")
    print(f"API Documentation: http://localhost:{port}/docs")

    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info", access_log=True)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.web:
        setup_logging()
        start_web_server()
        return 0

    try:
        config = load_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.system.log_level)
    try:
        status = asyncio.run(run_debate(config, args.output))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    return 0 if status is RunStatus.COMPLETE else 1


if __name__ == "__main__":
    sys.exit(main())
