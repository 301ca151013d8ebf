"""Tests for the HTTP API: debate lifecycle, SSE event stream and replayed state."""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import ScriptedExtractor, ScriptedTurnGenerator, scripted_turn
from faultline.engine.config.settings import AppConfig, get_template_config
from faultline.engine.debate_engine.types import DialogueMove
from faultline.engine.web import api
from faultline.engine.web.debate_manager import DebateManager

pytestmark = pytest.mark.integration

SETUP = {
    "topic": "Should cities replace parking minimums with congestion pricing?",
    "participants": {
        "skeptic": {"name": "qwen2.5:7b", "provider": "ollama"},
        "advocate": {"name": "openai/gpt-4o-mini", "provider": "openrouter"},
    },
    "max_turns": 4,
}


def _scripted_capabilities(config: AppConfig) -> tuple[ScriptedTurnGenerator, ScriptedExtractor]:
    extractor = ScriptedExtractor(
        {1: {"newArgs": [{"speakerId": "skeptic", "claim": "Minimums raise rents"}]}}
    )
    return ScriptedTurnGenerator(default=scripted_turn(DialogueMove.CLAIM)), extractor


def _parse_sse(body: str) -> list[tuple[str, dict]]:
    frames = []
    for block in body.strip().split("\n\n"):
        fields = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((fields["event"], json.loads(fields["data"])))
    return frames


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch):
    manager = DebateManager(capability_factory=_scripted_capabilities, base_config=get_template_config())
    monkeypatch.setattr(api, "debate_manager", manager)
    with TestClient(api.app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    assert client.get("/v1/api/health").json() == {"isAlive": True}


def test_providers_are_described(client: TestClient) -> None:
    providers = client.get("/v1/api/providers").json()["providers"]

    assert [p["name"] for p in providers] == ["ollama", "openrouter"]
    assert providers[0]["base_url"] == "http://localhost:11434"
    assert providers[1]["requires_api_key"] is True


def test_debate_runs_and_streams_events(client: TestClient) -> None:
    created = client.post("/v1/api/debates", json=SETUP)
    assert created.status_code == 200
    debate = created.json()
    assert debate["status"] == "created"
    assert debate["max_turns"] == 4
    assert debate["phase"] == 1

    debate_id = debate["id"]
    assert client.post(f"/v1/api/debates/{debate_id}/start").json()["status"] == "started"

    stream = client.get(f"/v1/api/debates/{debate_id}/events")
    assert stream.headers["content-type"].startswith("text/event-stream")
    frames = _parse_sse(stream.text)
    assert frames[0][0] == "engine_start"
    assert frames[-1][0] == "engine_complete"
    assert [data["sequence"] for _, data in frames] == list(range(len(frames)))
    turns = [data for name, data in frames if name == "dialogue_turn"]
    assert len(turns) == 4

    status = client.get(f"/v1/api/debates/{debate_id}").json()
    assert status["status"] == "complete"
    assert status["turn_count"] == 4
    assert status["regime"] in {"consensus", "polarized", "partial"}

    state = client.get(f"/v1/api/debates/{debate_id}/state").json()
    assert state["status"] == "complete"
    assert state["turn_count"] == 4
    assert len(state["transcript"]) == 4
    assert [a["id"] for a in state["graph"]["arguments"]] == ["arg-0"]
    assert state["last_sequence"] == len(frames) - 1


def test_stream_resumes_after_last_event_id(client: TestClient) -> None:
    debate_id = client.post("/v1/api/debates", json=SETUP).json()["id"]
    client.post(f"/v1/api/debates/{debate_id}/start")
    full = _parse_sse(client.get(f"/v1/api/debates/{debate_id}/events").text)

    resumed = _parse_sse(
        client.get(f"/v1/api/debates/{debate_id}/events", headers={"Last-Event-ID": "5"}).text
    )

    assert [data["sequence"] for _, data in resumed] == list(range(6, len(full)))


def test_cancel_before_start(client: TestClient) -> None:
    debate_id = client.post("/v1/api/debates", json=SETUP).json()["id"]

    assert client.post(f"/v1/api/debates/{debate_id}/cancel").status_code == 200
    assert client.get(f"/v1/api/debates/{debate_id}").json()["status"] == "cancelled"
    assert client.post(f"/v1/api/debates/{debate_id}/start").status_code == 400
    assert client.get(f"/v1/api/debates/{debate_id}/events").text == ""


def test_unknown_debate_is_404(client: TestClient) -> None:
    assert client.get("/v1/api/debates/nope").status_code == 404
    assert client.post("/v1/api/debates/nope/start").status_code == 404
    assert client.get("/v1/api/debates/nope/events").status_code == 404
    assert client.get("/v1/api/debates/nope/state").status_code == 404


def test_setup_validation(client: TestClient) -> None:
    lonely = {**SETUP, "participants": {"skeptic": SETUP["participants"]["skeptic"]}}
    assert client.post("/v1/api/debates", json=lonely).status_code == 422

    bad_provider = {
        **SETUP,
        "participants": {**SETUP["participants"], "critic": {"name": "x", "provider": "openai"}},
    }
    assert client.post("/v1/api/debates", json=bad_provider).status_code == 422
