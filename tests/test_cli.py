"""Tests for the command-line runner."""

import json
from pathlib import Path

import pytest

from conftest import ScriptedExtractor, ScriptedTurnGenerator, scripted_turn
from faultline.engine import cli
from faultline.engine.config.settings import get_template_config
from faultline.engine.debate_engine.types import DialogueMove

pytestmark = pytest.mark.integration


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "debate.yaml"
    get_template_config().save_to_file(path)
    return path


@pytest.fixture
def scripted_models(monkeypatch: pytest.MonkeyPatch) -> list[tuple]:
    calls: list[tuple] = []

    def fake_build(model_manager, participants, crystallizer):
        calls.append((participants, crystallizer))
        return ScriptedTurnGenerator(default=scripted_turn(DialogueMove.CLAIM)), ScriptedExtractor()

    monkeypatch.setattr(cli, "build_llm_capabilities", fake_build)
    return calls


def test_runs_debate_and_writes_output(
    tmp_path: Path,
    config_path: Path,
    scripted_models: list[tuple],
    capsys: pytest.CaptureFixture[str],
) -> None:
    output_path = tmp_path / "out" / "result.json"

    exit_code = cli.main(
        [
            "--config", str(config_path),
            "--topic", "Is remote work better for cities?",
            "--max-turns", "4",
            "--output", str(output_path),
        ]
    )

    assert exit_code == 0
    assert len(scripted_models) == 1
    output = json.loads(output_path.read_text(encoding="utf-8"))
    assert output["topic"] == "Is remote work better for cities?"
    assert output["status"] == "complete"
    assert len(output["transcript"]) == 4

    printed = capsys.readouterr().out
    assert "=== Phase 1 ===" in printed
    assert "[1] skeptic (CLAIM)" in printed
    assert "Regime:" in printed


def test_failed_run_exits_non_zero(
    config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def failing_build(model_manager, participants, crystallizer):
        generator = ScriptedTurnGenerator([RuntimeError("model offline")])
        return generator, ScriptedExtractor()

    monkeypatch.setattr(cli, "build_llm_capabilities", failing_build)

    assert cli.main(["--config", str(config_path)]) == 1


def test_configuration_errors_exit_with_usage_code(tmp_path: Path, config_path: Path) -> None:
    assert cli.main(["--config", str(tmp_path / "missing.yaml")]) == 2
    assert cli.main(["--config", str(config_path), "--max-turns", "0"]) == 2
