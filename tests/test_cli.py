"""Tests for the baton CLI."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import ScriptedProvider, calls, text

from baton.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch: pytest.MonkeyPatch):
    for name in ("BATON_MODEL", "BATON_MAX_TURNS", "BATON_TRACE_EXPORT_PATH"):
        monkeypatch.delenv(name, raising=False)
    with patch("baton.config.load_dotenv"):
        yield


def _invoke(provider: ScriptedProvider, *args: str):
    with patch("baton.llm.provider.create_provider", return_value=provider):
        return runner.invoke(app, list(args))


class TestRunCommand:
    def test_direct_answer(self) -> None:
        result = _invoke(ScriptedProvider([text("4")]), "run", "What is 2+2?", "--model", "openai/test")
        assert result.exit_code == 0, result.output
        assert "Model: openai/test" in result.output
        assert "Path: DelegationAgent" in result.output

    def test_delegated_answer_streams(self) -> None:
        provider = ScriptedProvider(
            by_prompt={
                "delegating tasks": [calls(("transfer_to_researchagent", {"topic": "AI", "depth": "basic"}))],
                "AI research assistant": [text("Fresh facts")],
            }
        )
        result = _invoke(provider, "run", "Latest AI news?", "--stream")
        assert result.exit_code == 0, result.output
        assert "Fresh facts" in result.output
        assert "Path: DelegationAgent → ResearchAgent" in result.output

    def test_failure_exits_nonzero(self) -> None:
        result = _invoke(ScriptedProvider([RuntimeError("offline")]), "run", "hi")
        assert result.exit_code == 1

    def test_orchestrate(self) -> None:
        provider = ScriptedProvider(
            by_prompt={
                "task classification AI": [
                    calls(
                        (
                            "classify_query",
                            {"task_type": "research", "confidence": 0.9, "reasoning": "facts"},
                        )
                    ),
                    text("Classified."),
                ],
                "AI research assistant": [text("Findings")],
            }
        )
        result = _invoke(provider, "run", "news?", "--orchestrate")
        assert result.exit_code == 0, result.output
        assert "Task type: research" in result.output
        assert "Path: TriageAgent → ResearchAgent" in result.output
