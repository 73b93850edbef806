"""Tests for baton.agent.registry (markdown discovery and name resolution)."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel

from baton.agent.agent import Agent, AgentDefinition
from baton.agent.registry import AgentRegistry
from baton.tool import ToolRegistry, function_tool


class SearchParams(BaseModel):
    query: str


async def _search(params: SearchParams) -> str:
    return f"results for {params.query}"


def _tools() -> ToolRegistry:
    return ToolRegistry([function_tool("web_search", "Search the web", SearchParams, _search)])


def _write(directory: Path, filename: str, frontmatter: str, body: str = "Do the work.") -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / filename).write_text(f"---\n{frontmatter}\n---\n\n{body}\n")


class TestRegistryBasics:
    def test_register_and_get(self) -> None:
        registry = AgentRegistry()
        agent = Agent(name="A")
        registry.register(agent)
        assert registry.get("A") is agent
        assert "A" in registry
        assert len(registry) == 1
        assert registry.get("missing") is None

    def test_register_replaces_same_name(self) -> None:
        registry = AgentRegistry()
        registry.register(Agent(name="A", description="old"))
        registry.register(Agent(name="A", description="new"))
        assert registry.names() == ["A"]
        assert registry.get("A").description == "new"


class TestDiscover:
    def test_builds_agents_with_tools_and_handoffs(self, tmp_path: Path) -> None:
        _write(tmp_path, "researcher.md", "name: Researcher\ntools: [web_search, missing_tool]\nhandoffs: [Writer]")
        _write(tmp_path, "writer.md", "name: Writer\nmodel: openai/gpt-4o-mini\ntemperature: 0.1", "Write it up.")

        registry = AgentRegistry(default_model="openai/default")
        built = registry.discover([str(tmp_path)], _tools())

        assert [a.name for a in built] == ["Writer", "Researcher"]
        researcher = registry.get("Researcher")
        writer = registry.get("Writer")
        assert [t.name for t in researcher.tools] == ["web_search"]
        assert researcher.handoffs == (writer,)
        assert researcher.model == "openai/default"
        assert writer.model == "openai/gpt-4o-mini"
        assert writer.model_settings.temperature == 0.1
        assert writer.instructions.resolve(None) == "Write it up."

    def test_handoff_to_previously_registered_agent(self, tmp_path: Path) -> None:
        registry = AgentRegistry()
        existing = Agent(name="Existing")
        registry.register(existing)
        _write(tmp_path, "a.md", "name: Router\nhandoffs: [Existing, Ghost]")

        registry.discover([str(tmp_path)])
        assert registry.get("Router").handoffs == (existing,)

    def test_cycle_drops_back_edge(self) -> None:
        registry = AgentRegistry()
        built = registry.build(
            [
                AgentDefinition(name="A", handoffs=["B"]),
                AgentDefinition(name="B", handoffs=["A"]),
            ]
        )
        a, b = registry.get("A"), registry.get("B")
        assert {agent.name for agent in built} == {"A", "B"}
        assert a.handoffs == (b,)
        assert b.handoffs == ()

    def test_missing_directory_is_ignored(self, tmp_path: Path) -> None:
        registry = AgentRegistry()
        assert registry.discover([str(tmp_path / "nowhere")]) == []
        assert len(registry) == 0
