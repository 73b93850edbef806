"""Agent registry — discover and manage agents."""

from __future__ import annotations

import logging

from baton.agent.agent import DEFAULT_MODEL, Agent, AgentDefinition, discover_definitions
from baton.llm.provider import ModelSettings
from baton.tool.registry import ToolRegistry

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Registry of available agents.

    Agents can be registered programmatically or built from markdown
    definitions, whose tool and handoff names are resolved against the
    tool registry and the agents already known here.
    """

    def __init__(self, default_model: str = DEFAULT_MODEL) -> None:
        self.default_model = default_model
        self._agents: dict[str, Agent] = {}

    def register(self, agent: Agent) -> None:
        if agent.name in self._agents:
            logger.debug("Replacing agent: %s", agent.name)
        self._agents[agent.name] = agent

    def get(self, name: str) -> Agent | None:
        return self._agents.get(name)

    def names(self) -> list[str]:
        return list(self._agents.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def discover(self, search_dirs: list[str], tools: ToolRegistry | None = None) -> list[Agent]:
        """Build and register every agent defined in ``search_dirs``.

        Returns the newly built agents in definition order.
        """
        return self.build(discover_definitions(search_dirs), tools)

    def build(
        self, definitions: list[AgentDefinition], tools: ToolRegistry | None = None
    ) -> list[Agent]:
        pending = {d.name: d for d in definitions}
        building: set[str] = set()
        built: list[Agent] = []
        tools = tools or ToolRegistry()

        def resolve(name: str) -> Agent | None:
            if name in pending and name not in building:
                definition = pending.pop(name)
                building.add(name)
                agent = self._from_definition(definition, tools, resolve)
                building.discard(name)
                self.register(agent)
                built.append(agent)
                logger.info("Discovered agent: %s", agent.name)
                return agent
            if name in building:
                logger.warning("Handoff cycle through %s; dropping the back edge", name)
                return None
            return self._agents.get(name)

        for definition in definitions:
            resolve(definition.name)
        return built

    def _from_definition(self, definition: AgentDefinition, tools: ToolRegistry, resolve) -> Agent:
        handoffs = []
        for target in definition.handoffs:
            agent = resolve(target)
            if agent is None:
                logger.warning("Agent %s: unknown handoff target %s", definition.name, target)
                continue
            handoffs.append(agent)

        return Agent(
            name=definition.name,
            instructions=definition.instructions,
            description=definition.description,
            model=definition.model or self.default_model,
            model_settings=ModelSettings(temperature=definition.temperature),
            tools=tuple(tools.subset(definition.tools)),
            handoffs=tuple(handoffs),
        )
