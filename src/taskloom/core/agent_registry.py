"""Agent definitions that scheduled tasks can target."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Any

from .config_loader import get_agents_config, load_config_or_empty


@dataclass(slots=True)
class AgentProfile:
    id: str
    name: str
    model: str
    role: str = ""
    description: str = ""
    capabilities: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "description": self.description,
            "capabilities": list(self.capabilities),
            "model": self.model,
        }


DEFAULT_AGENTS: tuple[AgentProfile, ...] = (
    AgentProfile(
        id="general",
        name="General Assistant",
        role="general",
        description="General purpose AI assistant for various tasks",
        capabilities=["conversation", "reasoning", "analysis"],
        model="llama3.2",
    ),
    AgentProfile(
        id="coder",
        name="Code Assistant",
        role="coder",
        description="Specialized in programming, code review, and debugging",
        capabilities=["code_generation", "code_review", "debugging", "refactoring"],
        model="codellama",
    ),
    AgentProfile(
        id="analyst",
        name="Data Analyst",
        role="analyst",
        description="Analyzes data, files, and provides insights",
        capabilities=["file_analysis", "data_processing", "visualization"],
        model="llama3.2",
    ),
)


def _profile_from_payload(payload: dict[str, Any]) -> AgentProfile | None:
    agent_id = str(payload.get("id") or "").strip()
    model = str(payload.get("model") or "").strip()
    if not agent_id or not model:
        return None
    capabilities = payload.get("capabilities")
    return AgentProfile(
        id=agent_id,
        name=str(payload.get("name") or agent_id).strip() or agent_id,
        model=model,
        role=str(payload.get("role") or ""),
        description=str(payload.get("description") or ""),
        capabilities=[str(item) for item in capabilities] if isinstance(capabilities, list) else [],
    )


def load_agent_profiles(config: dict[str, Any] | None = None) -> list[AgentProfile]:
    """Agents from config, or the built-in defaults when none are configured."""
    payload = config if config is not None else load_config_or_empty()
    configured = get_agents_config(payload)
    if configured is None:
        return [AgentProfile(**agent.to_dict()) for agent in DEFAULT_AGENTS]

    out: list[AgentProfile] = []
    seen: set[str] = set()
    for item in configured:
        profile = _profile_from_payload(item)
        if profile is None or profile.id in seen:
            continue
        seen.add(profile.id)
        out.append(profile)
    if not out:
        return [AgentProfile(**agent.to_dict()) for agent in DEFAULT_AGENTS]
    return out


class AgentRegistry:
    """Lookup of agent id -> profile."""

    def __init__(self, agents: list[AgentProfile] | None = None) -> None:
        self._lock = RLock()
        self._agents: dict[str, AgentProfile] = {}
        self._replace(agents if agents is not None else load_agent_profiles())

    def _replace(self, agents: list[AgentProfile]) -> None:
        with self._lock:
            self._agents = {agent.id: agent for agent in agents}

    def reload(self, config: dict[str, Any] | None = None) -> int:
        agents = load_agent_profiles(config)
        self._replace(agents)
        return len(agents)

    def get_agent(self, agent_id: str) -> AgentProfile | None:
        with self._lock:
            return self._agents.get(str(agent_id or "").strip())

    def resolve(self, agent_id: str) -> str | None:
        """Return the agent display name, or None when the id is unknown."""
        agent = self.get_agent(agent_id)
        return agent.name if agent is not None else None

    def list_agents(self) -> list[AgentProfile]:
        with self._lock:
            return sorted(self._agents.values(), key=lambda agent: agent.id)
