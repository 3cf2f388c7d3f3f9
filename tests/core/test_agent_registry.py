from src.taskloom.core.agent_registry import DEFAULT_AGENTS, AgentRegistry, load_agent_profiles


def test_defaults_used_when_agents_not_configured():
    agents = load_agent_profiles({})
    assert [agent.id for agent in agents] == [agent.id for agent in DEFAULT_AGENTS]


def test_configured_agents_replace_defaults():
    agents = load_agent_profiles(
        {
            "agents": [
                {"id": "writer", "name": "Writer", "model": "mistral", "capabilities": ["drafting"]},
                {"id": "writer", "name": "Duplicate", "model": "mistral"},
                {"id": "no_model"},
            ]
        }
    )
    assert len(agents) == 1
    assert agents[0].name == "Writer"
    assert agents[0].capabilities == ["drafting"]


def test_invalid_agent_list_falls_back_to_defaults():
    agents = load_agent_profiles({"agents": [{"name": "missing id"}]})
    assert {agent.id for agent in agents} == {"general", "coder", "analyst"}


def test_registry_lookup_and_reload():
    registry = AgentRegistry(agents=list(DEFAULT_AGENTS))
    assert registry.resolve("coder") == "Code Assistant"
    assert registry.resolve(" coder ") == "Code Assistant"
    assert registry.resolve("ghost") is None
    assert [agent.id for agent in registry.list_agents()] == ["analyst", "coder", "general"]

    count = registry.reload({"agents": {"solo": {"name": "Solo", "model": "phi3"}}})
    assert count == 1
    assert registry.resolve("coder") is None
    assert registry.get_agent("solo").model == "phi3"


def test_profile_dict_shape():
    payload = DEFAULT_AGENTS[0].to_dict()
    assert set(payload) == {"id", "name", "role", "description", "capabilities", "model"}
