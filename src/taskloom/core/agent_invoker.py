"""Resolve an agent to its model and run one prompt through the provider."""

from __future__ import annotations

from typing import Any

from .agent_registry import AgentRegistry
from .config_loader import get_provider_config, load_config_or_empty
from .providers import call_ollama, check_ollama, list_ollama_models
from .providers.ollama import OLLAMA_BASE_URL

DEFAULT_PROVIDER_TIMEOUT_SEC = 120


def _failure(*, agent_id: str, model: str | None, error: str) -> dict[str, Any]:
    return {
        "ok": False,
        "provider": "ollama",
        "agent_id": agent_id,
        "model": model,
        "text": None,
        "error": error,
    }


def _ollama_settings(config: dict[str, Any] | None = None) -> tuple[str, float]:
    payload = config if config is not None else load_config_or_empty()
    try:
        provider_cfg = get_provider_config("ollama", payload)
    except ValueError:
        provider_cfg = {}
    base_url = provider_cfg.get("base_url")
    timeout = provider_cfg.get("timeout_sec")
    return (
        base_url if isinstance(base_url, str) and base_url.strip() else OLLAMA_BASE_URL,
        float(timeout) if isinstance(timeout, (int, float)) and timeout > 0 else float(DEFAULT_PROVIDER_TIMEOUT_SEC),
    )


class AgentInvoker:
    """Run prompts against configured agents.

    `invoke` never raises for provider problems; failures come back as
    `{"ok": False, "error": ...}`.
    """

    def __init__(self, *, registry: AgentRegistry | None = None) -> None:
        self._registry = registry or AgentRegistry()

    def invoke(self, agent_id: str, prompt: str) -> dict[str, Any]:
        agent = self._registry.get_agent(agent_id)
        if agent is None:
            return _failure(agent_id=agent_id, model=None, error=f"Agent '{agent_id}' not found.")

        base_url, timeout_sec = _ollama_settings()
        try:
            response = call_ollama(model=agent.model, prompt=prompt, base_url=base_url, timeout_sec=timeout_sec)
        except Exception as exc:
            return _failure(agent_id=agent.id, model=agent.model, error=f"Ollama call failed: {exc}")

        payload = dict(response)
        payload["agent_id"] = agent.id
        return payload

    @staticmethod
    def backend_reachable() -> bool:
        base_url, _ = _ollama_settings()
        return check_ollama(base_url=base_url)

    @staticmethod
    def backend_models() -> list[dict[str, Any]]:
        base_url, timeout_sec = _ollama_settings()
        return list_ollama_models(base_url=base_url, timeout_sec=min(timeout_sec, 10.0))
