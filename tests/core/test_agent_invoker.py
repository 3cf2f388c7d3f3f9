import json
from pathlib import Path

import pytest

from src.taskloom.core.agent_invoker import AgentInvoker, _ollama_settings
from src.taskloom.core.agent_registry import AgentProfile, AgentRegistry
from src.taskloom.core.config_loader import clear_config_cache


@pytest.fixture()
def configured_ollama(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"providers": {"ollama": {"base_url": "http://ollama.local:11434", "timeout_sec": 45}}}),
        encoding="utf-8",
    )
    monkeypatch.setenv("TASKLOOM_CONFIG_PATH", str(path))
    clear_config_cache()
    return path


def _registry() -> AgentRegistry:
    return AgentRegistry(agents=[AgentProfile(id="coder", name="Code Assistant", model="codellama")])


def test_invoke_resolves_agent_model(configured_ollama, monkeypatch):
    seen: dict[str, object] = {}

    def fake_call_ollama(**kwargs):
        seen.update(kwargs)
        return {"ok": True, "provider": "ollama", "model": kwargs["model"], "text": "done", "error": None}

    monkeypatch.setattr("src.taskloom.core.agent_invoker.call_ollama", fake_call_ollama)
    out = AgentInvoker(registry=_registry()).invoke("coder", "refactor this")

    assert out["ok"] is True
    assert out["text"] == "done"
    assert out["agent_id"] == "coder"
    assert seen == {
        "model": "codellama",
        "prompt": "refactor this",
        "base_url": "http://ollama.local:11434",
        "timeout_sec": 45.0,
    }


def test_invoke_unknown_agent_fails_without_calling_provider(configured_ollama, monkeypatch):
    def fail_call(**kwargs):
        raise AssertionError("provider should not be called")

    monkeypatch.setattr("src.taskloom.core.agent_invoker.call_ollama", fail_call)
    out = AgentInvoker(registry=_registry()).invoke("ghost", "hi")
    assert out["ok"] is False
    assert "ghost" in out["error"]


def test_invoke_provider_error_is_reported(configured_ollama, monkeypatch):
    def broken_call(**kwargs):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr("src.taskloom.core.agent_invoker.call_ollama", broken_call)
    out = AgentInvoker(registry=_registry()).invoke("coder", "hi")
    assert out["ok"] is False
    assert out["model"] == "codellama"
    assert "connection refused" in out["error"]


def test_ollama_settings_defaults():
    assert _ollama_settings({}) == ("http://localhost:11434", 120.0)
    assert _ollama_settings({"providers": {"ollama": {"timeout_sec": -3}}})[1] == 120.0
