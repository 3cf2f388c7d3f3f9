"""Load and query Taskloom JSON config files."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("config/config.json")
_CONFIG_CACHE: dict[Path, tuple[int, dict[str, Any]]] = {}


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    """Resolve config path against repo root.

    Priority:
    1. explicit function argument
    2. `TASKLOOM_CONFIG_PATH` environment variable
    3. default `config/config.json`
    """
    raw_path: str | Path | None = config_path or os.getenv("TASKLOOM_CONFIG_PATH")
    candidate = Path(raw_path) if raw_path else DEFAULT_CONFIG_PATH
    if not candidate.is_absolute():
        candidate = _repo_root() / candidate
    return candidate.resolve()


def load_config(config_path: str | Path | None = None, *, use_cache: bool = True) -> dict[str, Any]:
    """Load config JSON as a dictionary."""
    resolved = resolve_config_path(config_path)
    if not resolved.exists():
        raise FileNotFoundError(f"Config file not found: {resolved}")

    mtime_ns = resolved.stat().st_mtime_ns
    if use_cache and resolved in _CONFIG_CACHE:
        cached_mtime_ns, cached_payload = _CONFIG_CACHE[resolved]
        if cached_mtime_ns == mtime_ns:
            return cached_payload

    try:
        payload = json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file: {resolved}") from exc

    if not isinstance(payload, dict):
        raise ValueError(f"Config root must be a JSON object: {resolved}")

    _CONFIG_CACHE[resolved] = (mtime_ns, payload)
    return payload


def load_config_or_empty() -> dict[str, Any]:
    """Load config, treating a missing or unreadable file as empty defaults."""
    try:
        return load_config()
    except (FileNotFoundError, ValueError):
        return {}


def clear_config_cache() -> None:
    """Clear in-memory config cache."""
    _CONFIG_CACHE.clear()


def get_scheduler_config(config: dict[str, Any] | None = None) -> dict[str, Any]:
    payload = config if config is not None else load_config()
    value = payload.get("scheduler")
    return value if isinstance(value, dict) else {}


def get_agents_config(config: dict[str, Any] | None = None) -> list[dict[str, Any]] | None:
    """Return configured agent definitions, or None when the key is absent.

    Accepts either a list of agent objects or an object keyed by agent id.
    """
    payload = config if config is not None else load_config()
    value = payload.get("agents")
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    if isinstance(value, dict):
        out: list[dict[str, Any]] = []
        for agent_id, item in value.items():
            if isinstance(agent_id, str) and isinstance(item, dict):
                out.append({"id": agent_id, **item})
        return out
    return None


def get_provider_config(provider_name: str, config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return provider config from `providers`; missing providers yield `{}`."""
    payload = config if config is not None else load_config()
    providers = payload.get("providers")
    if providers is None:
        return {}
    if not isinstance(providers, dict):
        raise ValueError("Config providers must be a JSON object.")

    provider = providers.get(provider_name)
    if provider is None:
        return {}
    if not isinstance(provider, dict):
        raise ValueError(f"Provider '{provider_name}' config must be a JSON object.")
    return provider
