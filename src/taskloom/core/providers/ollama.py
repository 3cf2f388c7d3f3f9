"""Ollama generate-API adapter."""

from __future__ import annotations

import json
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

OLLAMA_BASE_URL = "http://localhost:11434"


def _read_json(req: Request, timeout_sec: float) -> dict[str, Any]:
    try:
        with urlopen(req, timeout=timeout_sec) as response:
            body = response.read().decode("utf-8")
    except HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace")
        detail = body.strip() or str(exc)
        try:
            parsed = json.loads(body)
            if isinstance(parsed, dict) and isinstance(parsed.get("error"), str):
                detail = parsed["error"]
        except json.JSONDecodeError:
            pass
        raise RuntimeError(f"HTTP {exc.code}: {detail}") from exc
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ValueError("Ollama response is not valid JSON.") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Ollama response must be a JSON object.")
    return parsed


def call_ollama(
    *,
    model: str,
    prompt: str,
    base_url: str = OLLAMA_BASE_URL,
    timeout_sec: float = 120,
) -> dict[str, Any]:
    """Run one non-streaming generation and normalize the output."""
    req = Request(
        f"{base_url.rstrip('/')}/api/generate",
        data=json.dumps({"model": model, "prompt": prompt, "stream": False}).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    raw = _read_json(req, timeout_sec)
    text = raw.get("response")
    if not isinstance(text, str):
        raise ValueError("Ollama response is missing `response` text.")
    return {
        "ok": True,
        "provider": "ollama",
        "model": raw.get("model") or model,
        "text": text,
        "done": bool(raw.get("done", True)),
        "error": None,
    }


def list_ollama_models(*, base_url: str = OLLAMA_BASE_URL, timeout_sec: float = 10) -> list[dict[str, Any]]:
    req = Request(f"{base_url.rstrip('/')}/api/tags", method="GET")
    raw = _read_json(req, timeout_sec)
    models = raw.get("models")
    if not isinstance(models, list):
        return []
    out: list[dict[str, Any]] = []
    for item in models:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        out.append(
            {
                "name": item["name"],
                "size": int(item.get("size") or 0),
                "modified_at": str(item.get("modified_at") or ""),
            }
        )
    return out


def check_ollama(*, base_url: str = OLLAMA_BASE_URL, timeout_sec: float = 3) -> bool:
    try:
        list_ollama_models(base_url=base_url, timeout_sec=timeout_sec)
    except (URLError, OSError, RuntimeError, ValueError):
        return False
    return True
