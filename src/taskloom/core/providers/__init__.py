"""Model provider adapters."""

from .ollama import call_ollama, check_ollama, list_ollama_models

__all__ = ["call_ollama", "check_ollama", "list_ollama_models"]
