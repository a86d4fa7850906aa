"""Configuration types for Conch."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"


@dataclass(frozen=True, slots=True)
class Settings:
    """Backend settings, read fresh before every request."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_context_tokens_k: int = 128  # Unit: thousands of tokens
    request_timeout: float = 120.0
    max_iterations: int = 10

    @property
    def max_context_tokens(self) -> int:
        return self.max_context_tokens_k * 1000

    def resolved_base_url(self) -> str:
        """Base URL without trailing slashes, falling back to the default."""
        url = self.base_url.strip().rstrip("/")
        return url or DEFAULT_BASE_URL

    @property
    def completions_url(self) -> str:
        return f"{self.resolved_base_url()}/chat/completions"


SettingsProvider = Callable[[], Settings]
