"""Configuration loading (TOML, env vars, .env)."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from conch.errors import ConfigurationError
from conch.types.config import Settings, SettingsProvider

logger = logging.getLogger(__name__)

# Load .env from current directory (and parents), won't override existing env vars
load_dotenv()

_SETTING_NAMES = frozenset(f.name for f in fields(Settings))


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    if key := os.environ.get("CONCH_API_KEY") or os.environ.get("OPENAI_API_KEY"):
        config["api_key"] = key
    if base_url := os.environ.get("CONCH_BASE_URL"):
        config["base_url"] = base_url
    if model := os.environ.get("CONCH_MODEL"):
        config["model"] = model
    if max_k := os.environ.get("CONCH_MAX_CONTEXT_K"):
        try:
            config["max_context_tokens_k"] = int(max_k)
        except ValueError:
            raise ConfigurationError(
                f"CONCH_MAX_CONTEXT_K must be an integer, got {max_k!r}"
            ) from None

    return config


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def load_toml_config(cwd: str | None = None) -> dict[str, Any]:
    """Load the ``[ai]`` table from ``~/.conch/config.toml`` and ``.conch/config.toml``.

    The project file wins over the user file, key by key.
    """
    candidates = [Path.home() / ".conch" / "config.toml"]
    project_dir = Path(cwd) if cwd else Path.cwd()
    candidates.append(project_dir / ".conch" / "config.toml")

    merged: dict[str, Any] = {}
    seen: set[Path] = set()
    for path in candidates:
        resolved = path.resolve()
        if resolved in seen or not path.exists():
            continue
        seen.add(resolved)
        section = _read_toml(path).get("ai", {})
        if isinstance(section, dict):
            merged.update(section)
    return merged


def resolve_base_url(base_url: str | None) -> str:
    """Strip trailing slashes; fall back to the default when blank."""
    return Settings(base_url=base_url or "").resolved_base_url()


def _coerce(config: dict[str, Any]) -> dict[str, Any]:
    """Keep known keys and convert them to the types Settings expects."""
    out: dict[str, Any] = {}
    for key, value in config.items():
        if key not in _SETTING_NAMES or value is None:
            continue
        try:
            if key in ("max_context_tokens_k", "max_iterations"):
                out[key] = int(value)
            elif key == "request_timeout":
                out[key] = float(value)
            else:
                out[key] = str(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid value for {key}: {value!r}") from None
    return out


def load_settings(cwd: str | None = None, **overrides: Any) -> Settings:
    """Build :class:`Settings` from defaults, TOML files, env vars and *overrides*.

    Later sources win.  ``None`` overrides are ignored so CLI options that were
    not given do not mask lower layers.
    """
    merged: dict[str, Any] = {}
    merged.update(_coerce(load_toml_config(cwd)))
    merged.update(_coerce(load_env_config()))
    merged.update(_coerce(overrides))

    settings = replace(Settings(), **merged)
    settings = replace(settings, base_url=resolve_base_url(settings.base_url))

    if settings.max_iterations < 1:
        raise ConfigurationError("max_iterations must be at least 1")
    if settings.max_context_tokens_k < 1:
        raise ConfigurationError("max_context_tokens_k must be at least 1")
    return settings


def settings_provider(cwd: str | None = None, **overrides: Any) -> SettingsProvider:
    """Return a zero-argument accessor that re-reads settings on every call."""

    def provide() -> Settings:
        return load_settings(cwd, **overrides)

    return provide
