"""Settings loading for the guardian service."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from common.config import Settings

from .errors import ConfigError


def _describe(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "settings"
        problems.append(f"{location.upper()}: {error.get('msg')}")
    return "; ".join(problems)


def load_settings(**overrides: Any) -> Settings:
    """Read settings from the environment, raising ``ConfigError`` when invalid."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {_describe(exc)}") from exc


__all__ = ["load_settings"]
