"""Typed tunables for orchestration, moderation and concurrency.

Each dataclass carries the production defaults and a ``from_mapping``
constructor that tolerates missing keys and malformed values by falling back
to the default, logging what was ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Type, TypeVar

from streamcrew.util.logger import get_logger

logger = get_logger("tuning_settings")

T = TypeVar("T")


def _from_mapping(cls: Type[T], data: Dict[str, Any] | None) -> T:
    if not isinstance(data, dict):
        return cls()
    values: Dict[str, Any] = {}
    for f in fields(cls):  # type: ignore[arg-type]
        if f.name not in data or data[f.name] is None:
            continue
        raw = data[f.name]
        caster = type(f.default)
        if caster is bool and isinstance(raw, str):
            values[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            continue
        try:
            values[f.name] = caster(raw)
        except (TypeError, ValueError):
            logger.warning("[SETTINGS] Ignoring invalid value %r for %s.%s", raw, cls.__name__, f.name)
    return cls(**values)


@dataclass(frozen=True, slots=True)
class OrchestratorSettings:
    base_delay_ms: float = 1000.0
    stagger_ms: float = 2000.0
    jitter_max_ms: float = 1000.0
    max_delay_ms: float = 5000.0
    greeting_chance: float = 0.2
    max_bots_per_conversation: int = 3
    conversation_timeout_ms: float = 30_000.0
    respond_to_personas: bool = False

    @classmethod
    def from_mapping(cls, data: Dict[str, Any] | None) -> "OrchestratorSettings":
        return _from_mapping(cls, data)


@dataclass(frozen=True, slots=True)
class ModerationSettings:
    max_messages: int = 10
    ttl_seconds: float = 600.0
    flush_interval_seconds: float = 30.0
    max_timeout_seconds: int = 60

    @classmethod
    def from_mapping(cls, data: Dict[str, Any] | None) -> "ModerationSettings":
        return _from_mapping(cls, data)


@dataclass(frozen=True, slots=True)
class ConcurrencySettings:
    global_concurrency: int = 5
    per_persona_concurrency: int = 1

    @classmethod
    def from_mapping(cls, data: Dict[str, Any] | None) -> "ConcurrencySettings":
        return _from_mapping(cls, data)


@dataclass(frozen=True, slots=True)
class StreamSettings:
    """Stream lifecycle tunables.

    ``assume_online`` skips status polling and treats the stream as live,
    which is how the bots are run during development.
    """

    poll_interval_seconds: float = 60.0
    assume_online: bool = False
    intro_stagger_ms: float = 3000.0

    @classmethod
    def from_mapping(cls, data: Dict[str, Any] | None) -> "StreamSettings":
        return _from_mapping(cls, data)
