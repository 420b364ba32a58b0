"""
Persona configuration as consumed by the orchestration core.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from streamcrew.errors import PersonaNotFound

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 150


@dataclass(frozen=True, slots=True)
class PersonaConfig:
    """Read-only configuration of one chat persona.

    Attributes:
        name: Chat login of the persona; also the ``@name`` it answers to.
        model: Completion model identifier (OpenRouter style, e.g. ``openai/gpt-4o-mini``).
        system_prompt: Personality prompt.
        temperature: Sampling temperature, 0 to 2.
        max_tokens: Completion token cap.
        is_moderator: Whether this persona runs the moderation evaluator.
        intro_message: Line posted when the stream goes online, if any.
    """

    name: str
    model: str
    system_prompt: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    is_moderator: bool = False
    intro_message: str | None = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "PersonaConfig":
        """Build a PersonaConfig from a YAML mapping.

        Raises:
            ValueError: If the name, model or system prompt is missing, or a
                numeric field is out of range.
        """
        name = str(data.get("name") or "").strip()
        model = str(data.get("model") or "").strip()
        system_prompt = str(data.get("system_prompt") or "").strip()
        if not name:
            raise ValueError("Persona name cannot be empty")
        if not model:
            raise ValueError(f"Persona '{name}' has no model")
        if not system_prompt:
            raise ValueError(f"Persona '{name}' has no system prompt")

        temperature = float(data.get("temperature", DEFAULT_TEMPERATURE))
        if not 0.0 <= temperature <= 2.0:
            raise ValueError(f"Persona '{name}' temperature must be between 0 and 2")
        max_tokens = int(data.get("max_tokens", DEFAULT_MAX_TOKENS))
        if not 0 < max_tokens <= 4000:
            raise ValueError(f"Persona '{name}' max_tokens must be between 1 and 4000")

        intro = data.get("intro_message")
        return cls(
            name=name,
            model=model,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            is_moderator=bool(data.get("is_moderator", False)),
            intro_message=str(intro) if intro else None,
        )


class PersonaRoster:
    """Ordered, case-insensitive lookup over the configured personas."""

    def __init__(self, personas: Iterable[PersonaConfig]) -> None:
        self._personas: Dict[str, PersonaConfig] = {}
        for persona in personas:
            key = persona.name.lower()
            if key in self._personas:
                raise ValueError(f"Duplicate persona name '{persona.name}'")
            self._personas[key] = persona

    def __iter__(self):
        return iter(self._personas.values())

    def __len__(self) -> int:
        return len(self._personas)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._personas

    @property
    def names(self) -> List[str]:
        return [persona.name for persona in self._personas.values()]

    def get(self, name: str) -> PersonaConfig:
        """Return the persona called ``name``.

        Raises:
            PersonaNotFound: If no persona has that name.
        """
        persona = self._personas.get(name.lower())
        if persona is None:
            raise PersonaNotFound(name)
        return persona

    @property
    def moderator(self) -> PersonaConfig | None:
        """The first persona flagged ``is_moderator``, if any."""
        for persona in self._personas.values():
            if persona.is_moderator:
                return persona
        return None
