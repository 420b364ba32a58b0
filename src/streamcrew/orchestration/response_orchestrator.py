"""
Response decision engine.

Turns the classifier output for one message into an ordered list of
ScheduledResponse entries: explicit mentions first with staggered delays,
otherwise an occasional low-priority greeting reply from the persona that has
been quiet the longest.
"""

from __future__ import annotations

import random
from typing import Dict, Iterable, List, Sequence

from streamcrew.configuration.tuning_settings import OrchestratorSettings
from streamcrew.datatypes.chat_datatypes import ResponsePriority, ScheduledResponse
from streamcrew.util.logger import get_logger

logger = get_logger("response_orchestrator")

LOW_PRIORITY_DELAY_FACTOR = 0.8


class ResponseOrchestrator:
    """
    Decide which personas answer a message and after how long.

    Args:
        persona_names: Roster in priority order.
        settings: Orchestrator tunables.
        rng: Source of randomness; inject a seeded ``random.Random`` in tests.
    """

    def __init__(
        self,
        persona_names: Sequence[str],
        settings: OrchestratorSettings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._persona_names: List[str] = list(persona_names)
        self._settings = settings or OrchestratorSettings()
        self._rng = rng or random.Random()
        self._last_spoke: Dict[str, float] = {}

    @property
    def settings(self) -> OrchestratorSettings:
        return self._settings

    def record_spoke(self, persona_name: str, now: float) -> None:
        """Remember that ``persona_name`` sent a message at ``now``."""
        self._last_spoke[persona_name.lower()] = now

    def determine_responses(
        self,
        mentions: Sequence[str],
        is_greeting: bool,
        *,
        author: str | None = None,
    ) -> List[ScheduledResponse]:
        """Compute the scheduled replies for one message.

        Args:
            mentions: Mentioned personas, already ordered and de-duplicated by
                the classifier.
            is_greeting: Whether the message is a greeting.
            author: Message author; never selected by the greeting fallback.

        Returns:
            At most ``max_bots_per_conversation`` responses, no persona twice.
        """
        settings = self._settings
        responses: List[ScheduledResponse] = []
        seen: set[str] = set()
        author_key = author.lower() if author else None

        previous_delay: float | None = None
        for name in mentions:
            key = name.lower()
            if key in seen or key == author_key:
                continue
            seen.add(key)
            index = len(responses)
            delay = settings.base_delay_ms + index * settings.stagger_ms + self._jitter()
            if previous_delay is not None:
                delay = max(delay, previous_delay + settings.stagger_ms)
            previous_delay = delay
            responses.append(ScheduledResponse(name, delay, ResponsePriority.HIGH))

        if not responses and is_greeting and self._rng.random() < settings.greeting_chance:
            persona = self._select_quietest(exclude=author_key)
            if persona is not None:
                delay = settings.max_delay_ms * LOW_PRIORITY_DELAY_FACTOR + self._jitter()
                responses.append(ScheduledResponse(persona, delay, ResponsePriority.LOW))

        responses = responses[: max(settings.max_bots_per_conversation, 0)]
        if responses:
            logger.debug(
                "[ORCHESTRATOR] Scheduled %s",
                ", ".join(f"{r.persona_name}({r.priority}, {r.delay_ms:.0f}ms)" for r in responses),
            )
        return responses

    def _jitter(self) -> float:
        return self._rng.uniform(0.0, self._settings.jitter_max_ms)

    def _select_quietest(self, exclude: str | None) -> str | None:
        candidates = [name for name in self._persona_names if name.lower() != exclude]
        if not candidates:
            return None
        quietest = min(self._last_spoke.get(name.lower(), float("-inf")) for name in candidates)
        tied = [name for name in candidates if self._last_spoke.get(name.lower(), float("-inf")) == quietest]
        return self._rng.choice(tied)

    def candidates(self, exclude: Iterable[str] = ()) -> List[str]:
        """Return the roster without the given names (case-insensitive)."""
        excluded = {name.lower() for name in exclude}
        return [name for name in self._persona_names if name.lower() not in excluded]
