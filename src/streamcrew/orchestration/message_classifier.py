"""Mention and greeting detection for inbound chat text."""

from __future__ import annotations

import re
from typing import Iterable, List

from streamcrew.datatypes.chat_datatypes import MessageClassification

GREETING_LEXICON = (
    "hey",
    "hi",
    "hello",
    "sup",
    "yo",
    "what's up",
    "whats up",
    "howdy",
    "greetings",
)

_GREETING_PATTERN = re.compile(
    r"(?<![\w'])(?:" + "|".join(re.escape(token) for token in GREETING_LEXICON) + r")(?![\w'])"
)


def is_greeting(text: str) -> bool:
    """Return True when ``text`` contains a greeting token as a whole word."""
    return _GREETING_PATTERN.search(text.lower()) is not None


def find_mentions(text: str, active_persona_names: Iterable[str]) -> List[str]:
    """Return the personas mentioned with ``@name`` in ``text``.

    Order follows ``active_persona_names``, not the order of appearance in the
    text, and each persona appears at most once.
    """
    lowered = text.lower()
    seen: set[str] = set()
    mentions: List[str] = []
    for name in active_persona_names:
        key = name.lower()
        if key in seen:
            continue
        if f"@{key}" in lowered:
            seen.add(key)
            mentions.append(name)
    return mentions


def classify(text: str, active_persona_names: Iterable[str]) -> MessageClassification:
    """Classify one chat message.

    Args:
        text: Raw message text.
        active_persona_names: Personas that may be mentioned, in priority order.
            The message author must already be removed from this list.

    Returns:
        MessageClassification with the ordered unique mentions and the greeting flag.
    """
    return MessageClassification(
        mentions=tuple(find_mentions(text, active_persona_names)),
        is_greeting=is_greeting(text),
    )
