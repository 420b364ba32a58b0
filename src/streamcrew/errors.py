"""
Exception taxonomy for streamcrew.

Every failure raised by an external collaborator is translated into one of
these types at the collaborator boundary, so the orchestration and moderation
code can catch exactly one family at the smallest possible scope (a single
response task, a single violation, a single flush).
"""

from __future__ import annotations


class StreamcrewError(Exception):
    """Base class for all errors raised by streamcrew."""


class PersonaNotFound(StreamcrewError):
    """A persona name does not match any configured persona."""

    def __init__(self, persona_name: str) -> None:
        super().__init__(f"Persona '{persona_name}' is not configured")
        self.persona_name = persona_name


class CompletionCallFailed(StreamcrewError):
    """The completion service failed to produce a persona reply."""


class ClassifierError(StreamcrewError):
    """The violation classification call failed or returned an unusable payload."""


class UserResolutionFailed(StreamcrewError):
    """The platform could not resolve a username to a user id."""

    def __init__(self, username: str, detail: str = "user not found") -> None:
        super().__init__(f"Could not resolve user '{username}': {detail}")
        self.username = username


class TimeoutApiError(StreamcrewError):
    """The platform rejected or failed a timeout request."""
