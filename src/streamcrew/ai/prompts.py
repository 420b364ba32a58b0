"""Prompt construction for persona replies and violation classification."""

from __future__ import annotations

from typing import List, Sequence

from openai.types.chat import ChatCompletionMessageParam

from streamcrew.datatypes.chat_datatypes import ChatMessage
from streamcrew.datatypes.persona_datatypes import PersonaConfig

MAX_REASON_LENGTH = 100

PERSONA_INSTRUCTIONS = """You are {name}. Critical instructions:
- All messages you receive are formatted as "username: message content"
- When you see "@{name}" in a message, that user is talking directly TO YOU
- DO NOT write "{name}:" or "[{name}]:" or any username prefix in your responses
- Write ONLY your direct response, as if naturally speaking in chat
- Your messages are automatically sent from your {name} account
- Do NOT roleplay as other users or bots
- Respond naturally as yourself without any prefixes or identifiers"""

MODERATION_PROMPT = """You are {name}, a moderator in this live-stream chat.
Your task is to determine if any users have violated the channel rules.

The rules are:
{rules}

Return a JSON object with a key "violations" holding an array. Each entry has:
- user: The username of the violator, exactly as written before the colon
- reason: Brief reason for the timeout (max {max_reason} chars)
- duration: Timeout duration in seconds (1-{max_duration})

Return {{"violations": []}} when nobody broke a rule."""


def build_persona_system_prompt(persona: PersonaConfig) -> str:
    return f"{persona.system_prompt}\n\n{PERSONA_INSTRUCTIONS.format(name=persona.name)}"


def build_moderation_system_prompt(persona: PersonaConfig, rules: str, max_duration: int) -> str:
    return MODERATION_PROMPT.format(
        name=persona.name,
        rules=rules,
        max_reason=MAX_REASON_LENGTH,
        max_duration=max_duration,
    )


def build_reply_messages(
    persona: PersonaConfig,
    trigger_text: str,
    context: Sequence[ChatMessage] = (),
) -> List[ChatCompletionMessageParam]:
    """Build the chat transcript for a persona reply.

    Context lines written by the persona itself become ``assistant`` turns;
    everything else is a ``user`` turn prefixed with its author.
    """
    messages: List[ChatCompletionMessageParam] = [
        {"role": "system", "content": build_persona_system_prompt(persona)},
    ]
    for line in context:
        if line.is_authored_by(persona.name):
            messages.append({"role": "assistant", "content": line.text})
        else:
            messages.append({"role": "user", "content": line.format_line()})
    messages.append({"role": "user", "content": trigger_text})
    return messages


def build_moderation_messages(
    persona: PersonaConfig,
    batch: Sequence[ChatMessage],
    rules: str,
    max_duration: int,
) -> List[ChatCompletionMessageParam]:
    """Build the classification transcript, dropping the moderator's own lines."""
    messages: List[ChatCompletionMessageParam] = [
        {"role": "system", "content": build_moderation_system_prompt(persona, rules, max_duration)},
    ]
    for line in batch:
        if line.is_authored_by(persona.name):
            continue
        messages.append({"role": "user", "content": line.format_line()})
    return messages
