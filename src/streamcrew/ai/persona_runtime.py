"""OpenAI-compatible completion service for persona replies and moderation.

Every persona carries its own model identifier; requests go through a single
AsyncOpenAI client pointed at the configured base URL (OpenRouter by default).
"""

from __future__ import annotations

from typing import List, Sequence

from openai import AsyncOpenAI
from openai.types.shared_params.response_format_json_schema import ResponseFormatJSONSchema

from streamcrew.ai import prompts
from streamcrew.ai.violation_parsing import build_violation_schema, parse_violations
from streamcrew.configuration.ai_settings import AISettings
from streamcrew.datatypes.chat_datatypes import ChatMessage
from streamcrew.datatypes.moderation_datatypes import Violation
from streamcrew.datatypes.persona_datatypes import PersonaConfig
from streamcrew.errors import ClassifierError, CompletionCallFailed
from streamcrew.util.logger import get_logger

logger = get_logger("persona_runtime")


class OpenRouterPersonaRuntime:
    """
    Generate persona replies and classify rule violations.

    Args:
        ai_settings: Base URL, API key and request limits.
        moderation_rules: Channel rules injected into the classification prompt.
        max_timeout_seconds: Upper bound advertised to the classifier.
        client: Optional pre-built client (tests pass a mock).
    """

    def __init__(
        self,
        ai_settings: AISettings,
        moderation_rules: str,
        max_timeout_seconds: int = 60,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._settings = ai_settings
        self._rules = moderation_rules
        self._max_timeout = max_timeout_seconds
        self._client = client or AsyncOpenAI(
            api_key=ai_settings.api_key,
            base_url=ai_settings.base_url,
            timeout=ai_settings.request_timeout_seconds,
        )
        logger.info("[PERSONA RUNTIME] Initialized with base_url=%s", ai_settings.base_url)

    async def generate_reply(
        self,
        persona: PersonaConfig,
        trigger_text: str,
        context: Sequence[ChatMessage] = (),
    ) -> str | None:
        messages = prompts.build_reply_messages(persona, trigger_text, context)
        try:
            response = await self._client.chat.completions.create(
                model=persona.model,
                messages=messages,
                temperature=persona.temperature,
                max_tokens=persona.max_tokens,
            )
        except Exception as exc:
            logger.error("[PERSONA RUNTIME] Reply request failed for %s: %s", persona.name, exc)
            raise CompletionCallFailed(f"Reply generation failed for {persona.name}: {exc}") from exc

        if not response.choices:
            return None
        text = (response.choices[0].message.content or "").strip()
        if not text:
            logger.debug("[PERSONA RUNTIME] %s returned an empty reply", persona.name)
            return None
        return self._strip_self_prefix(persona.name, text) or None

    async def classify_violations(
        self,
        persona: PersonaConfig,
        batch: Sequence[ChatMessage],
    ) -> List[Violation]:
        messages = prompts.build_moderation_messages(persona, batch, self._rules, self._max_timeout)
        if len(messages) == 1:
            # Only the system prompt: every line came from the moderator itself.
            return []

        response_format = ResponseFormatJSONSchema(
            type="json_schema",
            json_schema={
                "name": "moderation_response",
                "strict": True,
                "schema": build_violation_schema(self._max_timeout),
            },
        )
        try:
            response = await self._client.chat.completions.create(
                model=persona.model,
                messages=messages,
                response_format=response_format,
                max_tokens=self._settings.moderation_max_tokens,
            )
        except Exception as exc:
            logger.error("[PERSONA RUNTIME] Classification request failed for %s: %s", persona.name, exc)
            raise ClassifierError(f"Classification request failed: {exc}") from exc

        response_text = response.choices[0].message.content if response.choices else None
        if not response_text:
            raise ClassifierError("Classifier returned an empty response")

        violations = parse_violations(response_text, self._max_timeout)
        logger.info(
            "[RESULT] %s flagged %d violation(s) across %d message(s)",
            persona.name,
            len(violations),
            len(batch),
        )
        return violations

    @staticmethod
    def _strip_self_prefix(name: str, text: str) -> str:
        """Drop a leading "name:" or "[name]:" the model adds despite instructions."""
        lowered = text.lower()
        for prefix in (f"{name.lower()}:", f"[{name.lower()}]:"):
            if lowered.startswith(prefix):
                return text[len(prefix):].strip()
        return text
