"""Utilities for parsing violation classification responses."""

from __future__ import annotations

import json
from typing import Any, Dict, List

import jsonschema
from jsonschema import ValidationError

from streamcrew.ai.prompts import MAX_REASON_LENGTH
from streamcrew.datatypes.moderation_datatypes import Violation
from streamcrew.errors import ClassifierError
from streamcrew.util.logger import get_logger

logger = get_logger("violation_parsing")


def build_violation_schema(max_duration: int) -> Dict[str, Any]:
    """JSON schema for the classifier's structured output."""
    return {
        "type": "object",
        "properties": {
            "violations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "user": {"type": "string", "minLength": 1},
                        "reason": {"type": "string"},
                        "duration": {"type": "integer", "minimum": 1, "maximum": max(int(max_duration), 1)},
                    },
                    "required": ["user", "reason", "duration"],
                    "additionalProperties": False,
                },
            },
        },
        "required": ["violations"],
        "additionalProperties": False,
    }


def _extract_json_payload(raw: str) -> Any:
    """Extract the JSON object from raw model text, tolerating code fences."""
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        return json.loads(text.strip())
    except json.JSONDecodeError as exc:
        logger.warning("[EXTRACT] Parsing failed: %s", exc)
        raise ClassifierError("Classifier returned invalid JSON") from exc


def parse_violations(response: str, max_duration: int) -> List[Violation]:
    """Parse a classifier response into Violation objects.

    Durations outside ``[1, max_duration]`` are accepted here; the evaluator
    clamps what it executes.

    Raises:
        ClassifierError: If the payload is not JSON or does not match the schema.
    """
    logger.debug("[PARSE] Parsing violation response (%d chars)", len(response))
    payload = _extract_json_payload(response)

    # Out-of-range durations are clamped later instead of failing the batch.
    schema = build_violation_schema(max_duration)
    duration_schema = schema["properties"]["violations"]["items"]["properties"]["duration"]
    duration_schema.pop("minimum", None)
    duration_schema.pop("maximum", None)
    try:
        jsonschema.validate(instance=payload, schema=schema)
    except ValidationError as exc:
        logger.error("[PARSE] Schema validation failed: %s", exc.message)
        raise ClassifierError(f"Classifier payload failed validation: {exc.message}") from exc

    violations: List[Violation] = []
    for item in payload["violations"]:
        violations.append(
            Violation(
                username=item["user"].strip().lstrip("@"),
                reason=item["reason"].strip()[:MAX_REASON_LENGTH],
                duration_seconds=int(item["duration"]),
            )
        )

    logger.debug("[PARSE] Parsed %d violation(s)", len(violations))
    return violations
