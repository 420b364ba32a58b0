import pytest

from streamcrew.configuration.tuning_settings import (
    ConcurrencySettings,
    ModerationSettings,
    OrchestratorSettings,
    StreamSettings,
)


def test_defaults_match_production_values():
    orchestrator = OrchestratorSettings()
    assert orchestrator.base_delay_ms == 1000.0
    assert orchestrator.stagger_ms == 2000.0
    assert orchestrator.max_delay_ms == 5000.0
    assert orchestrator.max_bots_per_conversation == 3
    assert orchestrator.conversation_timeout_ms == 30_000.0

    moderation = ModerationSettings()
    assert moderation.max_messages == 10
    assert moderation.ttl_seconds == 600.0
    assert moderation.max_timeout_seconds == 60


def test_from_mapping_ignores_missing_and_none():
    settings = ModerationSettings.from_mapping({"max_messages": None, "ttl_seconds": 30})
    assert settings.max_messages == 10
    assert settings.ttl_seconds == pytest.approx(30.0)


def test_from_mapping_ignores_invalid_values():
    settings = ConcurrencySettings.from_mapping({"global_concurrency": "lots", "per_persona_concurrency": "2"})
    assert settings.global_concurrency == 5
    assert settings.per_persona_concurrency == 2


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("true", True), ("Yes", True), ("on", True), ("1", True), ("false", False), ("nope", False), (True, True)],
)
def test_bool_values_accept_strings(raw, expected):
    assert StreamSettings.from_mapping({"assume_online": raw}).assume_online is expected


def test_from_mapping_accepts_non_dict():
    assert OrchestratorSettings.from_mapping(None) == OrchestratorSettings()
    assert OrchestratorSettings.from_mapping(["nope"]) == OrchestratorSettings()
