from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict, List
import yaml

from streamcrew.configuration.ai_settings import AISettings
from streamcrew.configuration.twitch_settings import TwitchSettings
from streamcrew.configuration.tuning_settings import (
    ConcurrencySettings,
    ModerationSettings,
    OrchestratorSettings,
    StreamSettings,
)
from streamcrew.datatypes.persona_datatypes import PersonaConfig, PersonaRoster
from streamcrew.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("STREAMCREW_CONFIG", "./config/app_config.yml")).resolve()

DEFAULT_MODERATION_RULES = "Be respectful. No spam, no hate speech, no harassment."


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes
    dictionary-like access helpers, and builds the typed settings objects used
    by the runtime (persona roster and tunables). Uses fcntl file locks for
    safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def channel(self) -> str:
        """Login name of the channel the personas live in (lower-case, no ``#``)."""
        value = self._data.get("channel") or os.getenv("TWITCH_CHANNEL_NAME", "")
        return str(value).strip().lstrip("#").lower()

    @property
    def personas(self) -> PersonaRoster:
        """Return the configured persona roster.

        Invalid persona entries are logged and skipped so one typo does not
        keep the rest of the crew offline.
        """
        raw = self._data.get("personas", [])
        entries: List[Dict[str, Any]] = []
        if isinstance(raw, dict):
            # Mapping form: {name: {...}}
            for name, body in raw.items():
                if isinstance(body, dict):
                    entries.append({"name": name, **body})
        elif isinstance(raw, list):
            entries = [item for item in raw if isinstance(item, dict)]

        personas: List[PersonaConfig] = []
        seen: set[str] = set()
        for entry in entries:
            try:
                persona = PersonaConfig.from_mapping(entry)
            except (TypeError, ValueError) as exc:
                logger.error("[APP CONFIGURATION] Skipping invalid persona %r: %s", entry.get("name"), exc)
                continue
            if persona.name.lower() in seen:
                logger.error("[APP CONFIGURATION] Skipping duplicate persona %r", persona.name)
                continue
            seen.add(persona.name.lower())
            personas.append(persona)
        return PersonaRoster(personas)

    @property
    def moderation_rules(self) -> str:
        """Return the channel rules injected into the moderation prompt."""
        value = self._section("moderation").get("rules") or DEFAULT_MODERATION_RULES
        return str(value).strip()

    @property
    def ai_settings(self) -> AISettings:
        return AISettings(self._section("ai_settings"))

    @property
    def twitch_settings(self) -> TwitchSettings:
        return TwitchSettings(self._section("twitch"))

    @property
    def orchestrator_settings(self) -> OrchestratorSettings:
        return OrchestratorSettings.from_mapping(self._section("orchestrator"))

    @property
    def moderation_settings(self) -> ModerationSettings:
        return ModerationSettings.from_mapping(self._section("moderation"))

    @property
    def concurrency_settings(self) -> ConcurrencySettings:
        return ConcurrencySettings.from_mapping(self._section("concurrency"))

    @property
    def stream_settings(self) -> StreamSettings:
        return StreamSettings.from_mapping(self._section("stream"))

    @property
    def database_path(self) -> Path:
        """Location of the SQLite moderation action log."""
        value = self._section("database").get("path") or "./data/streamcrew.db"
        return Path(str(value)).resolve()


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
