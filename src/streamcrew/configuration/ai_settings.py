import os
from typing import Any, Dict

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class AISettings:
    """Helper exposing typed accessors for the completion service configuration.

    Secrets never live in the YAML file: ``api_key`` reads the environment
    variable named by ``api_key_env`` (``OPENROUTER_API_KEY`` by default).
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    @property
    def base_url(self) -> str:
        return str(self.data.get("base_url") or DEFAULT_BASE_URL)

    @property
    def api_key_env(self) -> str:
        return str(self.data.get("api_key_env") or "OPENROUTER_API_KEY")

    @property
    def api_key(self) -> str | None:
        return os.getenv(self.api_key_env) or None

    @property
    def request_timeout_seconds(self) -> float:
        return float(self.data.get("request_timeout_seconds", 30.0))

    @property
    def moderation_max_tokens(self) -> int:
        return int(self.data.get("moderation_max_tokens", 400))
