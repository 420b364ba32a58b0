import os
import re
from typing import Any, Dict

DEFAULT_HELIX_URL = "https://api.twitch.tv/helix"
DEFAULT_IRC_URL = "wss://irc-ws.chat.twitch.tv:443"


class TwitchSettings:
    """Typed accessors for the Twitch platform configuration.

    Ids and OAuth tokens are read from the environment. Each persona chats
    with its own account token, ``TWITCH_TOKEN_<NAME>`` with the persona name
    upper-cased and non-alphanumerics replaced by underscores.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    @property
    def helix_url(self) -> str:
        return str(self.data.get("helix_url") or DEFAULT_HELIX_URL).rstrip("/")

    @property
    def irc_url(self) -> str:
        return str(self.data.get("irc_url") or DEFAULT_IRC_URL)

    @property
    def request_timeout_seconds(self) -> float:
        return float(self.data.get("request_timeout_seconds", 10.0))

    @property
    def client_id(self) -> str:
        return os.getenv("TWITCH_CLIENT_ID", "")

    @property
    def channel_id(self) -> str:
        return os.getenv("TWITCH_CHANNEL_ID", "")

    @property
    def moderator_id(self) -> str:
        return os.getenv("TWITCH_MODERATOR_ID", "")

    @staticmethod
    def token_env_name(persona_name: str) -> str:
        return "TWITCH_TOKEN_" + re.sub(r"[^A-Za-z0-9]", "_", persona_name).upper()

    def token_for(self, persona_name: str) -> str:
        """Return the OAuth token of ``persona_name`` without any ``oauth:`` prefix."""
        token = os.getenv(self.token_env_name(persona_name), "")
        return token.removeprefix("oauth:")
