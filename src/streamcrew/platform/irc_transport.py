"""
Twitch chat transport over the IRC WebSocket endpoint.

Each persona chats through its own account, so the transport keeps one
WebSocket connection per persona. Only the first persona's connection
requests message tags and dispatches inbound ``PRIVMSG`` lines; the others
only answer ``PING`` and send. Dropped connections are re-established with a
capped exponential backoff.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import aiohttp

from streamcrew.configuration.twitch_settings import TwitchSettings
from streamcrew.datatypes.chat_datatypes import ChatRole
from streamcrew.errors import PersonaNotFound
from streamcrew.platform.interfaces import InboundHandler
from streamcrew.util.logger import get_logger

logger = get_logger("irc_transport")

MAX_MESSAGE_LENGTH = 500
RECONNECT_BASE_SECONDS = 1.0
RECONNECT_MAX_SECONDS = 60.0

_TAG_ESCAPES = {":": ";", "s": " ", "\\": "\\", "r": "\r", "n": "\n"}


@dataclass(frozen=True, slots=True)
class IrcMessage:
    """One parsed IRC line."""

    command: str
    params: List[str] = field(default_factory=list)
    prefix: str = ""
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def nick(self) -> str:
        return self.prefix.split("!", 1)[0]

    @property
    def trailing(self) -> str:
        return self.params[-1] if self.params else ""


def _unescape_tag(value: str) -> str:
    out: List[str] = []
    chars = iter(value)
    for char in chars:
        if char == "\\":
            nxt = next(chars, "")
            out.append(_TAG_ESCAPES.get(nxt, nxt))
        else:
            out.append(char)
    return "".join(out)


def parse_irc_line(line: str) -> IrcMessage | None:
    """Parse a raw IRC line (IRCv3 tags included). Returns None for blank lines."""
    line = line.rstrip("\r\n")
    if not line:
        return None

    tags: Dict[str, str] = {}
    if line.startswith("@"):
        raw_tags, _, line = line[1:].partition(" ")
        for item in raw_tags.split(";"):
            key, _, value = item.partition("=")
            tags[key] = _unescape_tag(value)

    prefix = ""
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")

    trailing = None
    if " :" in line:
        line, trailing = line.split(" :", 1)
    elif line.startswith(":"):
        line, trailing = "", line[1:]

    parts = line.split()
    if not parts:
        return None
    params = parts[1:]
    if trailing is not None:
        params.append(trailing)
    return IrcMessage(command=parts[0].upper(), params=params, prefix=prefix, tags=tags)


def role_from_badges(badges: str) -> ChatRole:
    """Map a Twitch ``badges`` tag (``broadcaster/1,subscriber/12``) to a chat role."""
    names = {badge.split("/", 1)[0] for badge in badges.split(",") if badge}
    if "broadcaster" in names:
        return ChatRole.BROADCASTER
    if "moderator" in names:
        return ChatRole.MODERATOR
    return ChatRole.USER


class _PersonaConnection:
    """A single persona's WebSocket session and its read loop."""

    def __init__(
        self,
        transport: "TwitchIrcTransport",
        persona_name: str,
        token: str,
        *,
        listen: bool,
    ) -> None:
        self.transport = transport
        self.persona_name = persona_name
        self.nick = persona_name.lower()
        self.token = token
        self.listen = listen
        self.ws: aiohttp.ClientWebSocketResponse | None = None
        self.task: asyncio.Task[None] | None = None

    async def run(self, channel: str) -> None:
        delay = RECONNECT_BASE_SECONDS
        while True:
            try:
                await self._session(channel)
                delay = RECONNECT_BASE_SECONDS
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[IRC] Connection for %s failed: %s", self.persona_name, exc)
            finally:
                self.ws = None
            logger.info("[IRC] Reconnecting %s in %.0fs", self.persona_name, delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, RECONNECT_MAX_SECONDS)

    async def _session(self, channel: str) -> None:
        session = self.transport._get_session()
        async with session.ws_connect(self.transport.settings.irc_url, heartbeat=None) as ws:
            self.ws = ws
            if self.listen:
                await ws.send_str("CAP REQ :twitch.tv/tags twitch.tv/commands")
            await ws.send_str(f"PASS oauth:{self.token}")
            await ws.send_str(f"NICK {self.nick}")
            await ws.send_str(f"JOIN #{channel}")
            logger.info("[IRC] %s joined #%s%s", self.persona_name, channel, " (listening)" if self.listen else "")

            async for frame in ws:
                if frame.type == aiohttp.WSMsgType.TEXT:
                    for line in frame.data.split("\r\n"):
                        await self._handle_line(line)
                elif frame.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
        logger.warning("[IRC] Connection for %s closed", self.persona_name)

    async def _handle_line(self, line: str) -> None:
        message = parse_irc_line(line)
        if message is None:
            return
        if message.command == "PING":
            if self.ws is not None:
                await self.ws.send_str(f"PONG :{message.trailing}")
            return
        if message.command == "RECONNECT":
            logger.info("[IRC] Server requested reconnect for %s", self.persona_name)
            if self.ws is not None:
                await self.ws.close()
            return
        if message.command == "NOTICE" and "authentication failed" in message.trailing.lower():
            logger.error("[IRC] Authentication failed for %s", self.persona_name)
            return
        if self.listen and message.command == "PRIVMSG" and len(message.params) >= 2:
            self.transport._dispatch(message)


class TwitchIrcTransport:
    """Chat transport with one Twitch IRC connection per persona.

    Personas without a ``TWITCH_TOKEN_<NAME>`` are skipped with an error log;
    the first persona that has a token becomes the listener.
    """

    def __init__(
        self,
        settings: TwitchSettings,
        persona_names: Sequence[str],
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.settings = settings
        self._persona_names = list(persona_names)
        self._session = session
        self._owns_session = session is None
        self._handler: InboundHandler | None = None
        self._connections: Dict[str, _PersonaConnection] = {}

    def set_message_handler(self, handler: InboundHandler) -> None:
        self._handler = handler

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def connect(self, channel: str) -> None:
        channel = channel.lstrip("#").lower()
        listener_assigned = False
        for name in self._persona_names:
            token = self.settings.token_for(name)
            if not token:
                logger.error("[IRC] No token for %s (set %s); persona cannot chat", name, self.settings.token_env_name(name))
                continue
            connection = _PersonaConnection(self, name, token, listen=not listener_assigned)
            listener_assigned = True
            connection.task = asyncio.create_task(connection.run(channel), name=f"irc-{name.lower()}")
            self._connections[name.lower()] = connection

        if not self._connections:
            logger.error("[IRC] No persona could connect to #%s", channel)

    async def send(self, persona_name: str, channel: str, text: str) -> None:
        connection = self._connections.get(persona_name.lower())
        if connection is None:
            raise PersonaNotFound(persona_name)
        if connection.ws is None or connection.ws.closed:
            logger.warning("[IRC] %s is not connected; dropping message", persona_name)
            return
        line = " ".join(text.split())[:MAX_MESSAGE_LENGTH]
        if not line:
            return
        await connection.ws.send_str(f"PRIVMSG #{channel.lstrip('#').lower()} :{line}")

    async def close(self) -> None:
        tasks = [conn.task for conn in self._connections.values() if conn.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._connections.clear()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("[IRC] Transport closed")

    def _dispatch(self, message: IrcMessage) -> None:
        if self._handler is None:
            return
        channel = message.params[0].lstrip("#")
        # Login name; display names can be localized and Helix resolves logins.
        username = message.nick
        role = role_from_badges(message.tags.get("badges", ""))
        try:
            self._handler(channel, username, message.trailing, role)
        except Exception:
            logger.exception("[IRC] Inbound handler failed for message from %s", username)
