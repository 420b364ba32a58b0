"""Interactive operator console for the running persona crew.

Every command handler receives the raw text after the command word, so chat
lines injected with ``chat`` or sent with ``say`` keep their exact spacing
and punctuation.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from prompt_toolkit import print_formatted_text
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import PromptSession, clear

from streamcrew.database.moderation_log import ModerationLog
from streamcrew.datatypes.chat_datatypes import ChatRole
from streamcrew.errors import PersonaNotFound
from streamcrew.runtime import CrewRuntime
from streamcrew.util.logger import get_logger

logger = get_logger("console")

HEADER_WIDTH = 48
DEFAULT_TIMEOUT_LISTING = 10

CommandHandler = Callable[["ConsoleControl", str], Awaitable[None]]


def header_lines(title: str) -> list[str]:
    """Title centred in a horizontal rule, plus a closing rule."""
    label = f" {title} "
    return [label.center(HEADER_WIDTH, "─"), "─" * HEADER_WIDTH]


def console_print(message: str, style: str = "") -> None:
    """Print above the active prompt, optionally styled."""
    print_formatted_text(FormattedText([(style, message)]) if style else message)


def print_header(title: str, style: str = "ansicyan") -> None:
    top, _ = header_lines(title)
    console_print(top, style)


@dataclass
class Command:
    name: str
    handler: CommandHandler
    aliases: tuple[str, ...] = ()
    usage: str = ""
    description: str = field(init=False)

    def __post_init__(self) -> None:
        doc = (self.handler.__doc__ or "").strip()
        self.description = doc.splitlines()[0] if doc else ""

    @property
    def words(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)


COMMANDS: dict[str, Command] = {}


def command(name: str, *aliases: str, usage: str = "") -> Callable[[CommandHandler], CommandHandler]:
    """Register a console command under ``name`` and its aliases."""

    def register(handler: CommandHandler) -> CommandHandler:
        cmd = Command(name, handler, aliases, usage)
        for word in cmd.words:
            COMMANDS[word] = cmd
        return handler

    return register


def unique_commands() -> list[Command]:
    seen: list[Command] = []
    for cmd in COMMANDS.values():
        if cmd not in seen:
            seen.append(cmd)
    return seen


class ConsoleControl:
    """Console-side handle on the running crew and its shutdown request."""

    def __init__(self, channel: str = "") -> None:
        self.channel = channel
        self.graceful = True
        self.runtime: CrewRuntime | None = None
        self.moderation_log: ModerationLog | None = None
        self._shutdown = asyncio.Event()

    @property
    def shutdown_event(self) -> asyncio.Event:
        return self._shutdown

    def attach(self, runtime: CrewRuntime, moderation_log: ModerationLog | None = None) -> None:
        self.runtime = runtime
        self.moderation_log = moderation_log

    def request_shutdown(self, graceful: bool = True) -> None:
        self.graceful = graceful
        self._shutdown.set()

    def is_shutdown_requested(self) -> bool:
        return self._shutdown.is_set()


# ==================== Commands ====================

@command("help", "h", "?")
async def cmd_help(control: ConsoleControl, args: str) -> None:
    """List the console commands."""
    print_header("Commands", "ansigreen")
    for cmd in unique_commands():
        aliases = f"  ({', '.join(cmd.aliases)})" if cmd.aliases else ""
        console_print(f"  {cmd.usage or cmd.name}{aliases}", "ansicyan")
        console_print(f"      {cmd.description}")


@command("status", "stat", "info")
async def cmd_status(control: ConsoleControl, args: str) -> None:
    """Show stream state, channel sessions and governor queues."""
    if control.runtime is None:
        console_print("Crew is not running.", "ansiyellow")
        return

    status = control.runtime.status()
    print_header("Crew Status", "ansiblue")
    console_print(f"  Stream      {'LIVE' if status['live'] else 'offline'}")
    console_print(f"  Personas    {', '.join(control.runtime.roster.names)}")

    governor = status["governor"]
    console_print(f"  Governor    {governor['global']['running']} running / {governor['global']['queued']} queued")
    for persona, counts in governor["personas"].items():
        console_print(f"    {persona:<10} {counts['running']} running / {counts['queued']} queued", "ansibrightblack")

    for session in status["sessions"]:
        channel = session["channel"]
        moderation = status["moderation"].get(channel)
        console_print(f"  #{channel}", "ansicyan")
        console_print(
            f"    seen {session['messages_seen']}, replied {session['replies_sent']}, "
            f"window {session['window']}, conversation {'active' if session['conversation_active'] else 'idle'}"
        )
        if moderation is not None:
            console_print(
                f"    moderation {'running' if moderation else 'paused'}, "
                f"{session['moderation_queue']} queued for review"
            )


@command("chat", "inject", usage="chat <username> <message>")
async def cmd_chat(control: ConsoleControl, args: str) -> None:
    """Inject a chat line into the channel as if a viewer sent it."""
    username, _, text = args.strip().partition(" ")
    if control.runtime is None or not text.strip():
        console_print("Usage: chat <username> <message>", "ansiyellow")
        return
    control.runtime.handle_inbound(control.channel, username, text.strip(), ChatRole.USER)
    console_print(f"{username}: {text.strip()}", "ansibrightblack")


@command("say", usage="say <persona> <message>")
async def cmd_say(control: ConsoleControl, args: str) -> None:
    """Send a message as a persona right away."""
    persona, _, text = args.strip().partition(" ")
    if control.runtime is None or not text.strip():
        console_print("Usage: say <persona> <message>", "ansiyellow")
        return
    try:
        await control.runtime.session_for(control.channel).say(persona, text.strip())
    except PersonaNotFound as exc:
        console_print(str(exc), "ansired")


@command("timeouts", "mod", usage="timeouts [limit]")
async def cmd_timeouts(control: ConsoleControl, args: str) -> None:
    """Show the latest timeouts from the moderation log."""
    if control.moderation_log is None:
        console_print("Moderation log is not available.", "ansiyellow")
        return
    limit = int(args) if args.strip().isdigit() else DEFAULT_TIMEOUT_LISTING
    records = await control.moderation_log.recent_timeouts(control.channel, limit)
    if not records:
        console_print("No timeouts recorded.", "ansibrightblack")
        return

    print_header(f"Recent Timeouts ({len(records)})", "ansiblue")
    for record in records:
        console_print(
            f"  {record.created_at:%Y-%m-%d %H:%M} {record.username} "
            f"{record.duration_seconds}s by {record.moderator}: {record.reason}"
        )


@command("clear", "cls")
async def cmd_clear(control: ConsoleControl, args: str) -> None:
    """Clear the screen."""
    clear()


@command("shutdown", "stop", "quit", "exit", usage="shutdown [--force]")
async def cmd_shutdown(control: ConsoleControl, args: str) -> None:
    """Stop the crew; running replies finish unless --force drops them."""
    force = "--force" in args.split()
    console_print("Forced shutdown requested." if force else "Shutdown requested.", "ansiyellow")
    control.request_shutdown(graceful=not force)


# ==================== Dispatcher ====================

async def handle_console_command(line: str, control: ConsoleControl) -> None:
    """Run one console line."""
    word, _, args = line.strip().partition(" ")
    if not word:
        return

    cmd = COMMANDS.get(word.lower())
    if cmd is None:
        console_print(f"Unknown command '{word}'. Type 'help' for the list.", "ansired")
        return

    try:
        await cmd.handler(control, args)
    except Exception as exc:
        logger.exception("[CONSOLE] Command '%s' failed: %s", cmd.name, exc)
        console_print(f"Error executing command: {exc}", "ansired")


async def run_console(control: ConsoleControl) -> None:
    """Read commands until shutdown is requested or input ends."""
    session: PromptSession[str] = PromptSession(
        f"#{control.channel}> " if control.channel else "> ",
        history=InMemoryHistory(),
        completer=WordCompleter(sorted(COMMANDS), ignore_case=True),
    )
    print_header("Streamcrew Console", "ansigreen")
    console_print("Type 'help' for commands, 'exit' to stop the crew.", "ansibrightblack")

    with patch_stdout():
        while not control.is_shutdown_requested():
            try:
                line = await session.prompt_async()
            except (EOFError, KeyboardInterrupt):
                console_print("Shutdown requested from the keyboard.", "ansiyellow")
                control.request_shutdown()
                return
            await handle_console_command(line, control)


@asynccontextmanager
async def console_session(control: ConsoleControl) -> AsyncIterator[ConsoleControl]:
    """Keep the console running for the duration of the block."""
    task = asyncio.create_task(run_console(control), name="console")
    try:
        yield control
    finally:
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("[CONSOLE] Console task failed")
