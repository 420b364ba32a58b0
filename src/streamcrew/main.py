"""
Streamcrew
==========

A crew of AI chat personas for a live-stream channel: personas answer
mentions and greetings with human-like pacing, and the moderator persona
reviews recent chat and times out rule-violating users.
"""

import os
import sys
from pathlib import Path

def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. STREAMCREW_HOME environment variable, if set.
    2. If running in a frozen/compiled context, the executable's directory.
    3. Otherwise the repository root (two levels above this package).
    """
    if env_home := os.getenv("STREAMCREW_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]

BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dotenv import load_dotenv

load_dotenv(dotenv_path=BASE_DIR / ".env")

from streamcrew.ai.persona_runtime import OpenRouterPersonaRuntime
from streamcrew.configuration.app_configuration import app_config
from streamcrew.database.moderation_log import ModerationLog
from streamcrew.platform.helix_client import HelixModerationClient
from streamcrew.platform.irc_transport import TwitchIrcTransport
from streamcrew.runtime import CrewRuntime
from streamcrew.services.channel_session import SessionSettings
from streamcrew.ui.console import ConsoleControl, console_session
from streamcrew.util.logger import get_logger, handle_exception


logger = get_logger("main")

MODERATION_LOG_RETENTION_DAYS = 30


def check_environment() -> bool:
    """Validate the configuration and secrets needed to start.

    Returns
    -------
    bool
        False when the crew cannot start; the reason is logged.
    """
    ok = True
    if not app_config.channel:
        logger.critical("No channel configured (set 'channel' in app_config.yml or TWITCH_CHANNEL_NAME).")
        ok = False
    if len(app_config.personas) == 0:
        logger.critical("No valid personas configured in app_config.yml.")
        ok = False
    ai_settings = app_config.ai_settings
    if not ai_settings.api_key:
        logger.critical("'%s' environment variable not set. Personas cannot talk.", ai_settings.api_key_env)
        ok = False
    twitch = app_config.twitch_settings
    if not twitch.client_id:
        logger.critical("'TWITCH_CLIENT_ID' environment variable not set. Cannot reach Twitch.")
        ok = False
    if not twitch.channel_id or not twitch.moderator_id:
        logger.warning("'TWITCH_CHANNEL_ID' or 'TWITCH_MODERATOR_ID' not set; timeouts and stream status will fail.")
    return ok


def build_runtime(moderation_log: ModerationLog | None) -> tuple[CrewRuntime, HelixModerationClient]:
    """Wire the crew runtime from the loaded configuration."""
    roster = app_config.personas
    twitch = app_config.twitch_settings
    moderation_settings = app_config.moderation_settings

    persona_runtime = OpenRouterPersonaRuntime(
        app_config.ai_settings,
        app_config.moderation_rules,
        moderation_settings.max_timeout_seconds,
    )
    moderator = roster.moderator
    helix_token = twitch.token_for(moderator.name if moderator else roster.names[0])
    helix = HelixModerationClient(twitch, helix_token)
    transport = TwitchIrcTransport(twitch, roster.names)

    runtime = CrewRuntime(
        roster=roster,
        persona_runtime=persona_runtime,
        transport=transport,
        moderation_api=helix,
        channel_ids={app_config.channel: twitch.channel_id},
        settings=SessionSettings(
            orchestrator=app_config.orchestrator_settings,
            moderation=moderation_settings,
            stream=app_config.stream_settings,
        ),
        concurrency=app_config.concurrency_settings,
        action_log=moderation_log,
    )
    return runtime, helix


async def open_moderation_log() -> ModerationLog | None:
    """Open the moderation action log; the crew runs without it on failure."""
    moderation_log = ModerationLog(app_config.database_path)
    if not await moderation_log.initialize():
        logger.warning("Moderation log unavailable; executed timeouts will not be recorded.")
        return None
    try:
        await moderation_log.cleanup_old_timeouts(MODERATION_LOG_RETENTION_DAYS)
    except Exception as exc:
        logger.warning("Moderation log cleanup failed: %s", exc)
    return moderation_log


async def shutdown_runtime(
    runtime: CrewRuntime,
    helix: HelixModerationClient,
    moderation_log: ModerationLog | None,
    *,
    graceful: bool,
) -> None:
    """Stop the crew, then close the Helix session and the moderation log."""
    try:
        await runtime.stop(graceful=graceful)
    except Exception as exc:
        logger.exception("Error during crew shutdown: %s", exc)

    try:
        await helix.close()
    except Exception as exc:
        logger.exception("Error closing Helix session: %s", exc)

    if moderation_log is not None:
        try:
            await moderation_log.shutdown()
        except Exception as exc:
            logger.exception("Error during moderation log shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def run_crew_session(
    runtime: CrewRuntime,
    helix: HelixModerationClient,
    moderation_log: ModerationLog | None,
    control: ConsoleControl,
) -> int:
    """Run the crew alongside the console until shutdown, returning an exit code."""
    control.attach(runtime, moderation_log)
    exit_code = 0

    try:
        async with console_session(control):
            try:
                await runtime.start(app_config.channel)
                await control.shutdown_event.wait()
            except asyncio.CancelledError:
                logger.info("Crew session cancelled; proceeding to shutdown")
            except Exception as exc:
                logger.critical("Crew runtime error: %s", exc)
                exit_code = 1
    finally:
        await shutdown_runtime(runtime, helix, moderation_log, graceful=control.graceful)

    return exit_code


async def async_main() -> int:
    """Bootstrap the crew and console, returning an exit code."""
    if not check_environment():
        return 1

    moderation_log = await open_moderation_log()

    try:
        runtime, helix = build_runtime(moderation_log)
    except Exception as exc:
        logger.critical("Failed to initialize the crew: %s", exc)
        if moderation_log is not None:
            await moderation_log.shutdown()
        return 1

    control = ConsoleControl(app_config.channel)
    return await run_crew_session(runtime, helix, moderation_log, control)


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    sys.excepthook = handle_exception
    logger.info("Starting Streamcrew…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        if code is None:
            return 1
        try:
            return int(code)
        except (ValueError, TypeError):
            logger.warning("SystemExit.code is not an int (%r); defaulting to 1", code)
            return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the crew: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
