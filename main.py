#!/usr/bin/env python3
"""
HouseBot - Discord notifications for Twitch streams going live/offline

Polls Twitch Helix for the channels registered from Discord
(`housebot channel add <name>`) and announces state changes in the
subscribed Discord channels.
"""

import argparse
import asyncio
import copy
import logging
import os
import pathlib
import signal
import sys
from typing import Any, Dict, Mapping, Optional

import yaml

from core.context import BotContext
from core.errors import HouseBotError, InvalidCredential
from core.notification_dispatcher import NotificationDispatcher
from core.session import Session
from core.snapshot_store import SnapshotStore
from core.stream_announcer import StreamAnnouncer
from discordapi.client import HouseBot
from discordapi.transport import DiscordChatSink
from twitchapi.monitors.stream_monitor import LiveStateMonitor

# Logger will be configured in setup_logging()
LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "bot": {
        "prefix": "housebot",
        "session_name": "session1",
    },
    "twitch": {
        "poll_interval": 60,
        "state_change_time": 180,
        "helix_timeout": 8.0,
        "auth_retries": 3,
        "auth_retry_delay": 5,
    },
    "storage": {
        "data_path": "data",
    },
    "notifications": {
        "max_in_flight": 10,
        "shutdown_timeout": 10,
    },
    "announcements": {
        "stream_online": {"message": ""},
        "stream_offline": {"message": "{display_name} is now offline!"},
    },
    "logging": {
        "level": "INFO",
        "dir": "logs",
    },
}


def parse_args(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(description="HouseBot - Twitch stream notifications for Discord")
    parser.add_argument(
        '-t',
        dest='token',
        type=str,
        default='',
        help='Discord bot token'
    )
    parser.add_argument(
        '-p',
        dest='token_path',
        type=str,
        default='',
        help='Path to a file containing the Discord bot token'
    )
    parser.add_argument(
        '--config',
        type=str,
        default='config/config.yaml',
        help='Path to config file (default: config/config.yaml)'
    )
    return parser.parse_args(argv)


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path='config/config.yaml') -> Dict[str, Any]:
    """Load config.yaml over the defaults"""
    config_file = pathlib.Path(config_path)
    if not config_file.exists():
        LOGGER.warning(f"Config file {config_path} not found, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)
    with open(config_file, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Config file {config_path} must contain a mapping")
    return _merge(DEFAULT_CONFIG, data)


def setup_logging(config: Mapping[str, Any]) -> pathlib.Path:
    """Root logger: logs/housebot.log + console"""
    log_cfg = config.get("logging", {})
    logs_base = pathlib.Path(log_cfg.get("dir", "logs"))
    logs_base.mkdir(parents=True, exist_ok=True)
    log_file = logs_base / "housebot.log"

    logging.basicConfig(
        level=getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ],
        force=True  # Override any existing config
    )
    # discord.py is chatty at INFO
    logging.getLogger("discord").setLevel(logging.WARNING)
    return log_file


def resolve_bot_token(args, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Discord token lookup: -t flag, then -p file, then BOT_TOKEN.

    Raises:
        InvalidCredential: no token found or the token file is unreadable
    """
    environ = os.environ if environ is None else environ

    if args.token:
        return args.token.strip()

    if args.token_path:
        try:
            token = pathlib.Path(args.token_path).read_text(encoding='utf-8').strip()
        except OSError as e:
            raise InvalidCredential(f"Could not read token file {args.token_path}: {e}") from e
        if token:
            return token

    token = environ.get("BOT_TOKEN", "").strip()
    if token:
        return token

    raise InvalidCredential("No Discord bot token provided (-t, -p or BOT_TOKEN)")


async def open_session(config: Mapping[str, Any], context: BotContext) -> Optional[Session]:
    """Create the Twitch session, None (monitoring disabled) on failure"""
    twitch_cfg = config["twitch"]
    store = SnapshotStore(config["storage"]["data_path"])
    try:
        return await Session.open(
            os.environ.get("TWITCH_CLIENT_ID", ""),
            os.environ.get("TWITCH_CLIENT_SECRET", ""),
            config["bot"]["session_name"],
            store,
            context,
            helix_timeout=float(twitch_cfg["helix_timeout"]),
            auth_retries=int(twitch_cfg["auth_retries"]),
            auth_retry_delay=float(twitch_cfg["auth_retry_delay"]),
        )
    except HouseBotError as e:
        LOGGER.error(f"❌ Error creating twitch session: {e}")
        return None


async def main(argv=None):
    args = parse_args(argv)
    config = load_config(args.config)
    log_file = setup_logging(config)
    LOGGER.info(f"📝 Logging to {log_file}")

    try:
        token = resolve_bot_token(args)
    except InvalidCredential as e:
        LOGGER.error(f"❌ {e}")
        sys.exit(1)

    context = BotContext()
    session = await open_session(config, context)
    dispatcher = NotificationDispatcher(max_in_flight=int(config["notifications"]["max_in_flight"]))
    announcer = StreamAnnouncer(config)

    async def start_twitch(bot: HouseBot):
        if session is None:
            LOGGER.warning("⚠️ No Twitch session, monitoring disabled")
            return
        LOGGER.info("Establishing connection to Twitch.")
        try:
            await session.authenticate()
        except InvalidCredential as e:
            LOGGER.error(f"❌ Error establishing connection to twitch: {e}")
            return
        monitor = LiveStateMonitor(
            session,
            DiscordChatSink(bot),
            announcer=announcer,
            dispatcher=dispatcher,
            interval=float(config["twitch"]["poll_interval"]),
            state_change_time=float(config["twitch"]["state_change_time"]),
        )
        session.start_monitoring(bot.session_key, monitor)

    bot = HouseBot(context, prefix=config["bot"]["prefix"], on_setup=start_twitch)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: no loop signal handlers
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    bot_task = asyncio.create_task(bot.start(token))
    stop_task = asyncio.create_task(stop_event.wait())

    LOGGER.info("🚀 Bot is now running. Press CTRL-C to exit.")
    discord_failed = False
    try:
        done, _ = await asyncio.wait({bot_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if bot_task in done:
            error = bot_task.exception()
            if error is not None:
                discord_failed = True
                LOGGER.error(f"❌ Error establishing connection to discord: {error}")
    finally:
        LOGGER.info("Shutting down...")
        stop_task.cancel()

        if session is not None:
            await session.close(
                shutdown_timeout=float(config["notifications"]["shutdown_timeout"]),
                prune=bot.is_ready(),
            )
        await bot.close()
        if not bot_task.done():
            bot_task.cancel()
            try:
                await bot_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                LOGGER.warning(f"⚠️ Discord client stopped with error: {e}")

        LOGGER.info("Done")

    if discord_failed:
        sys.exit(1)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nBye!")


if __name__ == "__main__":
    run()
