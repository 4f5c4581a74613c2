#!/usr/bin/env python3
"""
📡 Live-State Monitor - Polling-based stream status detection

Polls Twitch Helix every N seconds for all registered channels and drives a
two-timestamp debounce:
- live: start_time set from Helix, notification once now - start_time >= threshold
- offline: end_time stamped on the first offline sample, notification once
  now - end_time >= threshold

Notifications go to Discord through the NotificationDispatcher (fire-and-forget).
"""
import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol

from core.errors import UpstreamQueryFailed
from core.notification_dispatcher import NotificationDispatcher
from core.stream_announcer import StreamAnnouncer
from core.stream_types import NotificationEmbed, TwitchStream

if TYPE_CHECKING:
    from core.session import Session

LOGGER = logging.getLogger(__name__)


class ChatSink(Protocol):
    """Message primitive of the chat platform"""

    async def send_text(self, channel_id: str, text: str) -> None: ...

    async def send_embed(self, channel_id: str, embed: NotificationEmbed) -> None: ...


@dataclass
class PendingNotification:
    """Notification decided under the lock, sent after releasing it"""
    channel: str                              # Twitch login
    channel_id: str                           # Discord channel ID
    embed: Optional[NotificationEmbed] = None # Set for live notifications
    text: str = ""                            # Set for offline notifications

    @property
    def kind(self) -> str:
        return "live" if self.embed is not None else "offline"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class LiveStateMonitor:
    """
    Background polling loop of a Session.

    Runs while session.is_connected. A failed token refresh disconnects the
    session, which ends the loop.
    """

    def __init__(
        self,
        session: "Session",
        sink: ChatSink,
        announcer: Optional[StreamAnnouncer] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        interval: float = 60,
        state_change_time: float = 180,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            session: Session whose registry is monitored
            sink: Discord message primitive
            announcer: Notification formatter
            dispatcher: Task group for sends
            interval: Polling interval in seconds
            state_change_time: Debounce threshold in seconds
            clock: Returns the current aware UTC datetime
        """
        self.session = session
        self.sink = sink
        self.announcer = announcer or StreamAnnouncer()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.interval = interval
        self.state_change_time = timedelta(seconds=state_change_time)
        self.clock = clock

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._on_exit: Optional[Callable[[], None]] = None
        self.cycle_count = 0

        LOGGER.info(
            f"📡 LiveStateMonitor initialized - interval={interval}s, "
            f"state_change_time={state_change_time}s"
        )

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, on_exit: Optional[Callable[[], None]] = None) -> None:
        """Start the monitoring loop"""
        if self._running:
            LOGGER.warning("⚠️ LiveStateMonitor already running")
            return

        self._running = True
        self._on_exit = on_exit
        self._task = asyncio.create_task(self._monitoring_loop())
        LOGGER.info("✅ LiveStateMonitor started")

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the loop and wait for in-flight notifications.

        Args:
            timeout: Cutoff for pending sends, they are cancelled past it
        """
        if self._task is not None and not self._task.done():
            LOGGER.info("🛑 Stopping LiveStateMonitor...")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        await self.dispatcher.wait_all(timeout=timeout)
        LOGGER.info("✅ LiveStateMonitor stopped")

    async def _monitoring_loop(self) -> None:
        """Main loop - one cycle, then sleep, while connected"""
        LOGGER.info(f"🔄 LiveStateMonitor loop started (interval={self.interval}s)")

        try:
            while self.session.is_connected:
                try:
                    await self.run_cycle()
                except Exception as e:
                    LOGGER.error(f"❌ LiveStateMonitor cycle error: {e}", exc_info=True)

                if not self.session.is_connected:
                    break
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            LOGGER.debug("🛑 LiveStateMonitor loop cancelled")
        finally:
            self._running = False
            LOGGER.info(f"💤 LiveStateMonitor loop ended for session '{self.session.name}'")
            if self._on_exit is not None:
                self._on_exit()

    async def run_cycle(self) -> int:
        """
        One polling cycle.

        Returns:
            Number of notifications dispatched
        """
        self.cycle_count += 1

        if not await self.session.validate_and_refresh_token():
            return 0

        async with self.session.lock:
            names = self.session.registry.names()

        if not names:
            LOGGER.debug("🔄 No registered channels, nothing to poll")
            return 0

        try:
            streams = await self.session.helix.get_streams(names)
        except UpstreamQueryFailed as e:
            # Query failure is not "offline": leave timestamps untouched
            LOGGER.error(f"Failed to query twitch, skipping cycle: {e}")
            return 0

        now = self.clock()
        async with self.session.lock:
            self.apply_streams(names, streams, now)
            pending = self.evaluate(now)

        for notification in pending:
            self._dispatch(notification)
        return len(pending)

    def apply_streams(self, names: List[str], streams: List[TwitchStream], now: datetime) -> None:
        """
        Update start/end timestamps from a Helix result, caller holds the lock.

        Only the polled names are touched. Channels registered while the
        query was in flight wait for the next cycle, channels removed
        meanwhile are skipped.
        """
        live = {s.user_login.lower(): s for s in streams if s.is_live}

        for name in names:
            info = self.session.registry.get(name)
            if info is None:
                continue
            stream = live.get(name)
            if stream is not None:
                if info.start_time is None:
                    LOGGER.info(f"🔴 {name}: stream detected live ({stream.title})")
                info.stream_title = stream.title
                info.game_id = stream.game_id
                info.thumbnail_url = stream.thumbnail_url
                info.start_time = _as_utc(stream.started_at)
                info.end_time = None
                continue

            # Stream not found, update times
            info.start_time = None
            if info.end_time is None:
                LOGGER.debug(f"💤 {name}: first offline sample")
                info.end_time = now

    def evaluate(self, now: datetime) -> List[PendingNotification]:
        """
        Debounce evaluation, caller holds the lock.

        Flips live_notification_sent and returns the notifications to send.
        Only guilds currently active receive anything.
        """
        guilds = self.session.context.guilds
        pending: List[PendingNotification] = []

        for name, info in self.session.registry.items():
            if info.start_time is not None and now - info.start_time >= self.state_change_time:
                embed: Optional[NotificationEmbed] = None
                for guild_id, subs in info.discord_channels.items():
                    if not guilds.is_active(guild_id):
                        continue
                    for sub in subs:
                        if not sub.live_notification_sent:
                            sub.live_notification_sent = True
                            if embed is None:
                                embed = self.announcer.build_live_embed(name, info)
                            pending.append(PendingNotification(name, sub.channel_id, embed=embed))

            elif info.end_time is not None and now - info.end_time >= self.state_change_time:
                text: Optional[str] = None
                for guild_id, subs in info.discord_channels.items():
                    if not guilds.is_active(guild_id):
                        continue
                    for sub in subs:
                        if sub.live_notification_sent:
                            sub.live_notification_sent = False
                            if text is None:
                                text = self.announcer.build_offline_text(name, info)
                            pending.append(PendingNotification(name, sub.channel_id, text=text))

        if pending:
            LOGGER.info(f"📢 {len(pending)} notifications to send")
        return pending

    def _dispatch(self, notification: PendingNotification) -> None:
        description = f"{notification.kind} {notification.channel} -> {notification.channel_id}"
        if notification.embed is not None:
            send = functools.partial(self.sink.send_embed, notification.channel_id, notification.embed)
        else:
            send = functools.partial(self.sink.send_text, notification.channel_id, notification.text)
        self.dispatcher.submit(description, send)
