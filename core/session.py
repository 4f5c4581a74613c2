"""
🎛️ Session - Twitch monitoring session

Ties together the Twitch client, the channel registry, the snapshot store
and the live-state monitor. Exposes registration to the Discord command
layer and start/close to the process.

Every registry read/write goes through self._lock (one lock per session).
Snapshot writes happen while the lock is held so the file never reflects
a half-applied mutation.
"""
import asyncio
import copy
import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from core.context import BotContext
from core.errors import (
    ChannelNotFound,
    InvalidCredential,
    PersistenceWriteFailed,
    SnapshotNotFound,
    UpstreamQueryFailed,
)
from core.registry import ChannelRegistry
from core.snapshot_store import SnapshotStore
from core.stream_types import StreamingChannelInfo
from twitchapi.auth_manager import AuthManager
from twitchapi.transports.helix_readonly import HelixReadOnlyClient, is_valid_login

if TYPE_CHECKING:
    from twitchAPI.twitch import Twitch
    from twitchapi.monitors.stream_monitor import LiveStateMonitor

LOGGER = logging.getLogger(__name__)


class Session:
    """A named Twitch monitoring session"""

    def __init__(
        self,
        name: str,
        context: BotContext,
        store: SnapshotStore,
        auth: AuthManager,
        helix: HelixReadOnlyClient,
        registry: Optional[ChannelRegistry] = None,
        twitch: Optional["Twitch"] = None,
        auth_retries: int = 3,
        auth_retry_delay: float = 5.0,
    ):
        """
        Args:
            name: Session name, also the snapshot file key
            context: Shared bot context (guild status, session table)
            store: Snapshot persistence
            auth: App token manager
            helix: Helix read-only client
            registry: Registry loaded from a previous run
            twitch: Underlying twitchAPI client, closed with the session
            auth_retries: Token refresh attempts before giving up
            auth_retry_delay: Seconds between refresh attempts
        """
        self.name = name
        self.context = context
        self.store = store
        self.auth = auth
        self.helix = helix
        self.registry = registry if registry is not None else ChannelRegistry()
        self.twitch = twitch
        self.auth_retries = max(1, auth_retries)
        self.auth_retry_delay = auth_retry_delay

        self.is_connected = False
        self._closed = False
        self._lock = asyncio.Lock()
        self._auth_lock = asyncio.Lock()
        self._token_generation = 0
        self._monitor: Optional["LiveStateMonitor"] = None
        self._monitor_key: Optional[str] = None

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @classmethod
    async def open(
        cls,
        client_id: str,
        client_secret: str,
        name: str,
        store: SnapshotStore,
        context: BotContext,
        *,
        helix_timeout: float = 8.0,
        auth_retries: int = 3,
        auth_retry_delay: float = 5.0,
    ) -> "Session":
        """
        Build the Twitch client and load the previous registry.

        Does not authenticate: call authenticate() before start_monitoring().

        Raises:
            InvalidCredential: client ID or secret missing
            PersistenceReadFailed: snapshot exists but is unreadable
        """
        from twitchAPI.twitch import Twitch

        if not client_id or not client_secret:
            raise InvalidCredential("TWITCH_CLIENT_ID / TWITCH_CLIENT_SECRET missing")

        twitch = Twitch(client_id, client_secret, authenticate_app=False)

        try:
            registry = store.load(name)
        except SnapshotNotFound:
            LOGGER.warning("Twitch session info does not exist on disk. Will be created on shutdown.")
            registry = ChannelRegistry()
        except Exception:
            await twitch.close()
            raise

        return cls(
            name=name,
            context=context,
            store=store,
            auth=AuthManager(twitch, validate_timeout=helix_timeout),
            helix=HelixReadOnlyClient(twitch, helix_timeout=helix_timeout),
            registry=registry,
            twitch=twitch,
            auth_retries=auth_retries,
            auth_retry_delay=auth_retry_delay,
        )

    async def authenticate(self) -> None:
        """
        Exchange client credentials for an App token.
        Marks the session connected on success.

        Raises:
            InvalidCredential
        """
        await self.auth.request_app_token()
        self.is_connected = True

    def start_monitoring(self, key: str, monitor: "LiveStateMonitor") -> bool:
        """
        Register the session for command lookup and launch the monitor.

        Args:
            key: Lookup key in the bot context (Discord bot user ID)
            monitor: Monitor bound to this session

        Returns:
            False (no-op) when the session is not connected
        """
        if not self.is_connected:
            LOGGER.warning(f"⚠️ Session '{self.name}' not connected to Twitch, monitoring disabled")
            return False
        if self._monitor is not None and self._monitor.is_running:
            LOGGER.warning(f"⚠️ Session '{self.name}' already monitoring")
            return False

        self._monitor = monitor
        self._monitor_key = key
        self.context.register_session(key, self)
        monitor.start(on_exit=lambda: self.context.unregister_session(key))
        return True

    async def close(self, shutdown_timeout: Optional[float] = None, prune: bool = True) -> None:
        """
        Stop monitoring, prune guilds the bot is no longer in, persist.

        Args:
            shutdown_timeout: Cutoff for in-flight notifications
            prune: False when the Discord gateway never connected (guild
                status unknown), the registry is then saved as is
        """
        self.is_connected = False
        self._closed = True

        if self._monitor is not None:
            await self._monitor.stop(timeout=shutdown_timeout)
        if self._monitor_key is not None:
            self.context.unregister_session(self._monitor_key)

        async with self._lock:
            if prune:
                self.registry.prune_guilds(keep=self.context.guilds.is_active)
            self._persist()

        if self.twitch is not None:
            try:
                await self.twitch.close()
            except Exception as e:
                LOGGER.warning(f"⚠️ Error closing Twitch client: {e}")

        LOGGER.info(f"✅ Session '{self.name}' closed ({len(self.registry)} channels saved)")

    # ========================================================================
    # TOKEN
    # ========================================================================

    async def ensure_token(self) -> None:
        """
        Validate the App token, refreshing it when Twitch reports it invalid.

        Raises:
            UpstreamQueryFailed: validation could not be performed
            InvalidCredential: token invalid and every refresh attempt failed
        """
        validation = await self.auth.validate_token()
        if validation.is_valid:
            return

        if validation.status != 401:
            raise UpstreamQueryFailed(f"HTTP Error returned from twitch (StatusCode={validation.status})")

        if self._closed:
            self.is_connected = False
            raise InvalidCredential("Session closed, not refreshing Twitch token")

        generation = self._token_generation
        async with self._auth_lock:
            # Refreshed by a concurrent caller while we waited
            if self._token_generation != generation:
                return

            # is_connected stays True while retrying, the monitor keeps running
            last_error: Optional[Exception] = None
            for attempt in range(1, self.auth_retries + 1):
                if self._closed:
                    break
                LOGGER.debug(f"Attempting to get new Twitch authentication token ({attempt}/{self.auth_retries}).")
                try:
                    await self.auth.request_app_token()
                except InvalidCredential as e:
                    last_error = e
                    LOGGER.error(f"Failed to get new Twitch authorization token: {e}")
                    if attempt < self.auth_retries:
                        await asyncio.sleep(self.auth_retry_delay)
                    continue
                self._token_generation += 1
                LOGGER.debug("Successfully got new Twitch authentication token.")
                return

            self.is_connected = False
            raise InvalidCredential(f"Token refresh gave up after {self.auth_retries} attempts: {last_error}")

    async def validate_and_refresh_token(self) -> bool:
        """ensure_token() as a bool, failures are logged"""
        try:
            await self.ensure_token()
            return True
        except UpstreamQueryFailed as e:
            LOGGER.error(f"Failed to validate Twitch authorization token: {e}")
        except InvalidCredential as e:
            LOGGER.error(f"Twitch authorization token is invalid: {e}")
        return False

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    async def register_channel(self, twitch_channel: str, guild_id: str, channel_id: str) -> bool:
        """
        Register a Discord channel to follow a Twitch channel.

        Returns:
            True if registered, False if already registered

        Raises:
            ChannelNotFound: Twitch has no such channel
            InvalidCredential: token invalid and refresh failed
            UpstreamQueryFailed: Twitch unreachable
        """
        name = twitch_channel.lower()

        async with self._lock:
            if name in self.registry:
                return self._add_and_persist(name, guild_id, channel_id, None)

        # Unknown channel: network lookup outside the lock
        info = await self._lookup_channel(name)

        async with self._lock:
            return self._add_and_persist(name, guild_id, channel_id, info)

    async def unregister_channel(self, twitch_channel: str, guild_id: str, channel_id: str) -> bool:
        """
        Stop a Discord channel from following a Twitch channel.

        Returns:
            False if it was not following it
        """
        name = twitch_channel.lower()
        async with self._lock:
            removed = self.registry.remove_subscription(name, guild_id, channel_id)
            if removed:
                self._persist()
            return removed

    async def list_subscriptions(self, guild_id: str, channel_id: str) -> List[str]:
        async with self._lock:
            return self.registry.subscriptions_for(guild_id, channel_id)

    async def get_channel_info(self, twitch_channel: str) -> Optional[StreamingChannelInfo]:
        """Copy of a channel's state, safe to read without the lock"""
        async with self._lock:
            info = self.registry.get(twitch_channel.lower())
            return copy.deepcopy(info) if info is not None else None

    async def _lookup_channel(self, name: str) -> StreamingChannelInfo:
        if not is_valid_login(name):
            raise ChannelNotFound(name)

        await self.ensure_token()

        users = await self.helix.get_users([name])
        user = next((u for u in users if u.login.lower() == name), None)
        if user is None:
            raise ChannelNotFound(name)

        return StreamingChannelInfo(
            display_name=user.display_name,
            logo_url=user.profile_image_url,
        )

    def _add_and_persist(
        self,
        name: str,
        guild_id: str,
        channel_id: str,
        info: Optional[StreamingChannelInfo],
    ) -> bool:
        added = self.registry.add_subscription(name, guild_id, channel_id, info)
        if added:
            self._persist()
        return added

    def _persist(self) -> None:
        """Write the snapshot, caller holds the lock"""
        try:
            self.store.save(self.name, self.registry)
        except PersistenceWriteFailed as e:
            LOGGER.error(f"❌ Error writing data to disk: {e}")

    def get_stats(self) -> Dict[str, int]:
        stats = self.registry.get_stats()
        stats["connected"] = int(self.is_connected)
        return stats
