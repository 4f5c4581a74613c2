"""
🗂️ Registry - Twitch channel subscriptions

Maps Twitch channel → StreamingChannelInfo, which holds the Discord channels
subscribed per guild. Not synchronized on its own: Session holds its lock
around every call.

Invariants:
- a Twitch channel is present iff at least one guild subscribes to it
- within one guild, Discord channel IDs are unique
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from core.stream_types import ChannelSubscription, StreamingChannelInfo

LOGGER = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class ChannelRegistry:
    """In-memory subscription registry"""

    def __init__(self, channels: Optional[Dict[str, StreamingChannelInfo]] = None):
        self._channels: Dict[str, StreamingChannelInfo] = channels if channels is not None else {}

    # ========================================================================
    # LOOKUP
    # ========================================================================

    def get(self, name: str) -> Optional[StreamingChannelInfo]:
        return self._channels.get(name)

    def names(self) -> List[str]:
        return list(self._channels.keys())

    def items(self) -> Iterator[Tuple[str, StreamingChannelInfo]]:
        return iter(list(self._channels.items()))

    def __contains__(self, name: str) -> bool:
        return name in self._channels

    def __len__(self) -> int:
        return len(self._channels)

    def find_subscription_index(self, name: str, guild_id: str, channel_id: str) -> int:
        """
        Returns the index of the subscription in the guild's list, -1 if absent.
        Linear scan: a guild rarely has more than a handful of subscribers.
        """
        info = self._channels.get(name)
        if info is None:
            return -1
        for i, sub in enumerate(info.discord_channels.get(guild_id, [])):
            if sub.channel_id == channel_id:
                return i
        return -1

    def subscriptions_for(self, guild_id: str, channel_id: str) -> List[str]:
        """Twitch channels a given Discord channel follows"""
        return sorted(
            name for name in self._channels
            if self.find_subscription_index(name, guild_id, channel_id) >= 0
        )

    # ========================================================================
    # MUTATION
    # ========================================================================

    def add_subscription(
        self,
        name: str,
        guild_id: str,
        channel_id: str,
        info: Optional[StreamingChannelInfo] = None,
    ) -> bool:
        """
        Subscribe a Discord channel to a Twitch channel.

        Args:
            name: Twitch login (lowercase)
            guild_id: Discord guild ID
            channel_id: Discord channel ID
            info: Entry to create when the Twitch channel is not yet known

        Returns:
            True if added, False if this channel was already subscribed
        """
        if self.find_subscription_index(name, guild_id, channel_id) >= 0:
            return False

        entry = self._channels.get(name)
        if entry is None:
            if info is None:
                raise KeyError(f"Unknown Twitch channel {name} and no info to create it")
            entry = info
            self._channels[name] = entry
            LOGGER.info(f"✅ Twitch channel added to registry: {name}")

        entry.discord_channels.setdefault(guild_id, []).append(
            ChannelSubscription(channel_id=channel_id, live_notification_sent=False)
        )
        return True

    def remove_subscription(self, name: str, guild_id: str, channel_id: str) -> bool:
        """
        Unsubscribe a Discord channel, cascading cleanup of empty guild lists
        and of Twitch channels nobody follows anymore.

        Returns:
            False if no such subscription existed
        """
        idx = self.find_subscription_index(name, guild_id, channel_id)
        if idx < 0:
            return False

        entry = self._channels[name]
        subs = entry.discord_channels[guild_id]

        # Order is irrelevant: swap with last, then pop
        subs[idx], subs[-1] = subs[-1], subs[idx]
        subs.pop()

        if not subs:
            del entry.discord_channels[guild_id]

        if not entry.discord_channels:
            LOGGER.debug(f"No more channels monitoring {name}. Deleting Twitch info for {name}.")
            del self._channels[name]

        return True

    def prune_guilds(self, keep: Callable[[str], bool]) -> int:
        """
        Drop every guild for which keep(guild_id) is False.

        Returns:
            Number of subscriptions removed
        """
        removed = 0
        for name, entry in list(self._channels.items()):
            for guild_id in list(entry.discord_channels.keys()):
                if not keep(guild_id):
                    removed += len(entry.discord_channels.pop(guild_id))
            if not entry.discord_channels:
                del self._channels[name]
        if removed:
            LOGGER.info(f"🧹 Pruned {removed} subscriptions from disconnected guilds")
        return removed

    # ========================================================================
    # SNAPSHOT
    # ========================================================================

    def to_snapshot(self) -> Dict[str, Any]:
        """Serializable dict of the whole registry"""
        return {
            "version": SNAPSHOT_VERSION,
            "channels": {name: _info_to_dict(info) for name, info in self._channels.items()},
        }

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "ChannelRegistry":
        channels = {
            name: _info_from_dict(raw)
            for name, raw in (data.get("channels") or {}).items()
        }
        # Enforce the non-empty invariant on load
        return cls({name: info for name, info in channels.items() if info.discord_channels})

    def get_stats(self) -> Dict[str, int]:
        return {
            "channels": len(self._channels),
            "subscriptions": sum(info.subscription_count() for info in self._channels.values()),
            "live": sum(1 for info in self._channels.values() if info.start_time is not None),
        }


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _info_to_dict(info: StreamingChannelInfo) -> Dict[str, Any]:
    return {
        "display_name": info.display_name,
        "logo_url": info.logo_url,
        "stream_title": info.stream_title,
        "game_id": info.game_id,
        "thumbnail_url": info.thumbnail_url,
        "start_time": _dt_to_str(info.start_time),
        "end_time": _dt_to_str(info.end_time),
        "discord_channels": {
            guild_id: [
                {"channel_id": s.channel_id, "live_notification_sent": s.live_notification_sent}
                for s in subs
            ]
            for guild_id, subs in info.discord_channels.items()
        },
    }


def _info_from_dict(raw: Dict[str, Any]) -> StreamingChannelInfo:
    return StreamingChannelInfo(
        display_name=raw.get("display_name", ""),
        logo_url=raw.get("logo_url", ""),
        stream_title=raw.get("stream_title", ""),
        game_id=raw.get("game_id", ""),
        thumbnail_url=raw.get("thumbnail_url", ""),
        start_time=_dt_from_str(raw.get("start_time")),
        end_time=_dt_from_str(raw.get("end_time")),
        discord_channels={
            guild_id: [
                ChannelSubscription(
                    channel_id=s["channel_id"],
                    live_notification_sent=bool(s.get("live_notification_sent", False)),
                )
                for s in subs
            ]
            for guild_id, subs in (raw.get("discord_channels") or {}).items()
            if subs
        },
    )
