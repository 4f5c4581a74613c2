"""
📦 Stream Types - DTOs for the Twitch → Discord relay

Data contracts between the Twitch transports, the registry and the Discord sink.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class ChannelSubscription:
    """One Discord channel following a Twitch channel"""
    channel_id: str                         # Discord channel ID
    live_notification_sent: bool = False    # Live notification already delivered for this session


@dataclass
class StreamingChannelInfo:
    """State tracked for one Twitch channel"""
    display_name: str = ""                  # Twitch display name
    logo_url: str = ""                      # Profile image URL
    stream_title: str = ""                  # Current stream title
    game_id: str = ""                       # Current category ID
    thumbnail_url: str = ""                 # Thumbnail template ({width}x{height})
    start_time: Optional[datetime] = None   # Stream start (None = not live)
    end_time: Optional[datetime] = None     # First offline sample (None = live or never seen)
    discord_channels: Dict[str, List[ChannelSubscription]] = field(default_factory=dict)  # guild_id -> subs

    def subscription_count(self) -> int:
        return sum(len(subs) for subs in self.discord_channels.values())


@dataclass
class TwitchUser:
    """Subset of a Helix user used at registration time"""
    login: str
    display_name: str
    profile_image_url: str


@dataclass
class TwitchStream:
    """Subset of a Helix stream used by the monitor"""
    user_login: str
    title: str
    game_id: str
    thumbnail_url: str
    started_at: datetime
    type: str = "live"

    @property
    def is_live(self) -> bool:
        return self.type == "live"


@dataclass
class NotificationEmbed:
    """Rich "now live" notification, rendered to a discord.Embed by the sink"""
    title: str
    url: str
    author_name: str
    author_icon_url: str
    image_url: str
    description: str = ""
    color: int = 0x808080


@dataclass
class TokenValidation:
    """Result of /oauth2/validate"""
    is_valid: bool
    status: int
    expires_in: int = 0
