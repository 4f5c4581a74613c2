"""
📢 Stream Announcer - Builds live/offline notifications for Discord

Live  → rich embed (display name, avatar, title, thumbnail)
Offline → plain text

Messages are configurable under `announcements` in config.yaml.
"""
import logging
from typing import Dict, Optional

from core.stream_types import NotificationEmbed, StreamingChannelInfo

LOGGER = logging.getLogger(__name__)

TWITCH_URL = "https://www.twitch.tv/"
THUMBNAIL_WIDTH = 1920
THUMBNAIL_HEIGHT = 1080
EMBED_TITLE_LIMIT = 256
EMBED_DESCRIPTION_LIMIT = 4096
DEFAULT_OFFLINE_MESSAGE = "{display_name} is now offline!"


class StreamAnnouncer:
    """
    Formats stream status notifications.

    Pure formatting: delivery is done by the monitor through the dispatcher.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Args:
            config: Configuration dict with announcements settings
        """
        self.config = config or {}

        announcements_config = self.config.get("announcements", {}) or {}

        # Embed description, empty by default (the title already carries the stream title)
        self.online_message = (announcements_config.get("stream_online", {}) or {}).get("message", "")

        self.offline_message = (announcements_config.get("stream_offline", {}) or {}).get(
            "message",
            DEFAULT_OFFLINE_MESSAGE
        )

        LOGGER.debug(f"📢 StreamAnnouncer initialized - offline template={self.offline_message!r}")

    def build_live_embed(self, channel: str, info: StreamingChannelInfo) -> NotificationEmbed:
        """
        Build the "now live" embed for a Twitch channel

        Args:
            channel: Twitch login
            info: Current channel state
        """
        title = info.stream_title or f"{info.display_name or channel} is live"
        if len(title) > EMBED_TITLE_LIMIT:
            title = title[:EMBED_TITLE_LIMIT - 3] + "..."

        description = ""
        if self.online_message:
            description = self._format(self.online_message, channel, info, fallback="")
            if len(description) > EMBED_DESCRIPTION_LIMIT:
                description = description[:EMBED_DESCRIPTION_LIMIT - 3] + "..."

        return NotificationEmbed(
            title=title,
            url=TWITCH_URL + (info.display_name or channel),
            author_name=info.display_name or channel,
            author_icon_url=info.logo_url,
            image_url=format_thumbnail(info.thumbnail_url),
            description=description,
        )

    def build_offline_text(self, channel: str, info: StreamingChannelInfo) -> str:
        """Build the "now offline" message"""
        return self._format(
            self.offline_message,
            channel,
            info,
            fallback=DEFAULT_OFFLINE_MESSAGE.format(display_name=info.display_name or channel),
        )

    def _format(self, template: str, channel: str, info: StreamingChannelInfo, fallback: str) -> str:
        try:
            return template.format(
                channel=channel,
                display_name=info.display_name or channel,
                title=info.stream_title,
                game_id=info.game_id,
            )
        except (KeyError, IndexError, ValueError) as e:
            LOGGER.error(f"❌ Error formatting announcement {template!r}: {e}")
            return fallback


def format_thumbnail(template: str, width: int = THUMBNAIL_WIDTH, height: int = THUMBNAIL_HEIGHT) -> str:
    """Fill a Helix thumbnail template ({width}x{height})"""
    return template.replace("{width}", str(width)).replace("{height}", str(height))
