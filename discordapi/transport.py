"""
Discord transport - message primitive used by the live-state monitor

send_text / send_embed raise DeliveryFailed; the dispatcher logs it.
"""
import logging

import discord

from core.errors import DeliveryFailed
from core.stream_types import NotificationEmbed

LOGGER = logging.getLogger(__name__)


def to_discord_embed(notification: NotificationEmbed) -> discord.Embed:
    """Render a NotificationEmbed as a discord.Embed"""
    embed = discord.Embed(
        title=notification.title,
        url=notification.url or None,
        description=notification.description or None,
        color=notification.color,
    )
    embed.set_author(name=notification.author_name, icon_url=notification.author_icon_url or None)
    if notification.image_url:
        embed.set_image(url=notification.image_url)
    return embed


class DiscordChatSink:
    """Sends notifications through a connected discord.py client"""

    def __init__(self, client: discord.Client):
        self.client = client

    async def _resolve(self, channel_id: str) -> discord.abc.Messageable:
        try:
            cid = int(channel_id)
        except (TypeError, ValueError) as e:
            raise DeliveryFailed(f"Invalid Discord channel id {channel_id!r}") from e

        channel = self.client.get_channel(cid)
        if channel is None:
            try:
                channel = await self.client.fetch_channel(cid)
            except discord.HTTPException as e:
                raise DeliveryFailed(f"Discord channel {channel_id} unreachable: {e}") from e

        if not isinstance(channel, discord.abc.Messageable):
            raise DeliveryFailed(f"Discord channel {channel_id} cannot receive messages")
        return channel

    async def send_text(self, channel_id: str, text: str) -> None:
        channel = await self._resolve(channel_id)
        try:
            await channel.send(text)
        except discord.HTTPException as e:
            raise DeliveryFailed(f"Error sending message to discord channel {channel_id}: {e}") from e

    async def send_embed(self, channel_id: str, embed: NotificationEmbed) -> None:
        channel = await self._resolve(channel_id)
        try:
            await channel.send(embed=to_discord_embed(embed))
        except discord.HTTPException as e:
            raise DeliveryFailed(f"Error sending embed to discord channel {channel_id}: {e}") from e
