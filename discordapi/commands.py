"""
Channel commands - `housebot channel add|remove|list <Twitch Channel>`

The reply builders are plain coroutines taking the session, the cog only
extracts ids from the Discord context and sends the text back.
"""
import logging
from typing import Optional

from discord.ext import commands

from core.context import BotContext
from core.errors import ChannelNotFound, InvalidCredential, UpstreamQueryFailed
from core.session import Session

LOGGER = logging.getLogger(__name__)

UNAVAILABLE_REPLY = "Twitch monitoring is currently unavailable."
TWITCH_ERROR_REPLY = "Could not reach Twitch, please try again later."


def usage_text(prefix: str = "housebot") -> str:
    return f"Proper usage is {prefix} channel [add/remove] <Twitch Channel>"


async def add_channel(session: Optional[Session], twitch_channel: str, guild_id: str, channel_id: str) -> str:
    """Register a Discord channel to a Twitch channel, returns the reply text"""
    if session is None:
        return UNAVAILABLE_REPLY

    try:
        added = await session.register_channel(twitch_channel, guild_id, channel_id)
    except ChannelNotFound:
        return f"{twitch_channel} is not a valid Twitch channel."
    except (InvalidCredential, UpstreamQueryFailed) as e:
        LOGGER.error(f"Failed registering channel. twitch_channel={twitch_channel} error={e}")
        return TWITCH_ERROR_REPLY

    if added:
        return f"{twitch_channel}'s Twitch channel successfully added to this Discord channel."
    return f"{twitch_channel}'s Twitch channel is already added to this Discord channel."


async def remove_channel(session: Optional[Session], twitch_channel: str, guild_id: str, channel_id: str) -> str:
    """Unregister a Discord channel from a Twitch channel, returns the reply text"""
    if session is None:
        return UNAVAILABLE_REPLY

    if await session.unregister_channel(twitch_channel, guild_id, channel_id):
        return f"{twitch_channel}'s Twitch channel successfully removed from this Discord channel."
    return f"{twitch_channel}'s Twitch channel is not added to this Discord channel."


async def list_channels(session: Optional[Session], guild_id: str, channel_id: str) -> str:
    if session is None:
        return UNAVAILABLE_REPLY

    names = await session.list_subscriptions(guild_id, channel_id)
    if not names:
        return "No Twitch channels are added to this Discord channel."
    return "Twitch channels added to this Discord channel: " + ", ".join(names)


class ChannelCommandsCog(commands.Cog):
    """Subscription management from a Discord text channel"""

    def __init__(self, bot: commands.Bot, context: BotContext, prefix: str = "housebot"):
        self.bot = bot
        self.context = context
        self.prefix = prefix

    def _session(self) -> Optional[Session]:
        if self.bot.user is None:
            return None
        return self.context.get_session(str(self.bot.user.id))

    @staticmethod
    def _log(ctx: commands.Context, action: str, twitch_channel: str = "") -> None:
        LOGGER.info(
            f"{action}. user={ctx.author} twitch_channel={twitch_channel} "
            f"channel_id={ctx.channel.id} server_id={ctx.guild.id if ctx.guild else None}"
        )

    @commands.group(name="channel", invoke_without_command=True, case_insensitive=True)
    @commands.guild_only()
    async def channel(self, ctx: commands.Context):
        await ctx.send(usage_text(self.prefix))

    @channel.command(name="add", ignore_extra=False)
    async def channel_add(self, ctx: commands.Context, twitch_channel: str):
        twitch_channel = twitch_channel.lower()
        reply = await add_channel(self._session(), twitch_channel, str(ctx.guild.id), str(ctx.channel.id))
        self._log(ctx, "Channel add command", twitch_channel)
        await ctx.send(reply)

    @channel.command(name="remove", ignore_extra=False)
    async def channel_remove(self, ctx: commands.Context, twitch_channel: str):
        twitch_channel = twitch_channel.lower()
        reply = await remove_channel(self._session(), twitch_channel, str(ctx.guild.id), str(ctx.channel.id))
        self._log(ctx, "Channel remove command", twitch_channel)
        await ctx.send(reply)

    @channel.command(name="list", ignore_extra=False)
    async def channel_list(self, ctx: commands.Context):
        reply = await list_channels(self._session(), str(ctx.guild.id), str(ctx.channel.id))
        self._log(ctx, "Channel list command")
        await ctx.send(reply)

    async def cog_command_error(self, ctx: commands.Context, error: Exception):
        if isinstance(error, (commands.MissingRequiredArgument, commands.TooManyArguments)):
            LOGGER.info(f"Invalid command. user={ctx.author} content={ctx.message.content!r}")
            await ctx.send(usage_text(self.prefix))
            return

        if isinstance(error, commands.NoPrivateMessage):
            return

        LOGGER.error(f"Channel command failed: {error}", exc_info=error)
