"""
HouseBot Discord client

Gateway guild events feed the GuildStatusTracker; the channel commands cog
is loaded from setup_hook. The caller's startup coroutine runs once, on
the first on_ready, when the guild list is known.
"""
import logging
from typing import Awaitable, Callable, Optional

import discord
from discord.ext import commands

from core.context import BotContext
from discordapi.commands import ChannelCommandsCog

LOGGER = logging.getLogger(__name__)


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.messages = True
    intents.message_content = True
    return intents


def make_prefix(prefix: str) -> Callable[[commands.Bot, discord.Message], str]:
    """
    Prefix callable matching `<prefix> ` case-insensitively.
    Returns the prefix as typed so discord.py can strip it.
    """
    base = prefix.strip() + " "

    def get_prefix(bot: commands.Bot, message: discord.Message) -> str:
        head = message.content[:len(base)]
        if head.lower() == base.lower():
            return head
        return base

    return get_prefix


class GuildEventsCog(commands.Cog):
    """Tracks guild availability from gateway events"""

    def __init__(self, context: BotContext):
        self.context = context

    @commands.Cog.listener()
    async def on_guild_available(self, guild: discord.Guild):
        LOGGER.info(f"Guild available. server_id={guild.id} name={guild.name}")
        self.context.guilds.set_active(str(guild.id))

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild):
        LOGGER.info(f"Joined guild. server_id={guild.id} name={guild.name}")
        self.context.guilds.set_active(str(guild.id))

    @commands.Cog.listener()
    async def on_guild_unavailable(self, guild: discord.Guild):
        LOGGER.warning(f"Guild unavailable. server_id={guild.id}")
        self.context.guilds.set_inactive(str(guild.id))

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild):
        LOGGER.info(f"Removed from guild. server_id={guild.id}")
        self.context.guilds.set_unavailable(str(guild.id))


class HouseBot(commands.Bot):
    def __init__(
        self,
        context: BotContext,
        prefix: str = "housebot",
        on_setup: Optional[Callable[["HouseBot"], Awaitable[None]]] = None,
    ):
        super().__init__(
            command_prefix=make_prefix(prefix),
            intents=build_intents(),
            case_insensitive=True,
            help_command=None,
        )
        self.context = context
        self.prefix_word = prefix.strip()
        self._on_setup = on_setup

    @property
    def session_key(self) -> str:
        """Bot user ID, key of the session in the bot context"""
        return str(self.user.id) if self.user is not None else ""

    async def setup_hook(self) -> None:
        await self.add_cog(GuildEventsCog(self.context))
        await self.add_cog(ChannelCommandsCog(self, self.context, self.prefix_word))

    async def on_ready(self):
        LOGGER.info(f"Logged in as {self.user} (id={self.user.id}), {len(self.guilds)} guilds")
        if self._on_setup is not None:
            on_setup, self._on_setup = self._on_setup, None
            await on_setup(self)

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            LOGGER.info(f"Invalid command. user={ctx.author} content={ctx.message.content!r}")
            return
        if ctx.cog is not None and ctx.cog.has_error_handler():
            return
        LOGGER.error(f"Command error: {error}", exc_info=error)
