"""Discord side of HouseBot: client, commands, message transport"""
from discordapi.client import HouseBot
from discordapi.transport import DiscordChatSink

__all__ = ["HouseBot", "DiscordChatSink"]
