"""
Core - Registry, persistence and session logic
"""

from core.context import BotContext
from core.guild_status import GuildStatusTracker
from core.registry import ChannelRegistry
from core.snapshot_store import SnapshotStore

__all__ = ["BotContext", "ChannelRegistry", "GuildStatusTracker", "SnapshotStore"]
