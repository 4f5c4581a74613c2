"""
🧭 Bot Context - Process-wide state, passed explicitly

Owns the guild availability tracker and the table of monitoring sessions.
Injected into the Discord cogs and the Twitch session instead of globals.
"""
import logging
from typing import TYPE_CHECKING, Dict, Optional

from core.guild_status import GuildStatusTracker

if TYPE_CHECKING:
    from core.session import Session

LOGGER = logging.getLogger(__name__)


class BotContext:
    """Single owner of the shared bot state"""

    def __init__(self, guilds: Optional[GuildStatusTracker] = None):
        self.guilds = guilds if guilds is not None else GuildStatusTracker()
        self._sessions: Dict[str, "Session"] = {}

    def register_session(self, key: str, session: "Session") -> None:
        self._sessions[key] = session
        LOGGER.info(f"📌 Session '{session.name}' registered for {key}")

    def unregister_session(self, key: str) -> None:
        session = self._sessions.pop(key, None)
        if session is not None:
            LOGGER.info(f"🗑️ Session '{session.name}' unregistered for {key}")

    def get_session(self, key: str) -> Optional["Session"]:
        return self._sessions.get(key)

    def get_stats(self) -> Dict[str, int]:
        return {
            "sessions": len(self._sessions),
            "guilds": len(self.guilds),
        }
