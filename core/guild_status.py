"""
🏰 Guild Status - Which Discord guilds the bot can currently post to

Absent = never seen or permanently gone, True = connected,
False = temporarily unavailable (gateway outage, reconnect expected).
"""
import logging
import threading
from typing import Dict

LOGGER = logging.getLogger(__name__)


class GuildStatusTracker:
    """Thread-safe guild availability map"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status: Dict[str, bool] = {}

    def set_active(self, guild_id: str) -> None:
        with self._lock:
            self._status[guild_id] = True
        LOGGER.debug(f"Connected to guild {guild_id}.")

    def set_inactive(self, guild_id: str) -> None:
        with self._lock:
            self._status[guild_id] = False
        LOGGER.debug(f"Guild {guild_id} is temporarily unavailable.")

    def set_unavailable(self, guild_id: str) -> None:
        with self._lock:
            self._status.pop(guild_id, None)
        LOGGER.debug(f"Guild {guild_id} is unavailable.")

    def is_active(self, guild_id: str) -> bool:
        with self._lock:
            return self._status.get(guild_id, False)

    def snapshot(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._status)

    def __len__(self) -> int:
        with self._lock:
            return len(self._status)
