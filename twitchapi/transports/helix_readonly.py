#!/usr/bin/env python3
"""Helix Read-Only Transport - batched lookups with timeout handling

Public Helix requests (App Token):
- get_users() : display name + avatar for registration
- get_streams() : live streams for the polling loop

Failures raise UpstreamQueryFailed so callers can tell "query failed"
apart from "channel offline".
"""

import asyncio
import logging
import re
from typing import Iterable, List

from twitchAPI.twitch import Twitch

from core.errors import UpstreamQueryFailed
from core.stream_types import TwitchStream, TwitchUser

LOGGER = logging.getLogger(__name__)

# Helix accepts at most 100 logins per request
HELIX_BATCH_SIZE = 100

_LOGIN_RX = re.compile(r"^[a-z0-9_]{1,25}$")


def is_valid_login(login: str) -> bool:
    """Twitch logins are 1-25 chars of [a-z0-9_]"""
    return bool(_LOGIN_RX.match(login or ""))


def _batches(logins: Iterable[str], size: int = HELIX_BATCH_SIZE) -> List[List[str]]:
    items = list(logins)
    return [items[i:i + size] for i in range(0, len(items), size)]


class HelixReadOnlyClient:
    """
    Helix client for public requests (App Token)
    """

    def __init__(self, twitch: Twitch, helix_timeout: float = 8.0):
        """
        Args:
            twitch: Twitch API instance (App Token)
            helix_timeout: Per-request timeout in seconds
        """
        self.twitch = twitch
        self.helix_timeout = helix_timeout
        LOGGER.debug(f"HelixReadOnlyClient init (timeout={helix_timeout}s)")

    async def get_users(self, logins: List[str]) -> List[TwitchUser]:
        """
        Look up public user data.

        Args:
            logins: Twitch logins

        Returns:
            Users found (unknown logins are simply missing)

        Raises:
            UpstreamQueryFailed: timeout or API error
        """
        users: List[TwitchUser] = []
        for batch in _batches(logins):
            LOGGER.debug(f"[HELIX] get_users({batch})")

            async def _fetch():
                found = []
                async for user in self.twitch.get_users(logins=batch):
                    found.append(TwitchUser(
                        login=user.login,
                        display_name=user.display_name,
                        profile_image_url=user.profile_image_url,
                    ))
                return found

            users.extend(await self._run("get_users", _fetch))
        return users

    async def get_streams(self, logins: List[str]) -> List[TwitchStream]:
        """
        Look up active streams in one batched query per 100 logins.

        Args:
            logins: Twitch logins

        Returns:
            Streams currently running (offline channels are missing)

        Raises:
            UpstreamQueryFailed: timeout or API error
        """
        streams: List[TwitchStream] = []
        for batch in _batches(logins):
            LOGGER.debug(f"[HELIX] get_streams({len(batch)} logins)")

            async def _fetch():
                found = []
                async for stream in self.twitch.get_streams(user_login=batch, first=HELIX_BATCH_SIZE):
                    found.append(TwitchStream(
                        user_login=stream.user_login,
                        title=stream.title,
                        game_id=stream.game_id,
                        thumbnail_url=stream.thumbnail_url,
                        started_at=stream.started_at,
                        type=stream.type,
                    ))
                return found

            streams.extend(await self._run("get_streams", _fetch))
        return streams

    async def _run(self, label: str, fetch):
        try:
            return await asyncio.wait_for(fetch(), timeout=self.helix_timeout)
        except asyncio.TimeoutError as e:
            LOGGER.error(f"⏱️ Timeout {label} after {self.helix_timeout}s")
            raise UpstreamQueryFailed(f"{label} timed out after {self.helix_timeout}s") from e
        except Exception as e:
            LOGGER.error(f"Error {label}: {e}")
            raise UpstreamQueryFailed(f"{label} failed: {e}") from e
