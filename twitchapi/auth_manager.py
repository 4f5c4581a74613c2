#!/usr/bin/env python3
"""
AuthManager
App Access Token handling (client credentials flow) for the Helix client
"""

import asyncio
import logging
from typing import Optional

import aiohttp
from twitchAPI.twitch import Twitch

from core.errors import InvalidCredential, UpstreamQueryFailed
from core.stream_types import TokenValidation

LOGGER = logging.getLogger(__name__)

VALIDATE_URL = "https://id.twitch.tv/oauth2/validate"


class AuthManager:
    """
    Owns the App Access Token of a Twitch client
    - token exchange (client_id + client_secret)
    - validation against /oauth2/validate
    """

    def __init__(self, twitch: Twitch, validate_timeout: float = 8.0):
        self.twitch = twitch
        self.validate_timeout = validate_timeout

        LOGGER.debug("AuthManager initialized")

    async def request_app_token(self) -> str:
        """
        Exchange client credentials for a new App Access Token.

        Returns:
            The new access token (already installed on the Twitch client)

        Raises:
            InvalidCredential: exchange failed or Twitch returned an empty token
        """
        try:
            await self.twitch.authenticate_app([])
        except Exception as e:
            raise InvalidCredential(f"Twitch token exchange failed: {e}") from e

        token = self.twitch.get_app_token()
        if not token:
            raise InvalidCredential("Twitch returned an empty access token")

        LOGGER.info("✅ App access token obtained")
        return token

    async def validate_token(self, token: Optional[str] = None) -> TokenValidation:
        """
        Validate a token via /oauth2/validate

        Args:
            token: Token to validate, defaults to the client's current App token

        Returns:
            TokenValidation (is_valid only on HTTP 200)

        Raises:
            UpstreamQueryFailed: network error or timeout
        """
        token = token or self.twitch.get_app_token()
        if not token:
            return TokenValidation(is_valid=False, status=401)

        try:
            timeout = aiohttp.ClientTimeout(total=self.validate_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(
                    VALIDATE_URL,
                    headers={"Authorization": f"OAuth {token}"}
                ) as resp:
                    if resp.status == 200:
                        data = await resp.json()
                        expires_in = int(data.get("expires_in", 0))
                        LOGGER.debug(f"Token valid (expires_in={expires_in}s)")
                        return TokenValidation(is_valid=True, status=200, expires_in=expires_in)

                    if resp.status == 401:
                        LOGGER.warning("⚠️ App token expired or revoked (401)")
                    else:
                        error_text = await resp.text()
                        LOGGER.error(f"❌ Token validation failed: {resp.status} - {error_text}")
                    return TokenValidation(is_valid=False, status=resp.status)

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamQueryFailed(f"Token validation request failed: {e}") from e
