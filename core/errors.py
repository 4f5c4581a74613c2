"""
⚠️ Errors - Failure taxonomy shared by core, twitchapi and discordapi

"Already registered" / "not registered" are expected outcomes and are
reported as False return values, never raised.
"""


class HouseBotError(Exception):
    """Base class for every error raised by the bot"""


class InvalidCredential(HouseBotError):
    """Twitch token exchange failed or returned an empty token"""


class ChannelNotFound(HouseBotError):
    """Twitch reports no user with the requested login"""

    def __init__(self, channel: str):
        super().__init__(f"Twitch channel '{channel}' does not exist")
        self.channel = channel


class UpstreamQueryFailed(HouseBotError):
    """Transient Twitch API failure (timeout, HTTP error, network)"""


class PersistenceWriteFailed(HouseBotError):
    """Snapshot could not be written to disk"""


class PersistenceReadFailed(HouseBotError):
    """Snapshot exists but could not be read or decoded"""


class SnapshotNotFound(PersistenceReadFailed):
    """No snapshot on disk yet (first run)"""


class DeliveryFailed(HouseBotError):
    """Discord refused or could not deliver a message"""
