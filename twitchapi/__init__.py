"""
twitchapi/
==========

Everything that talks to the Twitch API.

Layout:
- auth_manager.py : App Access Token exchange and validation
- transports/ : Twitch API clients
  - helix_readonly.py : Helix with App Token (read-only)
- monitors/ : polling loop driving live/offline notifications

Philosophy:
- core/ = bot logic, twitchapi/ = Twitch-specific, discordapi/ = Discord-specific
- Twitch code isolated = easy mocking
"""

from twitchapi.auth_manager import AuthManager

__all__ = ["AuthManager"]
