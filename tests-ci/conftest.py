"""
Pytest configuration for CI tests
Provides fakes for Twitch and Discord, no network or real credentials needed
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from core.context import BotContext
from core.errors import UpstreamQueryFailed
from core.session import Session
from core.snapshot_store import SnapshotStore
from core.stream_types import StreamingChannelInfo, TokenValidation, TwitchStream, TwitchUser

T0 = datetime(2024, 5, 1, 18, 0, 0, tzinfo=timezone.utc)


class FakeHelix:
    """In-memory stand-in for HelixReadOnlyClient"""

    def __init__(self):
        self.users = {}
        self.streams = []
        self.fail = False
        self.gate = None              # asyncio.Event holding get_streams until set
        self.user_calls = 0
        self.stream_calls = 0

    async def get_users(self, logins):
        self.user_calls += 1
        if self.fail:
            raise UpstreamQueryFailed("get_users failed: boom")
        return [self.users[login] for login in logins if login in self.users]

    async def get_streams(self, logins):
        self.stream_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise UpstreamQueryFailed("get_streams failed: boom")
        return [s for s in self.streams if s.user_login in logins]

    def go_live(self, login, started_at, title="Hello chat", game_id="509658"):
        self.streams = [s for s in self.streams if s.user_login != login]
        self.streams.append(TwitchStream(
            user_login=login,
            title=title,
            game_id=game_id,
            thumbnail_url=f"https://static-cdn.jtvnw.net/previews-ttv/live_user_{login}-{{width}}x{{height}}.jpg",
            started_at=started_at,
        ))

    def go_offline(self, login):
        self.streams = [s for s in self.streams if s.user_login != login]


class RecordingSink:
    """Chat sink keeping every message instead of sending it"""

    def __init__(self):
        self.texts = []
        self.embeds = []

    async def send_text(self, channel_id, text):
        self.texts.append((channel_id, text))

    async def send_embed(self, channel_id, embed):
        self.embeds.append((channel_id, embed))


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def helix():
    fake = FakeHelix()
    fake.users["alice"] = TwitchUser(login="alice", display_name="Alice", profile_image_url="https://img/alice.png")
    fake.users["bob"] = TwitchUser(login="bob", display_name="Bob", profile_image_url="https://img/bob.png")
    return fake


@pytest.fixture
def auth():
    """AuthManager mock with a valid token"""
    mock = Mock()
    mock.validate_token = AsyncMock(return_value=TokenValidation(is_valid=True, status=200, expires_in=3600))
    mock.request_app_token = AsyncMock(return_value="app_token_mock")
    return mock


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return SnapshotStore(str(tmp_path / "data"))


@pytest.fixture
def context():
    ctx = BotContext()
    ctx.guilds.set_active("g1")
    return ctx


@pytest.fixture
def session(context, store, auth, helix):
    """Connected session with no channels"""
    sess = Session("test", context, store, auth, helix, auth_retries=2, auth_retry_delay=0)
    sess.is_connected = True
    return sess


def make_info(display_name="Alice", logo_url="https://img/alice.png"):
    return StreamingChannelInfo(display_name=display_name, logo_url=logo_url)
