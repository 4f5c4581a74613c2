"""
Tests for core/session.py (registration, token refresh, open/close lifecycle)
"""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import make_info
from core.errors import ChannelNotFound, InvalidCredential, PersistenceReadFailed, UpstreamQueryFailed
from core.registry import ChannelRegistry
from core.session import Session
from core.stream_types import TokenValidation


@pytest.mark.unit
class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_new_channel(self, session, store, helix):
        assert await session.register_channel("alice", "g1", "c1") is True

        info = session.registry.get("alice")
        assert info.display_name == "Alice"
        assert info.logo_url == "https://img/alice.png"
        assert helix.user_calls == 1
        # Persisted right away
        assert "alice" in store.load("test")

    @pytest.mark.asyncio
    async def test_register_is_case_insensitive(self, session):
        assert await session.register_channel("ALICE", "g1", "c1") is True
        assert session.registry.names() == ["alice"]
        assert await session.register_channel("Alice", "g1", "c1") is False

    @pytest.mark.asyncio
    async def test_register_twice(self, session, helix):
        await session.register_channel("alice", "g1", "c1")
        assert await session.register_channel("alice", "g1", "c1") is False
        assert session.registry.get("alice").subscription_count() == 1

    @pytest.mark.asyncio
    async def test_known_channel_skips_lookup(self, session, helix):
        await session.register_channel("alice", "g1", "c1")
        await session.register_channel("alice", "g2", "c7")
        assert helix.user_calls == 1
        assert session.registry.get("alice").subscription_count() == 2

    @pytest.mark.asyncio
    async def test_unknown_twitch_channel(self, session, store):
        with pytest.raises(ChannelNotFound) as exc_info:
            await session.register_channel("nobody_here", "g1", "c1")
        assert exc_info.value.channel == "nobody_here"
        assert len(session.registry) == 0

    @pytest.mark.asyncio
    async def test_invalid_login_not_queried(self, session, helix):
        with pytest.raises(ChannelNotFound):
            await session.register_channel("not a login!", "g1", "c1")
        assert helix.user_calls == 0

    @pytest.mark.asyncio
    async def test_lookup_failure_propagates(self, session, helix):
        helix.fail = True
        with pytest.raises(UpstreamQueryFailed):
            await session.register_channel("alice", "g1", "c1")
        assert len(session.registry) == 0

    @pytest.mark.asyncio
    async def test_unregister(self, session, store):
        await session.register_channel("alice", "g1", "c1")
        await session.register_channel("alice", "g1", "c2")

        assert await session.unregister_channel("alice", "g1", "c1") is True
        assert await session.list_subscriptions("g1", "c2") == ["alice"]

        assert await session.unregister_channel("Alice", "g1", "c2") is True
        assert "alice" not in session.registry
        assert len(store.load("test")) == 0

    @pytest.mark.asyncio
    async def test_unregister_missing(self, session):
        await session.register_channel("alice", "g1", "c1")
        assert await session.unregister_channel("alice", "g1", "c9") is False
        assert await session.unregister_channel("bob", "g1", "c1") is False
        assert session.registry.get("alice").subscription_count() == 1

    @pytest.mark.asyncio
    async def test_get_channel_info_is_a_copy(self, session):
        await session.register_channel("alice", "g1", "c1")
        info = await session.get_channel_info("Alice")
        info.display_name = "changed"
        assert session.registry.get("alice").display_name == "Alice"
        assert await session.get_channel_info("bob") is None


@pytest.mark.unit
class TestToken:

    @pytest.mark.asyncio
    async def test_valid_token(self, session, auth):
        await session.ensure_token()
        auth.request_app_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_token_refreshed(self, session, auth):
        auth.validate_token.return_value = TokenValidation(is_valid=False, status=401)
        assert await session.validate_and_refresh_token() is True
        assert session.is_connected is True
        assert auth.request_app_token.await_count == 1

    @pytest.mark.asyncio
    async def test_refresh_retries_then_succeeds(self, session, auth):
        auth.validate_token.return_value = TokenValidation(is_valid=False, status=401)
        auth.request_app_token.side_effect = [InvalidCredential("flaky"), "new_token"]
        await session.ensure_token()
        assert session.is_connected is True
        assert auth.request_app_token.await_count == 2

    @pytest.mark.asyncio
    async def test_refresh_gives_up(self, session, auth):
        auth.validate_token.return_value = TokenValidation(is_valid=False, status=401)
        auth.request_app_token.side_effect = InvalidCredential("bad secret")
        with pytest.raises(InvalidCredential):
            await session.ensure_token()
        assert session.is_connected is False

    @pytest.mark.asyncio
    async def test_other_status_is_upstream_failure(self, session, auth):
        auth.validate_token.return_value = TokenValidation(is_valid=False, status=500)
        with pytest.raises(UpstreamQueryFailed):
            await session.ensure_token()
        assert session.is_connected is True
        auth.request_app_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_closed_session_not_refreshed(self, session, auth):
        await session.close()
        auth.validate_token.return_value = TokenValidation(is_valid=False, status=401)
        assert await session.validate_and_refresh_token() is False
        auth.request_app_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_authenticate_marks_connected(self, session, auth):
        session.is_connected = False
        await session.authenticate()
        assert session.is_connected is True

    @pytest.mark.asyncio
    async def test_authenticate_failure(self, session, auth):
        session.is_connected = False
        auth.request_app_token.side_effect = InvalidCredential("bad secret")
        with pytest.raises(InvalidCredential):
            await session.authenticate()
        assert session.is_connected is False


@pytest.mark.integration
class TestLifecycle:

    @pytest.mark.asyncio
    async def test_close_prunes_and_persists(self, session, store, context):
        session.registry.add_subscription("alice", "g1", "c1", make_info())
        session.registry.add_subscription("alice", "g2", "c2")
        session.registry.add_subscription("bob", "g3", "c3", make_info("Bob"))
        context.guilds.set_inactive("g3")

        await session.close()

        assert session.is_connected is False
        reloaded = store.load("test")
        assert reloaded.names() == ["alice"]
        assert list(reloaded.get("alice").discord_channels) == ["g1"]

    @pytest.mark.asyncio
    async def test_close_without_prune(self, session, store):
        session.registry.add_subscription("bob", "g3", "c3", make_info("Bob"))
        await session.close(prune=False)
        assert store.load("test").names() == ["bob"]

    @pytest.mark.asyncio
    async def test_close_closes_twitch_client(self, context, store, auth, helix):
        twitch = MagicMock()
        twitch.close = AsyncMock()
        session = Session("test", context, store, auth, helix, twitch=twitch)
        await session.close()
        twitch.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_open_requires_credentials(self, store, context):
        with pytest.raises(InvalidCredential):
            await Session.open("", "secret", "session1", store, context)
        with pytest.raises(InvalidCredential):
            await Session.open("client", "", "session1", store, context)

    @pytest.mark.asyncio
    async def test_open_without_snapshot(self, store, context):
        with patch("twitchAPI.twitch.Twitch") as twitch_cls:
            twitch_cls.return_value.close = AsyncMock()
            session = await Session.open("client", "secret", "session1", store, context)

        twitch_cls.assert_called_once_with("client", "secret", authenticate_app=False)
        assert len(session.registry) == 0
        assert session.is_connected is False

    @pytest.mark.asyncio
    async def test_open_loads_snapshot(self, store, context):
        registry = ChannelRegistry()
        registry.add_subscription("alice", "g1", "c1", make_info())
        store.save("session1", registry)

        with patch("twitchAPI.twitch.Twitch") as twitch_cls:
            twitch_cls.return_value.close = AsyncMock()
            session = await Session.open("client", "secret", "session1", store, context)

        assert session.registry.names() == ["alice"]

    @pytest.mark.asyncio
    async def test_open_with_corrupt_snapshot(self, store, context):
        store.data_path.mkdir(parents=True)
        store.path_for("session1").write_text(json.dumps("garbage"), encoding="utf-8")

        with patch("twitchAPI.twitch.Twitch") as twitch_cls:
            twitch_cls.return_value.close = AsyncMock()
            with pytest.raises(PersistenceReadFailed):
                await Session.open("client", "secret", "session1", store, context)

        twitch_cls.return_value.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_restart_keeps_subscriptions(self, session, store, context, auth, helix):
        await session.register_channel("alice", "g1", "c1")
        await session.close()

        reopened = Session("test", context, store, auth, helix, registry=store.load("test"))
        assert await reopened.list_subscriptions("g1", "c1") == ["alice"]
