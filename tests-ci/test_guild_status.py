"""
Tests for core/guild_status.py and core/context.py
"""
import threading
from unittest.mock import Mock

import pytest

from core.context import BotContext
from core.guild_status import GuildStatusTracker


@pytest.mark.unit
class TestGuildStatusTracker:

    def test_unknown_guild_is_inactive(self):
        assert GuildStatusTracker().is_active("g1") is False

    def test_transitions(self):
        tracker = GuildStatusTracker()

        tracker.set_active("g1")
        assert tracker.is_active("g1") is True

        tracker.set_inactive("g1")
        assert tracker.is_active("g1") is False
        assert tracker.snapshot() == {"g1": False}

        tracker.set_unavailable("g1")
        assert tracker.snapshot() == {}
        assert len(tracker) == 0

    def test_set_unavailable_unknown_guild(self):
        tracker = GuildStatusTracker()
        tracker.set_unavailable("never-seen")
        assert len(tracker) == 0

    def test_concurrent_writers(self):
        tracker = GuildStatusTracker()

        def worker(start):
            for i in range(start, start + 200):
                tracker.set_active(f"g{i}")

        threads = [threading.Thread(target=worker, args=(n * 200,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(tracker) == 800


@pytest.mark.unit
class TestBotContext:

    def test_session_table(self):
        ctx = BotContext()
        session = Mock()
        session.name = "session1"

        ctx.register_session("42", session)
        assert ctx.get_session("42") is session
        assert ctx.get_stats()["sessions"] == 1

        ctx.unregister_session("42")
        assert ctx.get_session("42") is None
        # Second unregister is a no-op
        ctx.unregister_session("42")

    def test_shared_tracker(self):
        tracker = GuildStatusTracker()
        ctx = BotContext(guilds=tracker)
        assert ctx.guilds is tracker
        tracker.set_active("g1")
        assert ctx.guilds.is_active("g1")
        assert ctx.get_stats()["guilds"] == 1
