"""Tests for import-mode tracking and per-user locks."""

import asyncio

import pytest

from wallet_agent_bot.bot.import_state import ImportState, ImportStateTracker
from wallet_agent_bot.bot.locks import UserLocks
from wallet_agent_bot.config import ImportPolicy


class TestImportStateTracker:
    def test_users_start_idle(self):
        tracker = ImportStateTracker()
        assert tracker.state("u1") is ImportState.IDLE
        assert not tracker.is_awaiting("u1")

    def test_single_shot_clears_on_failure(self):
        tracker = ImportStateTracker(ImportPolicy.SINGLE_SHOT)
        tracker.begin("u1")

        assert tracker.consume("u1", succeeded=False) is ImportState.IDLE

    def test_retry_policy_keeps_waiting_until_success(self):
        tracker = ImportStateTracker(ImportPolicy.RETRY_UNTIL_VALID)
        tracker.begin("u1")

        assert tracker.consume("u1", succeeded=False) is ImportState.AWAITING_KEY
        assert tracker.consume("u1", succeeded=True) is ImportState.IDLE

    def test_state_is_per_user(self):
        tracker = ImportStateTracker()
        tracker.begin("u1")
        assert tracker.is_awaiting("u1")
        assert not tracker.is_awaiting("u2")

    def test_begin_twice_is_idempotent(self):
        tracker = ImportStateTracker()
        tracker.begin("u1")
        tracker.begin("u1")
        assert tracker.consume("u1", succeeded=True) is ImportState.IDLE

    def test_cancel(self):
        tracker = ImportStateTracker(ImportPolicy.RETRY_UNTIL_VALID)
        tracker.begin("u1")
        assert tracker.cancel("u1") is True
        assert tracker.cancel("u1") is False
        assert tracker.state("u1") is ImportState.IDLE


class TestUserLocks:
    @pytest.mark.asyncio
    async def test_same_user_is_serialized(self):
        locks = UserLocks()
        order = []

        async def work(tag):
            async with locks.hold("u1"):
                order.append(f"{tag}:start")
                await asyncio.sleep(0.01)
                order.append(f"{tag}:end")

        await asyncio.gather(work("a"), work("b"))

        assert order == ["a:start", "a:end", "b:start", "b:end"]

    @pytest.mark.asyncio
    async def test_different_users_run_concurrently(self):
        locks = UserLocks()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def first():
            async with locks.hold("u1"):
                inside.set()
                await release.wait()

        task = asyncio.create_task(first())
        await inside.wait()
        assert locks.is_busy("u1")

        async with locks.hold("u2"):
            assert locks.is_busy("u1")
            assert locks.is_busy("u2")
            assert len(locks) == 2

        release.set()
        await task

    @pytest.mark.asyncio
    async def test_entries_dropped_when_idle(self):
        locks = UserLocks()
        async with locks.hold("u1"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.is_busy("u1")

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = UserLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("u1"):
                raise RuntimeError("boom")
        assert len(locks) == 0
