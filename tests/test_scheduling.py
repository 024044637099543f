"""Tests for slotflow.workflow.scheduling module."""

import asyncio

import pytest

from slotflow.workflow.scheduling import ScheduledTask


class TestScheduledTask:
    def test_fires_once_after_delay(self):
        calls = []

        async def main():
            task = ScheduledTask(0.01, lambda: calls.append("fired"))
            assert task.pending
            await asyncio.sleep(0.05)
            return task

        task = asyncio.run(main())
        assert calls == ["fired"]
        assert task.fired
        assert not task.cancelled
        assert not task.pending

    def test_cancel_before_firing(self):
        calls = []

        async def main():
            task = ScheduledTask(0.01, lambda: calls.append("fired"))
            task.cancel()
            await asyncio.sleep(0.05)
            return task

        task = asyncio.run(main())
        assert calls == []
        assert task.cancelled
        assert not task.fired

    def test_cancel_after_firing_is_noop(self):
        async def main():
            task = ScheduledTask(0, lambda: None)
            await asyncio.sleep(0.01)
            task.cancel()
            return task

        task = asyncio.run(main())
        assert task.fired
        assert not task.cancelled

    def test_needs_running_loop(self):
        with pytest.raises(RuntimeError):
            ScheduledTask(1, lambda: None)
