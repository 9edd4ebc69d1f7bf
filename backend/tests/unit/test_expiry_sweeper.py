"""
Unit tests for the background expiry sweeper.

WHAT: Start/stop lifecycle and error isolation of the sweep loop
WHY: A failing sweep must not kill the task or the app
HOW: Fake dispatcher with AsyncMock, driven by asyncio.run
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from bargain.realtime.expiry_sweeper import ExpirySweeper


def fake_dispatcher(side_effect=None):
    dispatcher = MagicMock()
    dispatcher.expire_stale = AsyncMock(return_value=0, side_effect=side_effect)
    return dispatcher


@pytest.mark.unit
class TestExpirySweeper:
    """Test sweeper lifecycle."""

    def test_disabled_when_interval_zero(self):
        async def scenario():
            sweeper = ExpirySweeper(fake_dispatcher(), 0)
            sweeper.start()
            assert sweeper.running is False
            await sweeper.stop()

        asyncio.run(scenario())

    def test_sweeps_repeatedly_and_survives_errors(self):
        calls = []

        def sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("db locked")
            return 0

        dispatcher = fake_dispatcher(side_effect=sweep)

        async def scenario():
            sweeper = ExpirySweeper(dispatcher, 0.01)
            sweeper.start()
            assert sweeper.running is True
            await asyncio.sleep(0.1)
            assert sweeper.running is True
            await sweeper.stop()
            assert sweeper.running is False

        asyncio.run(scenario())
        assert dispatcher.expire_stale.await_count >= 2

    def test_sweep_once_delegates(self):
        dispatcher = fake_dispatcher()
        dispatcher.expire_stale.return_value = 3
        assert asyncio.run(ExpirySweeper(dispatcher, 60).sweep_once()) == 3
