"""
tests/test_purge_task.py -- Tests for the background expired-token sweep in api/main.py.

Covers:
  - A failed sweep of any kind is logged and the loop keeps running
  - A successful sweep that removed rows is logged with the count
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from api.main import _purge_loop


def _run_sweeps(token_store: Mock, at_least: int) -> None:
    """Run _purge_loop with no delay until purge_expired has been called at_least times."""
    app = SimpleNamespace(state=SimpleNamespace(token_store=token_store))

    async def runner() -> None:
        task = asyncio.create_task(_purge_loop(app, 0))
        for _ in range(500):
            if token_store.purge_expired.call_count >= at_least:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(runner())


def test_purge_loop_survives_unexpected_errors(caplog):
    token_store = Mock()
    token_store.purge_expired.side_effect = itertools.chain(
        [RuntimeError("disk gone"), 2],
        itertools.repeat(0),
    )
    with caplog.at_level(logging.INFO, logger="bookadmin.api"):
        _run_sweeps(token_store, at_least=2)

    assert token_store.purge_expired.call_count >= 2
    assert "Expired token purge failed" in caplog.text
    assert "Purged 2 expired token(s)" in caplog.text


def test_purge_loop_quiet_when_nothing_expired(caplog):
    token_store = Mock()
    token_store.purge_expired.return_value = 0
    with caplog.at_level(logging.INFO, logger="bookadmin.api"):
        _run_sweeps(token_store, at_least=3)

    assert "Purged" not in caplog.text
