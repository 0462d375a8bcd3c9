"""Tests for config parsing and the background catalog refresher."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from toolrelay.config import parse_backends
from toolrelay.scheduler import refresh_once, start_catalog_refresher


class TestParseBackends:
    def test_ids_and_urls(self):
        assert parse_backends("scraping=http://localhost:3000/,automation=http://localhost:3003") == [
            ("scraping", "http://localhost:3000"),
            ("automation", "http://localhost:3003"),
        ]

    def test_bare_url_gets_generated_id(self):
        assert parse_backends("http://a:1, http://b:2") == [
            ("backend0", "http://a:1"), ("backend1", "http://b:2"),
        ]

    @pytest.mark.parametrize("raw", ["", " , ", "=http://x", "id="])
    def test_malformed_ignored(self, raw):
        assert parse_backends(raw) == []


class TestRefresher:
    @pytest.mark.asyncio
    async def test_refresh_once_swallows_errors(self):
        orch = MagicMock()
        orch.refresh_catalog = AsyncMock(side_effect=RuntimeError("boom"))
        orch.catalog.__len__.return_value = 4
        assert await refresh_once(orch) == 4

    @pytest.mark.asyncio
    async def test_refresher_loop(self):
        orch = MagicMock()
        orch.refresh_catalog = AsyncMock(return_value=3)
        task = asyncio.create_task(start_catalog_refresher(orch, interval=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert orch.refresh_catalog.await_count >= 1
