"""Tests for tools/executor.py — per-call isolation, timeouts, result normalization."""
import asyncio
from unittest.mock import patch

import pytest

from toolrelay.config import settings
from toolrelay.tools.catalog import ToolCall, ToolDescriptor, ToolParam
from toolrelay.tools.executor import (
    apply_defaults, dispatch_all, execute_tool, normalize, timeout_for,
)

from conftest import load_catalog


class TestNormalize:
    def test_success_body(self):
        r = normalize("web_scraper", {"success": True, "data": {"title": "x"}})
        assert r.success is True
        assert r.payload["data"]["title"] == "x"

    @pytest.mark.parametrize("body", [
        {"success": False, "message": "quota"},
        {"error": "bad phone number"},
    ])
    def test_in_band_failure(self, body):
        r = normalize("send_whatsapp", body)
        assert r.success is False
        assert r.payload == body

    def test_non_dict_body(self):
        assert normalize("web_search", ["a", "b"]).success is True


class TestDefaultsAndTimeouts:
    def test_schema_defaults_filled(self):
        tool = ToolDescriptor(name="send_whatsapp", description="", backend="automation", params=[
            ToolParam(name="phoneNumber"),
            ToolParam(name="messageType", required=False, default="text"),
        ])
        assert apply_defaults(tool, {"phoneNumber": "+1"}) == {"phoneNumber": "+1", "messageType": "text"}
        assert apply_defaults(tool, {"messageType": "image"}) == {"messageType": "image"}

    def test_timeout_classes(self):
        slow = ToolDescriptor(name="web_scraper", description="", params=[], backend="scraping",
                              long_running=True)
        fast = ToolDescriptor(name="send_email", description="", params=[], backend="automation")
        assert timeout_for(slow) == settings.scrape_timeout_s
        assert timeout_for(fast) == settings.tool_timeout_s


class TestExecuteTool:
    @pytest.mark.asyncio
    async def test_success(self, registry, catalog, backends):
        await load_catalog(registry, catalog)
        r = await execute_tool(ToolCall("send_whatsapp", {"phoneNumber": "+1", "message": "hi"}),
                               catalog, registry)
        assert r.success is True
        assert backends["automation.test"].calls == [
            ("send_whatsapp", {"phoneNumber": "+1", "message": "hi", "messageType": "text"}),
        ]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry, catalog):
        await load_catalog(registry, catalog)
        r = await execute_tool(ToolCall("teleport", {}), catalog, registry)
        assert r.success is False
        assert r.payload == {"error": "Unknown tool: teleport"}

    @pytest.mark.asyncio
    async def test_backend_rejection(self, registry, catalog, backends):
        await load_catalog(registry, catalog)
        backends["automation.test"].results["send_email"] = (422, {"error": "invalid recipient"})
        r = await execute_tool(ToolCall("send_email", {"to": ""}), catalog, registry)
        assert r.success is False
        assert r.payload["status"] == 422
        assert "invalid recipient" in r.payload["error"]

    @pytest.mark.asyncio
    async def test_timeout(self, registry, catalog, backends):
        await load_catalog(registry, catalog)
        backends["automation.test"].delay = 1.0
        r = await execute_tool(ToolCall("send_email", {}), catalog, registry, timeout=0.05)
        assert r.success is False
        assert r.payload["error"].startswith("Timed out")

    @pytest.mark.asyncio
    async def test_default_timeout_from_settings(self, registry, catalog, backends):
        await load_catalog(registry, catalog)
        backends["automation.test"].delay = 1.0
        with patch.object(settings, "tool_timeout_s", 0.05):
            r = await execute_tool(ToolCall("send_email", {}), catalog, registry)
        assert r.success is False


class TestDispatchAll:
    @pytest.mark.asyncio
    async def test_empty_batch(self, registry, catalog):
        assert await dispatch_all([], catalog, registry) == []

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, registry, catalog, backends):
        await load_catalog(registry, catalog)
        backends["automation.test"].down = True
        calls = [
            ToolCall("web_scraper", {"url": "https://a.com"}),
            ToolCall("send_email", {"to": "a@b.com"}),
            ToolCall("web_search", {"query": "pizza"}),
        ]
        results = await dispatch_all(calls, catalog, registry)
        assert [r.tool for r in results] == ["web_scraper", "send_email", "web_search"]
        assert [r.success for r in results] == [True, False, True]
        assert registry.get("automation").reachable is False

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, registry, catalog, backends):
        await load_catalog(registry, catalog)
        backends["scraping.test"].delay = 0.2
        backends["automation.test"].delay = 0.2
        calls = [ToolCall("web_scraper", {"url": "https://a.com"}),
                 ToolCall("send_email", {"to": "a@b.com"}),
                 ToolCall("web_search", {"query": "q"})]
        loop = asyncio.get_running_loop()
        t0 = loop.time()
        results = await dispatch_all(calls, catalog, registry)
        assert all(r.success for r in results)
        assert loop.time() - t0 < 0.5

    @pytest.mark.asyncio
    async def test_same_tool_twice(self, registry, catalog, backends):
        await load_catalog(registry, catalog)
        calls = [ToolCall("web_search", {"query": "a"}), ToolCall("web_search", {"query": "b"})]
        results = await dispatch_all(calls, catalog, registry)
        assert [r.payload["data"]["echo"]["query"] for r in results] == ["a", "b"]
