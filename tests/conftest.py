"""Shared fixtures: fake tool backends served through httpx.MockTransport."""
import asyncio
import json
import re
from typing import Dict, List, Optional

import httpx
import pytest

from toolrelay.backends import BackendEndpoint, BackendRegistry
from toolrelay.conversation import ConversationStore
from toolrelay.tools.catalog import ToolCatalog

INSTRUCTIONS = "You are a test assistant."

_EXECUTE = re.compile(r"^/tools/([^/]+)/execute$")


def tool(name: str, required=(), optional=(), description: str = "", defaults: Optional[dict] = None) -> dict:
    """Backend-shaped tool descriptor."""
    defaults = defaults or {}
    properties = {}
    for p in list(required) + list(optional):
        properties[p] = {"type": "string", "description": f"{p} value"}
        if p in defaults:
            properties[p]["default"] = defaults[p]
    return {
        "name": name,
        "description": description or f"{name} tool",
        "inputSchema": {"type": "object", "properties": properties, "required": list(required)},
    }


class FakeBackend:
    def __init__(self, tools: List[dict] = None, results: Dict[str, tuple] = None,
                 down: bool = False, info_status: int = 200, tools_status: int = 200,
                 delay: float = 0.0, corrupt_tools: bool = False):
        self.tools = tools or []
        self.results = results or {}
        self.down = down
        self.info_status = info_status
        self.tools_status = tools_status
        self.delay = delay
        self.corrupt_tools = corrupt_tools  # /tools answers with a broken gzip body
        self.calls = []

    def result_for(self, name: str, args: dict) -> tuple:
        if name in self.results:
            return self.results[name]
        return 200, {"success": True, "data": {"tool": name, "echo": args}}


def fake_transport(backends: Dict[str, FakeBackend]) -> httpx.MockTransport:
    async def handler(request: httpx.Request) -> httpx.Response:
        backend = backends.get(request.url.host)
        if backend is None or backend.down:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path == "/info":
            return httpx.Response(backend.info_status, json={"name": request.url.host})
        if path == "/tools":
            if backend.corrupt_tools:
                return httpx.Response(200, content=b"not gzip at all",
                                      headers={"Content-Encoding": "gzip"})
            return httpx.Response(backend.tools_status, json=backend.tools)
        if path == "/resources":
            return httpx.Response(200, json=[{"name": "docs", "uri": "res://docs"}])
        if path == "/prompts":
            return httpx.Response(200, json=[{"name": "summarize", "description": "Summarize"}])

        match = _EXECUTE.match(path)
        if match and request.method == "POST":
            name = match.group(1)
            args = json.loads(request.content)["arguments"]
            backend.calls.append((name, args))
            if backend.delay:
                await asyncio.sleep(backend.delay)
            status, body = backend.result_for(name, args)
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)

        return httpx.Response(404, json={"error": "Endpoint not found"})

    return httpx.MockTransport(handler)


@pytest.fixture
def backends():
    return {
        "scraping.test": FakeBackend(tools=[
            tool("web_scraper", required=["url"]),
            tool("web_search", required=["query"]),
        ]),
        "automation.test": FakeBackend(tools=[
            tool("send_email", required=["to", "subject", "body"]),
            tool("send_whatsapp", required=["phoneNumber", "message"],
                 optional=["messageType"], defaults={"messageType": "text"}),
            tool("create_calendar_event", required=["title", "startTime", "endTime"]),
        ]),
    }


@pytest.fixture
def registry(backends):
    client = httpx.AsyncClient(transport=fake_transport(backends))
    reg = BackendRegistry(client=client, probe_timeout=1.0)
    reg.register(BackendEndpoint(id="scraping", base_url="http://scraping.test"))
    reg.register(BackendEndpoint(id="automation", base_url="http://automation.test"))
    return reg


@pytest.fixture
def catalog(registry):
    return ToolCatalog(registry)


@pytest.fixture
def store():
    return ConversationStore(INSTRUCTIONS)


async def load_catalog(registry, catalog):
    await registry.probe_all()
    await catalog.refresh()
    return catalog
