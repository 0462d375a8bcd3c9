"""Backend registry — which tool servers exist, whether they answer, and how to call them.

Every backend speaks the same small HTTP contract:
  GET  /info                      liveness probe (body ignored)
  GET  /tools                     [{name, description, inputSchema}]
  POST /tools/<name>/execute      {"arguments": {...}} -> JSON result
  GET  /resources, GET /prompts   optional listings
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .config import settings
from .errors import BackendError

logger = logging.getLogger(__name__)


@dataclass
class BackendEndpoint:
    id: str
    base_url: str
    reachable: bool = False
    last_error: str = ""
    last_checked: Optional[float] = None
    tools_listed: bool = False  # has reported its tool list at least once


class BackendRegistry:
    """Process-wide table of backends, keyed by logical id.

    Endpoints are never removed, only marked unreachable. Registration order
    is preserved and used by the catalog when presenting tools.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 probe_timeout: Optional[float] = None):
        self._endpoints: Dict[str, BackendEndpoint] = {}
        self._owners: Dict[str, str] = {}
        self._client = client or httpx.AsyncClient()
        self.probe_timeout = probe_timeout if probe_timeout is not None else settings.probe_timeout_s

    # ── Registration ─────────────────────────────────────────

    def register(self, endpoint: BackendEndpoint) -> BackendEndpoint:
        """Add or replace an endpoint by id. Re-registering keeps its position."""
        endpoint.base_url = endpoint.base_url.rstrip("/")
        existing = self._endpoints.get(endpoint.id)
        if existing and existing.base_url == endpoint.base_url:
            return existing
        self._endpoints[endpoint.id] = endpoint
        logger.info(f"Registered backend: {endpoint.id} -> {endpoint.base_url}")
        return endpoint

    def get(self, backend_id: str) -> Optional[BackendEndpoint]:
        return self._endpoints.get(backend_id)

    def endpoints(self) -> List[BackendEndpoint]:
        return list(self._endpoints.values())

    def index_of(self, backend_id: str) -> int:
        for i, backend in enumerate(self._endpoints):
            if backend == backend_id:
                return i
        return len(self._endpoints)

    # ── Ownership ────────────────────────────────────────────

    def set_owners(self, owners: Dict[str, str]):
        """Replace the tool-name → backend-id table (called by the catalog after a merge)."""
        self._owners = dict(owners)

    def resolve_owner(self, tool_name: str) -> Optional[str]:
        """Backend id that last registered ``tool_name``, or None."""
        return self._owners.get(tool_name)

    # ── Probing ──────────────────────────────────────────────

    async def probe(self, backend_id: str) -> bool:
        """Bounded-time GET /info. Records the outcome, never raises."""
        endpoint = self._endpoints.get(backend_id)
        if endpoint is None:
            logger.warning(f"Probe requested for unknown backend: {backend_id}")
            return False

        t0 = time.monotonic()
        try:
            resp = await self._client.get(f"{endpoint.base_url}/info", timeout=self.probe_timeout)
            if not 200 <= resp.status_code < 300:
                raise BackendError(endpoint.id, f"unexpected status {resp.status_code}",
                                   status_code=resp.status_code)
        except (httpx.HTTPError, BackendError) as e:
            endpoint.reachable = False
            endpoint.last_error = str(e) or type(e).__name__
            logger.warning(f"Backend {endpoint.id} unreachable: {endpoint.last_error}")
        else:
            endpoint.reachable = True
            endpoint.last_error = ""
            logger.info(f"Backend {endpoint.id} reachable ({time.monotonic()-t0:.2f}s)")
        endpoint.last_checked = time.time()
        return endpoint.reachable

    async def probe_all(self) -> Dict[str, bool]:
        """Probe every backend concurrently. One slow backend never blocks the others."""
        ids = list(self._endpoints)
        results = await asyncio.gather(*(self.probe(i) for i in ids))
        return dict(zip(ids, results))

    # ── Backend contract ─────────────────────────────────────

    def _require(self, backend_id: str) -> BackendEndpoint:
        endpoint = self._endpoints.get(backend_id)
        if endpoint is None:
            raise BackendError(backend_id, "backend not registered")
        return endpoint

    async def _request(self, endpoint: BackendEndpoint, method: str, path: str,
                       timeout: float, json_body: Any = None) -> Any:
        url = f"{endpoint.base_url}{path}"
        try:
            resp = await self._client.request(method, url, json=json_body, timeout=timeout)
        except httpx.HTTPError as e:
            error = str(e) or type(e).__name__
            if isinstance(e, httpx.TransportError):
                endpoint.reachable = False
                endpoint.last_error = error
            raise BackendError(endpoint.id, f"{method} {path} failed: {error}") from e

        if not 200 <= resp.status_code < 300:
            detail = resp.text[:200]
            raise BackendError(endpoint.id, f"{method} {path} returned {resp.status_code}: {detail}",
                               status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError(endpoint.id, f"{method} {path} returned malformed JSON",
                               status_code=resp.status_code) from e

    async def list_tools(self, backend_id: str) -> List[dict]:
        endpoint = self._require(backend_id)
        data = await self._request(endpoint, "GET", "/tools", self.probe_timeout)
        if not isinstance(data, list):
            raise BackendError(backend_id, "invalid tools response (expected a JSON array)")
        endpoint.tools_listed = True
        return data

    async def execute(self, backend_id: str, tool_name: str, args: Dict[str, Any],
                      timeout: float) -> Any:
        endpoint = self._require(backend_id)
        return await self._request(
            endpoint, "POST", f"/tools/{tool_name}/execute", timeout,
            json_body={"arguments": args},
        )

    async def list_resources(self, backend_id: str) -> List[dict]:
        endpoint = self._require(backend_id)
        return await self._request(endpoint, "GET", "/resources", self.probe_timeout)

    async def list_prompts(self, backend_id: str) -> List[dict]:
        endpoint = self._require(backend_id)
        return await self._request(endpoint, "GET", "/prompts", self.probe_timeout)

    async def aclose(self):
        await self._client.aclose()


def build_registry(client: Optional[httpx.AsyncClient] = None) -> BackendRegistry:
    """Registry pre-populated from settings.backends."""
    registry = BackendRegistry(client=client)
    for backend_id, url in settings.backend_list():
        registry.register(BackendEndpoint(id=backend_id, base_url=url))
    return registry
