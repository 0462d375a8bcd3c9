"""Tool catalog — merged, name-indexed table of every tool the backends advertise."""
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..backends import BackendRegistry
from ..errors import BackendError

logger = logging.getLogger(__name__)

# Backends and tool names that get the long (scraping-class) execution timeout
LONG_RUNNING_BACKENDS = ("scraping",)
LONG_RUNNING_HINTS = ("scrape", "scraper", "crawl", "search", "extract", "metadata")


@dataclass
class ToolParam:
    name: str
    type: str = "string"
    description: str = ""
    required: bool = True
    default: Any = None
    enum: Optional[List[Any]] = None


@dataclass
class ToolDescriptor:
    name: str
    description: str
    params: List[ToolParam]
    backend: str
    long_running: bool = False


@dataclass
class ToolCall:
    tool: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    tool: str
    success: bool
    payload: Any = None


def _params_from_schema(schema: Any) -> List[ToolParam]:
    if not isinstance(schema, dict):
        return []
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])
    params = []
    for name, spec in properties.items():
        spec = spec if isinstance(spec, dict) else {}
        params.append(ToolParam(
            name=name,
            type=spec.get("type", "string"),
            description=spec.get("description", ""),
            required=name in required or bool(spec.get("required", False)),
            default=spec.get("default"),
            enum=spec.get("enum"),
        ))
    return params


def normalize_descriptor(raw: dict, backend_id: str) -> Optional[ToolDescriptor]:
    """Map one backend tool entry to the canonical ToolDescriptor.

    Accepts the plain ``{name, description, inputSchema}`` shape as well as the
    ``parameters`` / ``input_schema`` spellings and the OpenAI-style
    ``{"type": "function", "function": {...}}`` wrapper.
    """
    if not isinstance(raw, dict):
        return None
    if isinstance(raw.get("function"), dict):
        raw = raw["function"]
    name = raw.get("name")
    if not name or not isinstance(name, str):
        return None
    schema = raw.get("inputSchema") or raw.get("input_schema") or raw.get("parameters") or {}
    lowered = name.lower()
    long_running = (backend_id in LONG_RUNNING_BACKENDS
                    or any(hint in lowered for hint in LONG_RUNNING_HINTS))
    return ToolDescriptor(
        name=name,
        description=raw.get("description", "") or "",
        params=_params_from_schema(schema),
        backend=backend_id,
        long_running=long_running,
    )


class ToolCatalog:
    """Flat view over the tool lists of every backend.

    Each backend's last good list is kept separately, so a backend that fails
    to list its tools keeps its previous (stale) entries. When two backends
    advertise the same name, the one merged most recently owns it.
    """

    def __init__(self, registry: BackendRegistry):
        self.registry = registry
        self._lists: Dict[str, List[ToolDescriptor]] = {}
        self._merged_at: Dict[str, int] = {}
        self._tools: Dict[str, ToolDescriptor] = {}
        self._merge_seq = itertools.count(1)

    async def _fetch(self, backend_id: str) -> Optional[List[ToolDescriptor]]:
        try:
            raw_tools = await self.registry.list_tools(backend_id)
        except BackendError as e:
            logger.warning(f"Tool list failed for {backend_id}, keeping {len(self._lists.get(backend_id, []))} "
                           f"cached tools: {e}")
            return None
        tools = []
        for raw in raw_tools:
            descriptor = normalize_descriptor(raw, backend_id)
            if descriptor is None:
                logger.warning(f"Skipping malformed tool entry from {backend_id}: {raw!r}")
                continue
            tools.append(descriptor)
        return tools

    async def refresh(self) -> int:
        """Re-list tools on every reachable backend. Returns the merged tool count."""
        ids = [b.id for b in self.registry.endpoints() if b.reachable]
        fetched = await asyncio.gather(*(self._fetch(i) for i in ids), return_exceptions=True)
        for backend_id, tools in zip(ids, fetched):
            if isinstance(tools, Exception):
                logger.error(f"Tool list failed for {backend_id}: {tools}")
                continue
            if tools is not None:
                self.merge(backend_id, tools)
        logger.info(f"Catalog refreshed: {len(self._tools)} tools from {len(self._lists)} backends")
        return len(self._tools)

    def merge(self, backend_id: str, tools: List[ToolDescriptor]):
        """Install a backend's tool list; its names now shadow any earlier owner."""
        self._lists[backend_id] = list(tools)
        self._merged_at[backend_id] = next(self._merge_seq)
        self._rebuild()

    def _rebuild(self):
        merged: Dict[str, ToolDescriptor] = {}
        for backend_id in sorted(self._lists, key=self._merged_at.__getitem__):
            for tool in self._lists[backend_id]:
                previous = merged.get(tool.name)
                if previous is not None and previous.backend != backend_id:
                    logger.warning(f"Tool name collision: {tool.name} from {backend_id} "
                                   f"shadows {previous.backend}")
                merged[tool.name] = tool
        self._tools = merged
        self.registry.set_owners({name: tool.backend for name, tool in merged.items()})

    def lookup(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def owner(self, name: str) -> Optional[str]:
        tool = self._tools.get(name)
        return tool.backend if tool else None

    def all(self) -> List[ToolDescriptor]:
        """Tools ordered by backend registration, then declaration order."""
        ordered = []
        for backend_id in sorted(self._lists, key=self.registry.index_of):
            for tool in self._lists[backend_id]:
                if self._tools.get(tool.name) is tool:
                    ordered.append(tool)
        return ordered

    def __len__(self) -> int:
        return len(self._tools)

    def descriptions_for_llm(self) -> str:
        """Generate tool list for the LLM prompt."""
        lines = []
        for tool in self.all():
            params = []
            for p in tool.params:
                req = "required" if p.required else "optional"
                params.append(f"{p.name}({req}): {p.description}")
            params_text = ", ".join(params) if params else "none"
            lines.append(f"- {tool.name}: {tool.description} | params: {params_text}")
        return "\n".join(lines)
