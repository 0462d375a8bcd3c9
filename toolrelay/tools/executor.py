"""Tool executor — resolves each call to its backend and runs the batch concurrently."""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from ..backends import BackendRegistry
from ..config import settings
from ..errors import BackendError
from .catalog import ToolCall, ToolCatalog, ToolDescriptor, ToolResult

logger = logging.getLogger(__name__)


def normalize(tool_name: str, body: Any) -> ToolResult:
    """Wrap a raw backend body into a uniform ToolResult.

    Backends report their own failures in-band as ``{"success": false, ...}``
    or ``{"error": ...}``; anything else counts as success.
    """
    if isinstance(body, dict):
        if body.get("success") is False or "error" in body:
            return ToolResult(tool=tool_name, success=False, payload=body)
    return ToolResult(tool=tool_name, success=True, payload=body)


def timeout_for(tool: ToolDescriptor) -> float:
    """Scraping-class tools get the long timeout, message-sending ones the short one."""
    return settings.scrape_timeout_s if tool.long_running else settings.tool_timeout_s


def apply_defaults(tool: ToolDescriptor, args: Dict[str, Any]) -> Dict[str, Any]:
    """Fill schema defaults for params the call left out."""
    filled = dict(args)
    for param in tool.params:
        if param.name not in filled and param.default is not None:
            filled[param.name] = param.default
    missing = [p.name for p in tool.params if p.required and p.name not in filled]
    if missing:
        # Sent anyway; the backend's rejection becomes a visible tool failure
        logger.warning(f"Tool {tool.name} called without required params: {missing}")
    return filled


async def execute_tool(call: ToolCall, catalog: ToolCatalog, registry: BackendRegistry,
                       timeout: Optional[float] = None) -> ToolResult:
    """Execute one call. Every failure is returned as a failed ToolResult, never raised."""
    tool = catalog.lookup(call.tool)
    backend_id = registry.resolve_owner(call.tool) if tool else None
    if not tool or not backend_id:
        logger.warning(f"Unknown tool: {call.tool}")
        return ToolResult(tool=call.tool, success=False,
                          payload={"error": f"Unknown tool: {call.tool}"})

    args = apply_defaults(tool, call.args)
    limit = timeout if timeout is not None else timeout_for(tool)

    arg_str = ", ".join(f"{k}={v!r}" for k, v in args.items())
    logger.info(f"Executing tool: {call.tool}({arg_str}) on {backend_id}")
    t0 = time.monotonic()

    try:
        body = await asyncio.wait_for(registry.execute(backend_id, call.tool, args, limit), timeout=limit)
        result = normalize(call.tool, body)
    except asyncio.TimeoutError:
        logger.error(f"Tool {call.tool} timed out after {limit:.0f}s")
        result = ToolResult(tool=call.tool, success=False,
                            payload={"error": f"Timed out after {limit:.0f}s"})
    except BackendError as e:
        logger.error(f"Tool {call.tool} failed: {e}")
        result = ToolResult(tool=call.tool, success=False,
                            payload={"error": str(e), "status": e.status_code})
    except Exception as e:
        logger.error(f"Tool {call.tool} failed: {e}", exc_info=True)
        result = ToolResult(tool=call.tool, success=False, payload={"error": f"Execution failed: {e}"})

    elapsed = time.monotonic() - t0
    logger.info(f"Tool {call.tool}: {elapsed:.1f}s -> {'ok' if result.success else 'error'}")
    return result


async def dispatch_all(calls: List[ToolCall], catalog: ToolCatalog,
                       registry: BackendRegistry) -> List[ToolResult]:
    """Run every call concurrently; returns once all have settled, in request order."""
    if not calls:
        return []
    return list(await asyncio.gather(*(execute_tool(c, catalog, registry) for c in calls)))
