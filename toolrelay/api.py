"""REST API routes: chat, tool catalog, direct scrape, backend status, conversation history."""
import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from .errors import BackendError, CompletionError
from .pipeline import Orchestrator, serialize_result
from .tools.catalog import ToolCall
from .tools.executor import execute_tool
from .tools.router import get_family, resolve_tool_name
from .protocol import (
    BackendStatus, ChatRequest, ChatResponse, ErrorMsg, HistoryMessage,
    HistoryResponse, ScrapeRequest, ScrapeResponse, StatusResponse, ToolOut,
    ToolParamOut, ToolsResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def _tools_response(orch: Orchestrator) -> ToolsResponse:
    tools = [
        ToolOut(
            name=t.name,
            description=t.description,
            backend=t.backend,
            long_running=t.long_running,
            params=[ToolParamOut(name=p.name, type=p.type, description=p.description,
                                 required=p.required, default=p.default, enum=p.enum)
                    for p in t.params],
        )
        for t in orch.catalog.all()
    ]
    return ToolsResponse(tools=tools, count=len(tools))


# ── Health / status ───────────────────────────────────────────

@router.get("/health")
async def health(orch: Orchestrator = Depends(get_orchestrator)):
    reachable = sum(1 for b in orch.registry.endpoints() if b.reachable)
    return {
        "status": "ok",
        "backends_reachable": reachable,
        "tools": len(orch.catalog),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/status", response_model=StatusResponse)
async def status(orch: Orchestrator = Depends(get_orchestrator)):
    owned = {}
    for tool in orch.catalog.all():
        owned[tool.backend] = owned.get(tool.backend, 0) + 1
    backends = [
        BackendStatus(
            id=b.id,
            base_url=b.base_url,
            reachable=b.reachable,
            tools_listed=b.tools_listed,
            tool_count=owned.get(b.id, 0),
            last_error=b.last_error,
            last_checked=b.last_checked,
        )
        for b in orch.registry.endpoints()
    ]
    return StatusResponse(backends=backends, tools=len(orch.catalog),
                          conversations=len(orch.store))


# ── Chat ──────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(req: ChatRequest, orch: Orchestrator = Depends(get_orchestrator)):
    message = req.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    conversation_id = req.conversation_id or str(uuid.uuid4())
    try:
        turn = await orch.process_turn(conversation_id, message)
    except CompletionError as e:
        logger.error(f"[{conversation_id}] Turn failed: {e}")
        return JSONResponse(
            status_code=502,
            content=ErrorMsg(error="Completion service failed", message=str(e)).model_dump(),
        )

    return ChatResponse(
        response=turn.text,
        conversation_id=conversation_id,
        tools_used=turn.tools_used,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ── Tools ─────────────────────────────────────────────────────

@router.get("/tools", response_model=ToolsResponse)
async def list_tools(orch: Orchestrator = Depends(get_orchestrator)):
    return _tools_response(orch)


@router.post("/tools/refresh", response_model=ToolsResponse)
async def refresh_tools(orch: Orchestrator = Depends(get_orchestrator)):
    await orch.refresh_catalog()
    return _tools_response(orch)


# ── Direct scrape ─────────────────────────────────────────────

@router.post("/scrape", response_model=ScrapeResponse)
async def scrape(req: ScrapeRequest, orch: Orchestrator = Depends(get_orchestrator)):
    url = req.url.strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")

    tool_name = resolve_tool_name(get_family("scrape"), orch.catalog)
    logger.info(f"Direct scrape request: {url} via {tool_name}")
    result = await execute_tool(ToolCall(tool_name, {"url": url}), orch.catalog, orch.registry)
    if not result.success:
        return JSONResponse(
            status_code=502,
            content=ErrorMsg(error="Failed to scrape website", message=serialize_result(result),
                             details={"tool": tool_name}).model_dump(),
        )

    return ScrapeResponse(
        tool=tool_name,
        scraped_data=result.payload,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ── Conversations ─────────────────────────────────────────────

@router.get("/conversations/{conversation_id}", response_model=HistoryResponse)
async def get_history(conversation_id: str, orch: Orchestrator = Depends(get_orchestrator)):
    if conversation_id not in orch.store:
        raise HTTPException(status_code=404, detail="Conversation not found")
    messages = [HistoryMessage(role=m.role, text=m.text, seq=m.seq)
                for m in orch.store.snapshot(conversation_id)]
    return HistoryResponse(conversation_id=conversation_id, messages=messages)


@router.delete("/conversations/{conversation_id}")
async def reset_history(conversation_id: str, orch: Orchestrator = Depends(get_orchestrator)):
    async with orch.store.lock(conversation_id):
        orch.store.reset(conversation_id)
    return {"ok": True}


# ── Backend pass-through listings ─────────────────────────────

async def _backend_listing(orch: Orchestrator, backend_id: str, kind: str):
    if orch.registry.get(backend_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown backend: {backend_id}")
    try:
        if kind == "resources":
            return await orch.registry.list_resources(backend_id)
        return await orch.registry.list_prompts(backend_id)
    except BackendError as e:
        logger.warning(f"Failed to list {kind} on {backend_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/backends/{backend_id}/resources")
async def backend_resources(backend_id: str, orch: Orchestrator = Depends(get_orchestrator)):
    return await _backend_listing(orch, backend_id, "resources")


@router.get("/backends/{backend_id}/prompts")
async def backend_prompts(backend_id: str, orch: Orchestrator = Depends(get_orchestrator)):
    return await _backend_listing(orch, backend_id, "prompts")
