"""Turn pipeline: extract intents → dispatch tools → synthesize the final reply.

Per turn:  Idle → extracting → (no tools: plain reply) | (tools: dispatch → synthesize) → Idle

Turns for the same conversation are serialized by the store's per-conversation
lock, so the append-only history never interleaves. Only CompletionError
escapes a turn; messages appended before it are kept.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence

from . import llm
from .backends import BackendRegistry
from .config import settings
from .conversation import ConversationStore, Message, ROLE_ASSISTANT, ROLE_NOTE, ROLE_USER
from .tools.catalog import ToolCatalog, ToolResult
from .tools.executor import dispatch_all
from .tools.router import route

logger = logging.getLogger(__name__)

CompleteFn = Callable[[Sequence[Message], str], Awaitable[str]]

CHAT_PROMPT = """Available tools:
{tool_list}

Respond naturally to the user's last message."""

SYNTHESIS_PROMPT = """Based on the tool execution results below, provide a comprehensive response to: "{utterance}"

Tool Results:
{summary}

Please provide a helpful and informative response. If a tool failed, say so briefly."""


@dataclass
class TurnResult:
    conversation_id: str
    text: str
    results: List[ToolResult] = field(default_factory=list)

    @property
    def tools_used(self) -> List[str]:
        return [r.tool for r in self.results]


def serialize_result(result: ToolResult, max_chars: Optional[int] = None) -> str:
    """Deterministic one-line summary of a result, truncated to max_chars."""
    limit = max_chars if max_chars is not None else settings.result_max_chars
    status = "ok" if result.success else "error"
    payload = json.dumps(result.payload, sort_keys=True, ensure_ascii=False, default=str)
    if len(payload) > limit:
        payload = payload[:limit] + "...(truncated)"
    return f"{result.tool} [{status}]: {payload}"


class Orchestrator:
    """Runs conversation turns against the store, catalog and backends."""

    def __init__(self, store: ConversationStore, catalog: ToolCatalog,
                 registry: BackendRegistry, complete: Optional[CompleteFn] = None):
        self.store = store
        self.catalog = catalog
        self.registry = registry
        self._complete = complete or llm.complete

    async def process_turn(self, conversation_id: str, text: str,
                           now: Optional[datetime] = None) -> TurnResult:
        async with self.store.lock(conversation_id):
            return await self._run_turn(conversation_id, text, now)

    async def _run_turn(self, conversation_id: str, text: str,
                        now: Optional[datetime]) -> TurnResult:
        cid = conversation_id
        pipeline_t0 = time.monotonic()
        self.store.append(cid, ROLE_USER, text)

        calls = route(text, catalog=self.catalog, now=now)
        logger.info(f"[{cid}] Intent: {len(calls)} tool call(s) {[c.tool for c in calls]}")

        if not calls:
            augmentation = ""
            if len(self.catalog):
                augmentation = CHAT_PROMPT.format(tool_list=self.catalog.descriptions_for_llm())
            reply = await self._complete(self.store.snapshot(cid), augmentation)
            self.store.append(cid, ROLE_ASSISTANT, reply)
            logger.info(f"[{cid}] Plain reply ({time.monotonic()-pipeline_t0:.2f}s)")
            return TurnResult(conversation_id=cid, text=reply)

        t0 = time.monotonic()
        results = await dispatch_all(calls, self.catalog, self.registry)
        failed = sum(1 for r in results if not r.success)
        logger.info(f"[{cid}] Dispatch: {len(results)} results, {failed} failed ({time.monotonic()-t0:.2f}s)")

        summaries = [serialize_result(r) for r in results]
        for summary in summaries:
            self.store.append(cid, ROLE_NOTE, f"Tool result: {summary}")

        augmentation = SYNTHESIS_PROMPT.format(utterance=text, summary="\n".join(summaries))
        reply = await self._complete(self.store.snapshot(cid), augmentation)
        self.store.append(cid, ROLE_ASSISTANT, reply)
        logger.info(f"[{cid}] Synthesized reply ({time.monotonic()-pipeline_t0:.2f}s)")
        return TurnResult(conversation_id=cid, text=reply, results=results)

    async def refresh_catalog(self) -> int:
        """Re-probe every backend, then re-list tools on the reachable ones."""
        await self.registry.probe_all()
        return await self.catalog.refresh()
