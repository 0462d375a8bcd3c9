"""FastAPI application: wires registry, catalog, store and orchestrator together."""
import asyncio
import logging
from typing import Optional

from fastapi import FastAPI

from .api import router
from .backends import build_registry
from .config import settings
from .conversation import ConversationStore
from .pipeline import Orchestrator
from .scheduler import refresh_once, start_catalog_refresher
from .tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)


def build_orchestrator() -> Orchestrator:
    registry = build_registry()
    return Orchestrator(
        store=ConversationStore(settings.agent_instructions),
        catalog=ToolCatalog(registry),
        registry=registry,
    )


def create_app(orchestrator: Optional[Orchestrator] = None, background_refresh: bool = True) -> FastAPI:
    app = FastAPI(title="toolrelay")
    app.state.orchestrator = orchestrator or build_orchestrator()
    app.state.refresher = None
    app.include_router(router)

    @app.on_event("startup")
    async def startup():
        orch = app.state.orchestrator
        count = await refresh_once(orch)
        reachable = [b.id for b in orch.registry.endpoints() if b.reachable]
        logger.info(f"Startup: {count} tools from backends {reachable}")
        if background_refresh and settings.refresh_interval_s > 0:
            app.state.refresher = asyncio.create_task(start_catalog_refresher(orch))

    @app.on_event("shutdown")
    async def shutdown():
        task = app.state.refresher
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await app.state.orchestrator.registry.aclose()
        logger.info("Backend client closed")

    return app


app = create_app()
