import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .catalog import CatalogClient
from .config import Settings
from .debounce import DebounceGate
from .models import SearchResponse, TrendingEntry, ViewState
from .orchestrator import TrendingOrchestrator
from .store import AppwriteCounterStore, CounterStore, InMemoryCounterStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> CounterStore:
    if settings.appwrite_configured:
        return AppwriteCounterStore(settings)
    logger.warning("⚠️ Appwrite is not configured, search counts are kept in memory only")
    return InMemoryCounterStore()


def create_app(
    settings: Optional[Settings] = None,
    catalog: Optional[CatalogClient] = None,
    store: Optional[CounterStore] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or Settings.from_env()
        logging.basicConfig(level=cfg.log_level.upper())
        logger.info("🚀 Starting movie search (debounce %dms, top %d)", cfg.debounce_ms, cfg.trending_limit)
        if not cfg.catalog_configured and catalog is None:
            logger.warning("⚠️ No TMDB credentials configured, catalog requests will be rejected")

        app.state.settings = cfg
        app.state.catalog = catalog or CatalogClient(cfg)
        app.state.store = store or build_store(cfg)
        app.state.orchestrator = new_orchestrator()
        await app.state.orchestrator.refresh_trending()
        yield
        # Let pending counter writes land before closing
        await app.state.orchestrator.wait_idle()
        # Only close what startup created
        if catalog is None:
            await app.state.catalog.aclose()
        if store is None:
            await app.state.store.aclose()

    app = FastAPI(title="Movie Trends", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    def new_orchestrator() -> TrendingOrchestrator:
        cfg = app.state.settings
        return TrendingOrchestrator(
            app.state.catalog,
            app.state.store,
            image_base_url=cfg.tmdb_image_base_url,
            trending_limit=cfg.trending_limit,
        )

    # --- API Endpoints ---
    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/search", response_model=SearchResponse)
    async def search_api(q: str = Query("", max_length=200)):
        orchestrator: TrendingOrchestrator = app.state.orchestrator
        outcome = await orchestrator.run_cycle(q)
        return SearchResponse(
            query=outcome.query,
            count=len(outcome.movies),
            results=outcome.movies,
            error_message=outcome.error_message,
            trending=orchestrator.state.trending,
        )

    @app.get("/trending", response_model=List[TrendingEntry])
    async def get_trending():
        orchestrator: TrendingOrchestrator = app.state.orchestrator
        # Searches answered earlier may still be writing their counters
        await orchestrator.wait_idle()
        return await orchestrator.refresh_trending()

    @app.websocket("/ws/search")
    async def search_socket(websocket: WebSocket):
        """Each text frame is the current search box content; view states stream back."""
        await websocket.accept()
        orchestrator = new_orchestrator()

        async def send_state(state: ViewState):
            await websocket.send_text(state.model_dump_json())

        orchestrator.add_listener(send_state)
        gate = DebounceGate(app.state.settings.debounce_ms, orchestrator.run_cycle)
        try:
            # Same as a fresh page: load trending, show the popular listing
            await orchestrator.refresh_trending()
            await orchestrator.run_cycle("")
            while True:
                gate.push(await websocket.receive_text())
        except WebSocketDisconnect:
            logger.debug("Search socket closed")
        finally:
            orchestrator.remove_listener(send_state)
            await gate.aclose()
            await orchestrator.wait_idle()

    return app


app = create_app()
