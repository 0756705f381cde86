"""
HTTP surface for the knowledge-base matcher.

The engine loads in the background after startup; until it is ready /health
reports "loading" and /chat answers with a please-wait reply.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .schemas import (
    AlternativeResponse,
    ChatMessageResponse,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    MatchRequest,
    MatchResponse,
)
from ..core import config
from ..core.db import health_check
from ..core.errors import ConfigError, KnowledgeBaseError
from ..core.replies import render_reply, wait_for_load_reply
from ..core.storage import SQLiteKeyValueStore
from ..util.logging import logger
from ..vector.engine import MatchEngine, not_ready_result

router = APIRouter()


async def warm_up(app: FastAPI) -> None:
    """Load the embedding model, then the engine's vectors."""
    engine: MatchEngine = app.state.engine
    try:
        await asyncio.to_thread(engine.provider.load)
        await engine.load(progress=lambda done, total: logger.info(f"Embedding entries... ({done}/{total})"))
    except Exception as e:
        logger.exception("Engine warm-up failed")
        app.state.load_error = f"Engine failed to load: {e}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    issues = config.validate_config()
    if issues:
        logger.log_config_issues(issues)

    if app.state.engine is None and app.state.load_error is None:
        try:
            app.state.engine = config.get_match_engine()
        except (KnowledgeBaseError, ConfigError) as e:
            logger.error(f"Engine unavailable: {e}")
            app.state.load_error = str(e)

    if app.state.engine is not None and not app.state.engine.ready:
        app.state.load_task = asyncio.create_task(warm_up(app))

    yield

    task = app.state.load_task
    if task is not None and not task.done():
        task.cancel()


def _engine(request: Request) -> Optional[MatchEngine]:
    return request.app.state.engine


def _cache_db_health(engine: Optional[MatchEngine]) -> Optional[bool]:
    """Health of the SQLite database behind the engine's cache; None when there is none."""
    if engine is None or engine.cache is None:
        return None
    store = engine.cache.store
    if not isinstance(store, SQLiteKeyValueStore):
        return None
    return health_check(store.db_path)


@router.get("/health", response_model=HealthResponse)
def health_check_endpoint(request: Request):
    """Report load state of the engine."""
    engine = _engine(request)
    error = request.app.state.load_error

    if error is not None:
        status = "error"
    elif engine is not None and engine.ready:
        status = "ready"
    else:
        status = "loading"

    stats = engine.stats() if engine is not None else {}
    return HealthResponse(
        status=status,
        version=config.VERSION,
        entry_count=stats.get("entry_count", 0),
        cache_hit=stats.get("cache_hit"),
        search_mode=stats.get("search_mode"),
        categories=stats.get("categories", {}),
        db_health=_cache_db_health(engine),
        error=error
    )


@router.post("/match", response_model=MatchResponse)
async def match_endpoint(req: MatchRequest, request: Request):
    """Return the raw match result for a query."""
    engine = _engine(request)
    result = await engine.find_best_match(req.query) if engine is not None else not_ready_result()

    return MatchResponse(
        status=result.status,
        answer=result.answer,
        confidence=result.confidence,
        matched_entry_id=result.matched_entry_id,
        matched_text=result.matched_text,
        category=result.category,
        alternatives=[
            AlternativeResponse(entry_id=alt.entry_id, text=alt.text,
                                confidence=alt.confidence, category=alt.category)
            for alt in result.alternatives
        ]
    )


@router.post("/chat", response_model=ChatResponse)
async def chat_endpoint(req: ChatRequest, request: Request):
    """Answer a chat message with the follow-up hints a chat client displays."""
    engine = _engine(request)
    if engine is None or not engine.ready:
        reply = wait_for_load_reply()
    else:
        result = await engine.find_best_match(req.message)
        reply = render_reply(result, engine.settings, engine.category_index.categories)

    return ChatResponse(
        status=reply.status,
        reply=reply.reply,
        confidence=reply.confidence,
        messages=[ChatMessageResponse(kind=m.kind, text=m.text) for m in reply.messages]
    )


def create_app(engine: Optional[MatchEngine] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        engine: Pre-built engine; when None one is built from config at startup
    """
    app = FastAPI(
        title="Knowledge Base Matcher API",
        version=config.VERSION,
        description="Semantic question matching over a fixed knowledge base",
        docs_url="/docs" if config.debug_enabled() else None,
        redoc_url="/redoc" if config.debug_enabled() else None,
        lifespan=lifespan
    )
    app.state.engine = engine
    app.state.load_error = None
    app.state.load_task = None

    # Allow the chat web client to connect
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8080", "http://127.0.0.1:8080"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()
