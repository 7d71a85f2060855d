"""FastAPI server for the companion chat backend."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..chat import ConversationOrchestrator, EmptyMessageError
from ..config import load_settings
from ..llm import CompletionClient, CompletionError, EmbeddingClient
from ..memory import SessionSummarizer
from ..store import StorageError, open_store
from ..tasks import BackgroundTasks

log = logging.getLogger("companion.api")

settings = load_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(
        "llm config: base=%s model=%s embed=%s has_key=%s",
        settings.base_url, settings.chat_model, settings.embed_model,
        bool(settings.api_key),
    )
    store = open_store(settings)
    store.migrate()
    http = httpx.AsyncClient(timeout=settings.request_timeout)
    embedder = EmbeddingClient(settings, http)
    completer = CompletionClient(settings, http)
    tasks = BackgroundTasks()
    summarizer = SessionSummarizer(
        store, completer, embedder, window=settings.summary_window,
    )
    app.state.store = store
    app.state.orchestrator = ConversationOrchestrator(
        settings, store, embedder, completer,
        tasks=tasks, summarizer=summarizer,
    )

    yield

    await tasks.drain(timeout=30.0)
    await http.aclose()
    store.close()


app = FastAPI(title="companion-memory", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins or ["*"],
    allow_credentials=bool(settings.allow_origins),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

_NO_IDENTITY_PATHS = {"/healthz"}


@app.middleware("http")
async def anonymous_identity(request: Request, call_next):
    """Attach the caller's `aid`, minting and setting it on first contact.

    Preflights and health checks never mint an identity.
    """
    if request.method == "OPTIONS" or request.url.path in _NO_IDENTITY_PATHS:
        return await call_next(request)
    aid = request.cookies.get(settings.cookie_name)
    minted = not aid
    if minted:
        aid = str(uuid.uuid4())
    request.state.aid = aid
    response = await call_next(request)
    if minted:
        response.set_cookie(
            settings.cookie_name, aid,
            max_age=settings.cookie_max_age,
            httponly=True,
            samesite=settings.cookie_samesite,
            secure=settings.cookie_secure,
        )
    return response


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


@app.exception_handler(EmptyMessageError)
async def empty_message(request: Request, exc: EmptyMessageError):
    return JSONResponse({"error": "message is required"}, status_code=400)


@app.exception_handler(CompletionError)
@app.exception_handler(StorageError)
async def server_error(request: Request, exc: Exception):
    log.error("turn failed for %s: %s", getattr(request.state, "aid", "?"), exc)
    return JSONResponse({"error": "server error"}, status_code=500)


def _get_orchestrator() -> ConversationOrchestrator:
    return app.state.orchestrator


def _get_store():
    return app.state.store


class ChatRequest(BaseModel):
    message: str = Field(..., max_length=20_000)


# ---- Public (no prefix) ----

@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


# ---- Router (mounted at / and /api) ----

router = APIRouter()


@router.post("/chat")
async def chat(req: ChatRequest, request: Request):
    orch = _get_orchestrator()
    result = await orch.handle_turn(request.state.aid, req.message)
    return {"reply": result.reply}


@router.get("/memory")
async def list_memory(request: Request, limit: int = 500):
    """The caller's stored memories, newest first.

    Items carry id, user_aid, kind, text and created. Embedding vectors
    are omitted from the response.
    """
    limit = min(max(1, limit), 500)
    memories = await asyncio.to_thread(
        _get_store().list_memories, request.state.aid, limit
    )
    return {
        "items": [
            m.model_dump(mode="json", exclude={"embedding"}) for m in memories
        ]
    }


@router.get("/history")
async def history(request: Request, limit: int = 50):
    limit = min(max(1, limit), 200)
    orch = _get_orchestrator()
    chat = await orch.chat_for(request.state.aid)
    newest_first = await asyncio.to_thread(
        _get_store().recent_messages, chat.id, limit
    )
    return {
        "messages": [
            m.model_dump(mode="json") for m in reversed(newest_first)
        ]
    }


app.include_router(router)
app.include_router(router, prefix="/api")
