from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .dispatcher import ActionDispatcher, local_now
from .extraction import OrderFieldExtractor
from .gemini_client import GeminiClient
from .guides import GuideLibrary
from .llm import TextBackend
from .models import ChatRequest, ChatResponse, DeleteResult, Order, OrderCreate, OrderUpdate
from .order_store import OrderStore
from .prompt_loader import PromptSet, load_prompts
from .session_store import InMemorySessionStore, SessionReaper

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("saathi").setLevel(log_level)
logger = logging.getLogger("saathi.app")

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

DEFAULT_USER_ID = "demo-user"


def build_backend(settings: Settings) -> Optional[TextBackend]:
    """Return the Gemini backend, or None when no API key is configured."""
    if not settings.gemini_api_key:
        logger.warning("backend route=unconfigured reason=missing GEMINI_API_KEY")
        return None
    return GeminiClient(settings)


def build_dispatcher(
    settings: Settings,
    backend: Optional[TextBackend],
    orders: Optional[OrderStore] = None,
    sessions: Optional[InMemorySessionStore] = None,
    clock: Callable[[], datetime] = local_now,
    prompts: Optional[PromptSet] = None,
) -> ActionDispatcher:
    """Purpose: Assemble the dispatcher and its collaborators from settings.
    Inputs/Outputs: Inputs are Settings, an optional backend, optional stores, a clock,
        and optional preloaded prompts; output is a ready ActionDispatcher.
    Side Effects / State: Reads prompt and guide files; loads orders from disk.
    Dependencies: load_prompts, GuideLibrary, OrderStore, InMemorySessionStore.
    Failure Modes: Missing prompt or guide files raise at startup.
    If Removed: The app and the voice client must wire everything by hand.
    Testing Notes: Build with in-memory stores and a fake backend.
    """
    # Prompts are read once; edits need a restart.
    prompts = prompts or load_prompts(settings.prompts_dir)
    if orders is None:
        orders = OrderStore(settings.orders_path)
    if sessions is None:
        sessions = InMemorySessionStore(
            prompts.system_preamble,
            max_turns=settings.max_session_turns,
            ttl_seconds=settings.session_ttl_sec,
        )
    return ActionDispatcher(
        orders=orders,
        sessions=sessions,
        extractor=OrderFieldExtractor(backend, prompts.order_extraction),
        guides=GuideLibrary(settings.guides_path),
        backend=backend,
        system_preamble=prompts.system_preamble,
        translation_prompt=prompts.translation,
        history_window=settings.history_window,
        order_amount=settings.order_amount,
        order_expense=settings.order_expense,
        late_penalty=settings.late_penalty,
        default_lang=settings.default_lang,
        clock=clock,
    )


def create_app(settings: Optional[Settings] = None, backend: Optional[TextBackend] = None) -> FastAPI:
    """Purpose: Build the FastAPI application with its stores and routes.
    Inputs/Outputs: Inputs are optional Settings and backend; output is a FastAPI app.
    Side Effects / State: Creates the order and session stores; the app lifespan runs
        the idle-session reaper.
    Dependencies: build_backend, build_dispatcher, SessionReaper.
    Failure Modes: Startup errors from prompt/guide loading propagate.
    If Removed: There is no HTTP surface.
    Testing Notes: Pass Settings with an in-memory orders_path and a fake backend.
    """
    settings = settings or load_settings()
    if backend is None:
        backend = build_backend(settings)
    prompts = load_prompts(settings.prompts_dir)
    orders = OrderStore(settings.orders_path)
    sessions = InMemorySessionStore(
        prompts.system_preamble,
        max_turns=settings.max_session_turns,
        ttl_seconds=settings.session_ttl_sec,
    )
    dispatcher = build_dispatcher(settings, backend, orders=orders, sessions=sessions, prompts=prompts)
    reaper = SessionReaper(sessions, settings.session_reap_interval_sec)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        reaper.start()
        try:
            yield
        finally:
            reaper.stop()

    app = FastAPI(title="Porter Saathi Assistant", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.orders = orders
    app.state.sessions = sessions

    @app.post("/api/ai", response_model=ChatResponse, response_model_exclude_none=True)
    def ai_reply(request: ChatRequest):
        """Purpose: Handle one utterance and return the assistant reply.
        Inputs/Outputs: Input is ChatRequest {text, userId?, lang?}; output is
            ChatResponse {reply, action, ...}.
        Side Effects / State: Updates the user's session and possibly the order store.
        Dependencies: ActionDispatcher.handle.
        Failure Modes: Unexpected errors are logged and returned as HTTP 500.
        If Removed: Clients cannot talk to the assistant.
        Testing Notes: Post a create then a track request and compare tracking IDs.
        """
        user_id = request.user_id or DEFAULT_USER_ID
        try:
            result = dispatcher.handle(user_id, request.text, lang=request.lang)
        except Exception as exc:
            logger.exception("user=%s route=internal_error", user_id)
            return JSONResponse(status_code=500, content={"reply": "Internal error", "error": str(exc)})
        return ChatResponse(
            reply=result.reply,
            action=result.action,
            order=result.order,
            orders=result.orders,
            module=result.module,
            guide=result.guide,
            tracking_id=result.tracking_id,
        )

    @app.get("/api/orders", response_model=List[Order])
    def list_orders(limit: int = Query(default=10, ge=1, le=100)) -> List[Order]:
        return orders.find_recent(limit)

    @app.post("/api/orders", response_model=Order, status_code=201)
    def create_order(payload: OrderCreate) -> Order:
        return dispatcher.place_order(payload.model_dump(), created_by="api", created_via="api")

    @app.get("/api/orders/track/{tracking_id}", response_model=Order)
    def track_order(tracking_id: str) -> Order:
        order = orders.find_by_tracking_code(tracking_id)
        if order is None:
            raise HTTPException(status_code=404, detail=f"Order {tracking_id} not found")
        return order

    @app.put("/api/orders/{order_id}", response_model=Order)
    def update_order(order_id: str, payload: OrderUpdate) -> Order:
        order = orders.update_by_id(order_id, payload.model_dump(exclude_unset=True))
        if order is None:
            raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
        return order

    @app.delete("/api/orders/{order_id}", response_model=DeleteResult)
    def delete_order(order_id: str) -> DeleteResult:
        return DeleteResult(**orders.delete_by_id(order_id))

    @app.get("/api/sessions/{user_id}")
    def get_session(user_id: str) -> dict:
        """Return the stored transcript for a user; unknown users get an empty list."""
        turns = sessions.window(user_id, settings.max_session_turns)
        return {"user_id": user_id, "messages": [turn.model_dump() for turn in turns]}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
