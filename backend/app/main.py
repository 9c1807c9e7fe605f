import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from config import settings
from models import async_session, create_tables, engine
from api.chat import router as chat_router
from api.prompt import router as prompt_router
from api.ui import router as ui_router
from core.errors import register_error_handlers
from services.completion import CompletionGateway
from services.prompt_store import PromptStore

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("grokchat.main")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("grokchat starting... DEBUG=%s", settings.DEBUG)

    try:
        await create_tables()
    except Exception as e:
        logger.warning("Could not create tables (database unreachable?): %s", e)

    app.state.prompt_store = PromptStore(
        async_session,
        key=settings.PROMPT_KEY,
        default=settings.DEFAULT_SYSTEM_PROMPT,
        timeout=settings.PROMPT_STORE_TIMEOUT,
        retries=settings.PROMPT_STORE_RETRIES,
    )

    client = None
    if settings.XAI_API_KEY:
        client = AsyncOpenAI(
            api_key=settings.XAI_API_KEY,
            base_url=settings.XAI_BASE_URL,
            timeout=settings.AI_TIMEOUT,
        )
    else:
        logger.warning("XAI_API_KEY is not set, /chat will answer 500")
    app.state.gateway = CompletionGateway(
        client,
        allowed_models=settings.ALLOWED_MODELS,
        default_model=settings.DEFAULT_MODEL,
        default_system_prompt=settings.DEFAULT_SYSTEM_PROMPT,
    )
    logger.info(
        "Chat auth mode=%s, reject empty=%s, default model=%s",
        settings.CHAT_AUTH_MODE, settings.CHAT_REJECT_EMPTY, settings.DEFAULT_MODEL,
    )

    yield

    logger.info("grokchat shutting down...")
    if client is not None:
        await client.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="grokchat API",
    version=VERSION,
    lifespan=lifespan,
)

if settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

register_error_handlers(app)

app.include_router(chat_router)
app.include_router(prompt_router)
app.include_router(ui_router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}
