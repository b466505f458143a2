"""
FastAPI entrypoint for the trip collaboration backend.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tripcore.core.config import settings
from tripcore.core.exceptions import CollabError
from tripcore.core.utils import format_error
from tripcore.api.router import api_router
from tripcore.db.session import init_db
from tripcore.realtime.hub import hub

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def reap_idle_subscriptions():
    """Periodically drop live-update subscriptions that stopped accepting frames."""
    interval = min(settings.SSE_HEARTBEAT_SECONDS, settings.SSE_IDLE_TIMEOUT_SECONDS / 2)
    while True:
        await asyncio.sleep(interval)
        dropped = hub.reap_idle()
        if dropped:
            logger.info("Reaped %d idle live-update subscriptions", dropped)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    reaper = asyncio.create_task(reap_idle_subscriptions())
    yield
    reaper.cancel()
    hub.shutdown()


app = FastAPI(
    title="Tripcore API",
    description="Trip collaboration backend: roles, shared expenses and live updates",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CollabError)
async def collab_error_handler(request: Request, exc: CollabError):
    """Render domain errors as {"error": ..., "details": {"code": ...}}."""
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error(exc.message, {"code": exc.code, **exc.details}),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are invalid input too."""
    return JSONResponse(
        status_code=400,
        content=format_error("Invalid request", {"code": "invalid_input", "errors": jsonable_encoder(exc.errors())}),
    )


# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"message": "Tripcore API is running"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
