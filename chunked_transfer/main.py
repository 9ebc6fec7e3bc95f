"""
Main FastAPI application entry point
"""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import router
from .core import engine, settings
from .core.errors import UploadError
from .models import Base
from .services import upload_service

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    # Startup
    logger.info("🚀 Starting Chunked Transfer Service...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database tables created/verified")

    settings.ensure_directories()
    logger.info(f"✅ Storage root ready at {settings.UPLOAD_ROOT}")

    reaper_task = None
    if settings.REAPER_INTERVAL_SECONDS > 0:
        reaper_task = asyncio.create_task(
            upload_service.reaper.run_periodically(settings.REAPER_INTERVAL_SECONDS)
        )
        logger.info(f"🧹 Reaper scheduled every {settings.REAPER_INTERVAL_SECONDS}s")

    logger.info(f"🌐 Server ready at http://{settings.SERVER_HOST}:{settings.SERVER_PORT}")

    yield

    # Shutdown
    logger.info("🛑 Shutting down Chunked Transfer Service...")
    if reaper_task is not None:
        reaper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reaper_task
    await engine.dispose()


async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"❌ {type(exc).__name__} on {request.url.path}: {exc}")
    else:
        logger.warning(f"⚠️ {type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "message": str(exc)}
    )


# Create FastAPI app
app = FastAPI(
    title=settings.APP_TITLE,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(UploadError, upload_error_handler)

# Include routers
app.include_router(router)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
