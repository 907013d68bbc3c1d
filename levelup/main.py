import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from levelup.routes import analytics, auth, categories, chapters, chat, progress, team
from levelup.db.base import Base
from levelup.db.sessions import engine
from levelup.core.config import settings
from levelup.core.errors import AppError
from levelup.core.logging import configure_logging
from levelup.core.services import close_services, get_audio_generator_for, wire_services

# Import all models to ensure they're registered with Base
import levelup.models  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    logger.info("%s v%s starting...", settings.APP_NAME, settings.APP_VERSION)

    Base.metadata.create_all(bind=engine)
    Path(settings.AUDIO_DIR).mkdir(parents=True, exist_ok=True)
    wire_services(app, settings)

    removed = get_audio_generator_for(app).cleanup_old_files(settings.AUDIO_RETENTION_DAYS)
    if removed:
        logger.info("Removed %d expired audio files", removed)

    yield

    await close_services(app)
    logger.info("%s stopped", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Management training library with an AI leadership coach",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"message": detail})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})


# Register routers
app.include_router(auth.router)
app.include_router(chat.router)
app.include_router(categories.router)
app.include_router(chapters.router)
app.include_router(chapters.shared_router)
app.include_router(progress.router)
app.include_router(analytics.router)
app.include_router(team.router)

# Generated chapter narration
app.mount(settings.AUDIO_URL_PREFIX, StaticFiles(directory=settings.AUDIO_DIR, check_dir=False), name="audio")


@app.get("/api/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
