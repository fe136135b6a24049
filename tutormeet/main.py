"""Tutor Meet: Google Meet link service for the tutoring marketplace."""
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tutormeet.calendar.provider import get_provider
from tutormeet.core.config import settings
from tutormeet.core.database import create_db_and_tables
from tutormeet.core.errors import MeetingError
from tutormeet.routes import meetings, oauth

# Configure logging
settings.log_dir.mkdir(parents=True, exist_ok=True)
log_file = settings.log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    logger.info("Starting Tutor Meet application")
    create_db_and_tables()
    yield
    logger.info("Tutor Meet application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Provisions and validates Google Meet links for tutors and manages their Google OAuth credentials",
    version="0.1.0",
    lifespan=lifespan,
)

origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(oauth.router)
app.include_router(meetings.router)


@app.exception_handler(MeetingError)
async def meeting_error_handler(request: Request, exc: MeetingError):
    """Render classified errors with their status hint."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "error",
            "code": exc.code,
            "message": exc.message,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "provider_configured": get_provider().is_configured(),
    }
