"""Group Calendar Web Application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from groupcal.core.config import settings
from groupcal.core.database import create_db_and_tables
from groupcal.core.errors import register_error_handlers
from groupcal.core.scheduler import shutdown_scheduler, start_scheduler
from groupcal.routes import events, groups, invitations, notifications

# Configure logging
log_dir = settings.log_dir
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Group Calendar application")
    create_db_and_tables()
    if settings.enable_scheduler:
        start_scheduler()
    yield
    # Shutdown
    if settings.enable_scheduler:
        shutdown_scheduler()
    logger.info("Group Calendar application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Personal and group calendars with recurring events, moderated group events and invitations",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for external access
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

register_error_handlers(app)

# Include routers
app.include_router(events.router)
app.include_router(groups.router)
app.include_router(invitations.router)
app.include_router(notifications.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
