import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from clevercourse.api import router
from clevercourse.api.schemas import ErrorResponse
from clevercourse.core.config import settings
from clevercourse.core.database import async_session_maker, init_db
from clevercourse.services.achievement_seeder import seed_achievements

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, create tables and seed the achievement catalog."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    await init_db()

    if settings.seed_achievements_on_startup:
        async with async_session_maker() as session:
            counts = await seed_achievements(session)
        logger.info(f"Achievement catalog ready ({counts['seeded']} new, {counts['skipped']} existing)")

    yield


app = FastAPI(
    lifespan=lifespan,
    title=settings.app_name,
    description="XP, levels, streaks, Sparks and achievements for course learners",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SQLAlchemyError)
async def storage_failure_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Reads that hit a database error still get a structured, retryable body."""
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    body = ErrorResponse(error="storage_failure", retryable=True)
    return JSONResponse(status_code=503, content=body.model_dump())


# Include API routes
app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
