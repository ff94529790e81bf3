# app/eventattend/main.py
from fastapi import FastAPI
from contextlib import asynccontextmanager
import redis.asyncio as redis
import asyncpg
from apscheduler.schedulers.asyncio import AsyncIOScheduler as Scheduler
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from fastapi.middleware.cors import CORSMiddleware

from .config.config import settings
from .logging.logging_config import setup_logging
from .api import attendance, events, school_periods
from .db.db_client import AsyncPostgresClient
from .tasks.cron import archive_past_events_task
from .api.utilities.limiter import limiter

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Opens the PostgreSQL and Redis pools, archives events that ended while
    the app was down, and schedules the daily archive sweep.
    """
    logger.info("Starting application...")

    postgres_pool = None
    redis_pool = None
    scheduler = None

    try:
        postgres_pool = await asyncpg.create_pool(
            dsn=settings.DATABASE_URL,
            min_size=settings.DB_POOL_MIN_SIZE,
            max_size=settings.DB_POOL_MAX_SIZE,
        )
        redis_pool = redis.ConnectionPool.from_url(
            settings.APPLICATION_REDIS_URL, decode_responses=True
        )

        app.state.postgres_pool = postgres_pool
        app.state.redis_pool = redis_pool
        logger.info("PostgreSQL and Redis pools created.")

        db_client = AsyncPostgresClient(pool=postgres_pool)
        await archive_past_events_task(db_client)

        scheduler = Scheduler()
        scheduler.add_job(
            archive_past_events_task, "cron",
            hour=settings.ARCHIVE_SWEEP_HOUR, minute=settings.ARCHIVE_SWEEP_MINUTE,
            args=[db_client], id="archive_past_events",
        )
        scheduler.start()

        app.state.scheduler = scheduler
        logger.info(f"Archive sweep scheduled daily at {settings.ARCHIVE_SWEEP_HOUR:02d}:{settings.ARCHIVE_SWEEP_MINUTE:02d}.")

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        app.state.postgres_pool = None
        app.state.redis_pool = None
        app.state.scheduler = None

    yield

    logger.info("Shutting down application...")
    if getattr(app.state, "scheduler", None):
        app.state.scheduler.shutdown()
        logger.info("Scheduler stopped.")
    if getattr(app.state, "postgres_pool", None):
        await app.state.postgres_pool.close()
        logger.info("PostgreSQL pool closed.")
    if getattr(app.state, "redis_pool", None):
        await app.state.redis_pool.disconnect()
        logger.info("Redis pool closed.")


app = FastAPI(
    title="Event Attendance API",
    description="Event scheduling, attendance tracking and semester rollover.",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(attendance.router, prefix="/api/v1")
app.include_router(events.router, prefix="/api/v1")
app.include_router(school_periods.router, prefix="/api/v1")

@app.get("/health", tags=["System"])
def health_check():
    """Liveness check."""
    return {"status": "ok", "message": "Event Attendance API is running."}
