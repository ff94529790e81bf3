#app/eventattend/api/dependencies.py
from fastapi import Request, Depends
import redis.asyncio as redis
import asyncpg

from ..db.db_client import AsyncPostgresClient
from ..notifications.notifier import RedisNotifier
from ..services.attendance_sync_service import AttendanceSyncService
from ..services.attendance_summary_service import AttendanceSummaryService
from ..services.event_service import EventService
from ..services.rollover_service import RolloverService


def get_redis_pool(request: Request) -> redis.ConnectionPool:
    """Redis pool created in the application lifespan."""
    return request.app.state.redis_pool

def get_postgres_pool(request: Request) -> asyncpg.Pool:
    """PostgreSQL pool created in the application lifespan."""
    return request.app.state.postgres_pool


def get_db_client(postgres_pool: asyncpg.Pool = Depends(get_postgres_pool)) -> AsyncPostgresClient:
    return AsyncPostgresClient(pool=postgres_pool)

def get_notifier(redis_pool: redis.ConnectionPool = Depends(get_redis_pool)) -> RedisNotifier:
    return RedisNotifier(pool=redis_pool)


def get_attendance_sync_service(db_client: AsyncPostgresClient = Depends(get_db_client)) -> AttendanceSyncService:
    return AttendanceSyncService(db_client=db_client)

def get_attendance_summary_service(db_client: AsyncPostgresClient = Depends(get_db_client)) -> AttendanceSummaryService:
    return AttendanceSummaryService(db_client=db_client)

def get_event_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    notifier: RedisNotifier = Depends(get_notifier)
) -> EventService:
    """
    A fresh EventService per request, built on the shared pools. The
    notifier is passed in explicitly so tests can swap it out.
    """
    return EventService(db_client=db_client, notifier=notifier)

def get_rollover_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    notifier: RedisNotifier = Depends(get_notifier)
) -> RolloverService:
    return RolloverService(db_client=db_client, notifier=notifier)
