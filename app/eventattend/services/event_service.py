import logging
from datetime import date, time
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..config.config import settings
from ..db.db_client import AsyncPostgresClient
from ..models.db_models import SLOTS, Admin, EventStatus, SchoolPeriod
from ..models.result_models import EventCreateResult, EventEditResult
from ..models.summary_models import EventDetail, UpcomingEvent
from ..notifications.notifier import ALL_EVENTS_CHANNEL, Notifier, block_channel
from . import attendance_aggregator as aggregator
from .errors import (
    ConflictError, NotFoundError, ServiceError, StateError, StorageError, ValidationError,
)

logger = logging.getLogger(__name__)


class EventFields(BaseModel):
    """
    Everything needed to create or rewrite an event. The four slot times and
    the duration are a template applied to every date.
    """
    event_name_id: Optional[int] = None
    venue: Optional[str] = None
    dates: List[date] = Field(default_factory=list)
    block_ids: List[int] = Field(default_factory=list)
    description: Optional[str] = None
    scan_personnel: Optional[str] = None
    am_in: Optional[time] = None
    am_out: Optional[time] = None
    pm_in: Optional[time] = None
    pm_out: Optional[time] = None
    duration: Optional[int] = None
    admin_id_number: Optional[str] = None

    def slot_template(self) -> Dict[str, Optional[time]]:
        return {slot: getattr(self, slot) for slot in SLOTS}

    def unique_dates(self) -> List[date]:
        return sorted(set(self.dates))

    def unique_block_ids(self) -> List[int]:
        return sorted(set(self.block_ids))


def duplicate_key(dates: Sequence[Any], block_ids: Sequence[Any]):
    """
    Comparison key for duplicate detection: both sets are deduplicated and
    sorted as strings, so block ids order lexically ("10" before "2").
    """
    date_strings = sorted({d.isoformat() if isinstance(d, date) else str(d) for d in dates})
    block_strings = sorted({str(b) for b in block_ids})
    return date_strings, block_strings


class EventService:
    """
    Event lifecycle: Pending -> Approved -> Archived, with Pending|Approved
    -> Deleted as a soft delete. Creation by a super admin skips Pending.
    """
    def __init__(self, db_client: AsyncPostgresClient, notifier: Notifier, super_admin_role_id: int = None):
        self.db_client = db_client
        self.notifier = notifier
        self.super_admin_role_id = super_admin_role_id or settings.SUPER_ADMIN_ROLE_ID

    @staticmethod
    def _validate(fields: EventFields):
        missing = []
        if fields.event_name_id is None:
            missing.append("event_name_id")
        if not (fields.venue or "").strip():
            missing.append("venue")
        if not fields.dates:
            missing.append("dates")
        if not fields.block_ids:
            missing.append("block_ids")
        if not (fields.admin_id_number or "").strip():
            missing.append("admin_id_number")
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}.")
        if fields.duration is not None and fields.duration < 0:
            raise ValidationError("Duration cannot be negative.")

    async def _check_references(self, conn, fields: EventFields):
        period: Optional[SchoolPeriod] = await self.db_client.get_active_school_period(conn)
        if period is None:
            raise StateError("No active school year semester found.")
        event_name = await self.db_client.get_event_name(conn, fields.event_name_id)
        if event_name is None:
            raise NotFoundError(f"Event name {fields.event_name_id} not found.")
        admin = await self.db_client.get_admin(conn, fields.admin_id_number)
        if admin is None:
            raise NotFoundError(f"Admin '{fields.admin_id_number}' not found.")
        return period, event_name, admin

    async def _reject_duplicates(self, conn, fields: EventFields, exclude_event_id: Optional[int] = None):
        wanted = duplicate_key(fields.dates, fields.block_ids)
        candidates = await self.db_client.get_duplicate_candidates(
            conn, fields.event_name_id, fields.venue, exclude_event_id
        )
        for candidate in candidates:
            if duplicate_key(candidate["dates"], candidate["block_ids"]) == wanted:
                logger.warning(f"Rejected duplicate of event {candidate['id']}.")
                raise ConflictError("An event with the same name, venue, dates and blocks already exists.")

    async def create_event(self, fields: EventFields) -> EventCreateResult:
        self._validate(fields)
        try:
            async with self.db_client.transaction() as conn:
                period, event_name, admin = await self._check_references(conn, fields)
                await self._reject_duplicates(conn, fields)

                auto_approved = admin.role_id == self.super_admin_role_id
                status = EventStatus.APPROVED if auto_approved else EventStatus.PENDING
                event_id = await self.db_client.insert_event(
                    conn, fields.event_name_id, period.id, fields.venue, fields.description,
                    fields.scan_personnel, admin.id_number, status,
                )
                await self.db_client.insert_event_dates(
                    conn, event_id, fields.unique_dates(), fields.slot_template(), fields.duration
                )
                await self.db_client.insert_event_blocks(conn, event_id, fields.unique_block_ids())
        except ServiceError:
            raise
        except Exception as e:
            logger.error("Database error while creating event.", exc_info=True)
            raise StorageError("A database error occurred while creating the event.") from e

        logger.info(f"Event {event_id} created by '{admin.id_number}' as {status.value}.")
        if auto_approved:
            await self._announce(self._payload(
                event_id, event_name, fields.venue, fields.description, status,
                fields.unique_dates(), fields.unique_block_ids(), fields.slot_template(),
                fields.duration, admin,
            ))
        return EventCreateResult(event_id=event_id, auto_approved=auto_approved)

    async def edit_event(self, event_id: int, fields: EventFields) -> EventEditResult:
        """
        Rewrites an event and replaces its dates and blocks. The attendance
        hanging off the old dates is deleted first. Everything runs in one
        transaction, so a failure at any step leaves the stored event intact.
        """
        self._validate(fields)
        try:
            async with self.db_client.transaction() as conn:
                if await self.db_client.get_event(conn, event_id) is None:
                    raise NotFoundError(f"Event {event_id} not found.")
                period, _, admin = await self._check_references(conn, fields)
                await self._reject_duplicates(conn, fields, exclude_event_id=event_id)

                date_ids = await self.db_client.get_event_date_ids(conn, event_id)
                removed = await self.db_client.delete_attendance_for_dates(conn, date_ids)
                remaining = await self.db_client.count_attendance_for_dates(conn, date_ids)
                if remaining:
                    raise StorageError(f"{remaining} attendance records still reference event {event_id}.")

                await self.db_client.update_event(
                    conn, event_id, fields.event_name_id, period.id, fields.venue,
                    fields.description, fields.scan_personnel, admin.id_number,
                )
                await self.db_client.delete_event_dates(conn, event_id)
                await self.db_client.delete_event_blocks(conn, event_id)
                await self.db_client.insert_event_dates(
                    conn, event_id, fields.unique_dates(), fields.slot_template(), fields.duration
                )
                await self.db_client.insert_event_blocks(conn, event_id, fields.unique_block_ids())
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while editing event {event_id}; changes rolled back.", exc_info=True)
            raise StorageError("A database error occurred while editing the event.") from e

        logger.info(f"Event {event_id} edited by '{admin.id_number}'; {removed} attendance records cleared.")
        return EventEditResult(event_id=event_id)

    async def get_event(self, event_id: int) -> EventDetail:
        try:
            async with self.db_client.connection() as conn:
                event = await self.db_client.get_event(conn, event_id)
                if event is None:
                    raise NotFoundError("Event not found.")
                event_name = await self.db_client.get_event_name(conn, event.event_name_id)
                event_dates = await self.db_client.get_event_dates(conn, event_id)
                block_ids = await self.db_client.get_event_block_ids(conn, event_id)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while loading event {event_id}.", exc_info=True)
            raise StorageError("A database error occurred while loading the event.") from e

        return EventDetail(
            event_id=event.id,
            event_name=event_name,
            venue=event.venue,
            description=event.description,
            scan_personnel=event.scan_personnel,
            status=event.status,
            school_period_id=event.school_period_id,
            created_by=event.created_by,
            approved_by=event.approved_by,
            block_ids=block_ids,
            dates=[aggregator.scheduled_date(d) for d in event_dates],
        )

    async def get_upcoming_events(self, block_id: Optional[int] = None, today: date = None) -> List[UpcomingEvent]:
        """
        Approved events that start within three days of today, or that are
        running today. With `block_id`, only events that block is invited to.
        """
        try:
            async with self.db_client.connection() as conn:
                rows = await self.db_client.get_approved_event_date_rows(conn, block_id=block_id)
        except Exception as e:
            logger.error("Database error while listing upcoming events.", exc_info=True)
            raise StorageError("A database error occurred while listing upcoming events.") from e
        return aggregator.group_upcoming_events(rows, today or date.today())

    async def approve_event(self, event_id: int, approver_id: str) -> None:
        try:
            async with self.db_client.transaction() as conn:
                event = await self.db_client.get_event(conn, event_id)
                if event is None:
                    raise NotFoundError(f"Event {event_id} not found.")
                if event.status != EventStatus.PENDING:
                    raise StateError(f"Only Pending events can be approved; event {event_id} is {event.status.value}.")
                event_dates = await self.db_client.get_event_dates(conn, event_id)
                block_ids = await self.db_client.get_event_block_ids(conn, event_id)
                if not event_dates or not block_ids:
                    raise StateError(f"Event {event_id} has no dates or no blocks and cannot be approved.")
                if await self.db_client.get_admin(conn, approver_id) is None:
                    raise NotFoundError(f"Admin '{approver_id}' not found.")
                if await self.db_client.approve_event(conn, event_id, approver_id) == 0:
                    raise StateError(f"Event {event_id} is no longer Pending.")
                event_name = await self.db_client.get_event_name(conn, event.event_name_id)
                creator = await self.db_client.get_admin(conn, event.created_by)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while approving event {event_id}.", exc_info=True)
            raise StorageError("A database error occurred while approving the event.") from e

        logger.info(f"Event {event_id} approved by '{approver_id}'.")
        first = event_dates[0]
        await self._announce(self._payload(
            event_id, event_name, event.venue, event.description, EventStatus.APPROVED,
            [d.event_date for d in event_dates], block_ids,
            {slot: getattr(first, slot) for slot in SLOTS}, first.duration, creator,
        ))

    async def delete_event(self, event_id: int) -> None:
        try:
            async with self.db_client.transaction() as conn:
                event = await self.db_client.get_event(conn, event_id)
                if event is None:
                    raise NotFoundError(f"Event {event_id} not found.")
                if event.status not in (EventStatus.PENDING, EventStatus.APPROVED):
                    raise StateError(f"Event {event_id} is {event.status.value} and cannot be deleted.")
                await self.db_client.set_event_status(conn, event_id, EventStatus.DELETED)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while deleting event {event_id}.", exc_info=True)
            raise StorageError("A database error occurred while deleting the event.") from e
        logger.info(f"Event {event_id} marked as Deleted.")

    # --- Notifications ---

    @staticmethod
    def _payload(
        event_id: int, event_name: str, venue: str, description: Optional[str], status: EventStatus,
        dates: Sequence[date], block_ids: Sequence[int], slots: Dict[str, Optional[time]],
        duration: Optional[int], creator: Optional[Admin],
    ) -> Dict[str, Any]:
        return {
            "event_id": event_id,
            "event_name": event_name,
            "venue": venue,
            "description": description,
            "status": status.value,
            "event_dates": [d.isoformat() for d in dates],
            "block_ids": list(block_ids),
            **{slot: value.isoformat() if value else None for slot, value in slots.items()},
            "duration": duration,
            "created_by": creator.id_number if creator else None,
            "created_by_name": creator.display_name if creator else None,
        }

    async def _announce(self, payload: Dict[str, Any]) -> None:
        """Best-effort fan-out; delivery errors are logged and never raised."""
        messages = [
            (ALL_EVENTS_CHANNEL, "newApprovedEvent"),
            (ALL_EVENTS_CHANNEL, "new-event-added"),
        ] + [(block_channel(block_id), "newApprovedEvent") for block_id in payload["block_ids"]]
        for channel, event in messages:
            try:
                await self.notifier.publish(channel, event, payload)
            except Exception:
                logger.warning(f"Could not publish '{event}' to '{channel}' for event {payload['event_id']}.", exc_info=True)
