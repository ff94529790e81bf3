import logging
from datetime import date
from typing import List, Optional, Union

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import EventStatus
from ..models.summary_models import (
    AttendanceFilter, BlockAttendanceRoster, BlockAttendanceSummary, DepartmentLabel,
    EventAttendanceSummary, EventBlocksAttendance, EventDetails, StudentAttendanceSummary,
    StudentEvent,
)
from . import attendance_aggregator as aggregator
from .errors import NotFoundError, ServiceError, StorageError, ValidationError

logger = logging.getLogger(__name__)

EVENT_SCOPES = {"ongoing": EventStatus.APPROVED, "past": EventStatus.ARCHIVED}


def parse_attendance_filter(value: Union[str, AttendanceFilter, None]) -> AttendanceFilter:
    if value is None:
        return AttendanceFilter.ALL
    try:
        return AttendanceFilter(value)
    except ValueError:
        raise ValidationError(f"Invalid attendance filter '{value}'. Use all, present or absent.")


class AttendanceSummaryService:
    """
    Read-only summaries of attendance for blocks, whole events and single
    students. Storage reads happen here; the counting lives in
    attendance_aggregator.
    """
    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    async def get_block_attendance_summary(
        self, event_id: int, block_id: int, attendance_filter: Union[str, AttendanceFilter] = AttendanceFilter.ALL
    ) -> BlockAttendanceSummary:
        """A block the event does not list gets the event's dates and an empty attendance_summary."""
        attendance_filter = parse_attendance_filter(attendance_filter)
        try:
            async with self.db_client.connection() as conn:
                if await self.db_client.get_event_heading(conn, event_id) is None:
                    raise NotFoundError("Event not found.")
                event_dates = await self.db_client.get_event_dates(conn, event_id)
                rows = await self.db_client.get_block_attendance_rows(conn, event_id, block_id)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while summarizing block {block_id} of event {event_id}.", exc_info=True)
            raise StorageError("A database error occurred while building the block summary.") from e

        available = aggregator.available_time_periods(event_dates)
        return BlockAttendanceSummary(
            event_id=event_id,
            block_id=block_id,
            first_event_date=event_dates[0].event_date if event_dates else None,
            last_event_date=event_dates[-1].event_date if event_dates else None,
            available_time_periods=available,
            attendance_summary=aggregator.summarize_block(rows, available, attendance_filter),
        )

    async def get_event_attendance_summary(
        self,
        event_id: int,
        department_id: Optional[int] = None,
        year_level_id: Optional[int] = None,
        block_id: Optional[int] = None,
        attendance_filter: Union[str, AttendanceFilter] = AttendanceFilter.ALL,
    ) -> EventAttendanceSummary:
        attendance_filter = parse_attendance_filter(attendance_filter)
        try:
            async with self.db_client.connection() as conn:
                heading = await self.db_client.get_event_heading(conn, event_id)
                if heading is None:
                    raise NotFoundError("Event not found.")
                rows = await self.db_client.get_event_attendance_rows(
                    conn, event_id, department_id=department_id,
                    year_level_id=year_level_id, block_id=block_id,
                )
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while summarizing event {event_id}.", exc_info=True)
            raise StorageError("A database error occurred while building the event summary.") from e

        rollup = aggregator.summarize_event(rows, attendance_filter)
        return EventAttendanceSummary(
            event_id=event_id,
            event_name=heading["event_name"],
            event_status=heading["status"],
            department_ids=sorted(d.id for d in rollup.departments),
            year_level_ids=sorted(y.id for y in rollup.year_levels),
            block_ids=sorted(b.id for b in rollup.blocks),
            departments=rollup.departments,
            year_levels=rollup.year_levels,
            blocks=rollup.blocks,
            students=rollup.students,
        )

    async def get_event_blocks_attendance(
        self, event_id: int, department_id: Optional[int] = None, year_level_id: Optional[int] = None
    ) -> EventBlocksAttendance:
        """
        Attendance of an Approved or Archived event grouped by the current
        Active blocks that carry on its linked blocks. Other statuses yield
        no blocks.
        """
        try:
            async with self.db_client.connection() as conn:
                heading = await self.db_client.get_event_heading(conn, event_id)
                if heading is None:
                    raise NotFoundError("Event not found.")
                rows = await self.db_client.get_event_block_rows(
                    conn, event_id, department_id=department_id, year_level_id=year_level_id
                )
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while listing blocks of event {event_id}.", exc_info=True)
            raise StorageError("A database error occurred while listing event blocks.") from e

        return EventBlocksAttendance(
            event_id=event_id,
            event_name=heading["event_name"],
            blocks=aggregator.group_event_blocks(rows),
        )

    async def get_student_attendance_summary(self, event_id: int, student_id: str) -> StudentAttendanceSummary:
        try:
            async with self.db_client.connection() as conn:
                heading = await self.db_client.get_event_heading(conn, event_id)
                if heading is None:
                    raise NotFoundError("Event not found.")
                student_name = await self.db_client.get_active_student_name(conn, student_id)
                if student_name is None:
                    raise NotFoundError("Student not found or is not active.")
                event_dates = await self.db_client.get_event_dates(conn, event_id)
                if not event_dates:
                    raise NotFoundError("No event dates found for the given event.")
                records = await self.db_client.get_student_event_attendance(conn, event_id, student_id)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while summarizing student '{student_id}' for event {event_id}.", exc_info=True)
            raise StorageError("A database error occurred while building the student summary.") from e

        available = aggregator.available_time_periods(event_dates)
        attendance_by_date = {record.event_date_id: record for record in records}
        return StudentAttendanceSummary(
            event_name=heading["event_name"],
            student_id=student_id,
            student_name=student_name,
            available_time_periods=available,
            attendance_summary=aggregator.summarize_student(event_dates, attendance_by_date, available),
        )

    async def get_block_attendance_roster(self, event_id: int, block_id: int) -> BlockAttendanceRoster:
        try:
            async with self.db_client.connection() as conn:
                heading = await self.db_client.get_event_heading(conn, event_id)
                if heading is None:
                    raise NotFoundError("Event not found.")
                block = await self.db_client.get_block_details(conn, block_id)
                if block is None:
                    raise NotFoundError("Block not found.")
                rows = await self.db_client.get_block_roster_rows(conn, event_id, block_id)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while listing block {block_id} for event {event_id}.", exc_info=True)
            raise StorageError("A database error occurred while listing the block roster.") from e

        return BlockAttendanceRoster(
            event_id=event_id,
            event_name=heading["event_name"],
            event_details=EventDetails(
                venue=heading["venue"], description=heading["description"], status=heading["status"]
            ),
            block_id=block_id,
            block_name=block["block_name"],
            course_code=block["course_code"],
            department=DepartmentLabel(name=block["department_name"], code=block["department_code"]),
            year_level=block["year_level"],
            students=aggregator.build_block_roster(rows),
        )

    async def get_student_events(self, id_number: str, scope: str = "ongoing", today: date = None) -> List[StudentEvent]:
        """
        Events of the student's current block. 'ongoing' lists Approved events
        running today; 'past' lists Archived ones.
        """
        status = EVENT_SCOPES.get(scope)
        if status is None:
            raise ValidationError(f"Invalid scope '{scope}'. Use ongoing or past.")
        try:
            async with self.db_client.connection() as conn:
                student = await self.db_client.get_student_block(conn, id_number)
                if student is None:
                    raise NotFoundError("User not found.")
                if student["block_id"] is None:
                    return []
                rows = await self.db_client.get_block_event_rows(conn, student["block_id"], id_number, status)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Database error while listing events of student '{id_number}'.", exc_info=True)
            raise StorageError("A database error occurred while listing student events.") from e

        ongoing_on = (today or date.today()) if status == EventStatus.APPROVED else None
        return aggregator.group_student_events(rows, ongoing_on=ongoing_on)
