import logging
from typing import Any, Dict, List, Mapping, Optional

import asyncpg
from pydantic import BaseModel, ValidationError as PydanticValidationError, field_validator

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import SLOTS
from ..models.result_models import FailedRecord, SyncedRecord, SyncResult
from .errors import ServiceError, StorageError

logger = logging.getLogger(__name__)

MISSING_FIELDS = "Missing required fields: event_date_id and/or student_id_number."
INVALID_EVENT_DATE_ID = "Invalid event_date_id."
STUDENT_NOT_ACTIVE = "Student not found or not active."
EVENT_DATE_NOT_FOUND = "Event date not found."
RECORD_STORAGE_FAILURE = "Database error while syncing record."


class AttendanceReport(BaseModel):
    """A raw scan report. Slots left out of the report are left untouched on update."""
    event_date_id: int
    student_id_number: str
    am_in: Optional[bool] = None
    am_out: Optional[bool] = None
    pm_in: Optional[bool] = None
    pm_out: Optional[bool] = None

    @field_validator("student_id_number", mode="before")
    @classmethod
    def _coerce_id_number(cls, value):
        return str(value).strip()

    def reported_slots(self) -> Dict[str, bool]:
        """Slots present in the raw input; an explicit null counts as False."""
        return {slot: bool(getattr(self, slot)) for slot in SLOTS if slot in self.model_fields_set}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class AttendanceSyncService:
    """
    Folds raw attendance reports into one row per (event date, student).
    Every record is handled on its own: a bad record lands in the failure
    list and never aborts the rest of the batch.
    """
    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    async def sync_attendance(self, records: List[Mapping[str, Any]]) -> SyncResult:
        synced: List[SyncedRecord] = []
        failed: List[FailedRecord] = []

        try:
            async with self.db_client.connection() as conn:
                for raw in records:
                    record = dict(raw) if isinstance(raw, Mapping) else {"value": raw}
                    report, error = self._parse(record)
                    if error:
                        failed.append(FailedRecord(record=record, error=error))
                        continue
                    try:
                        outcome = await self._sync_one(conn, report)
                    except asyncpg.PostgresError:
                        logger.error(
                            f"Database error while syncing attendance for '{report.student_id_number}' "
                            f"on event date {report.event_date_id}.", exc_info=True
                        )
                        outcome = RECORD_STORAGE_FAILURE
                    if isinstance(outcome, SyncedRecord):
                        synced.append(outcome)
                    else:
                        failed.append(FailedRecord(record=record, error=outcome))
        except ServiceError:
            raise
        except Exception as e:
            logger.error("Attendance sync aborted by a connection failure.", exc_info=True)
            raise StorageError("A database error occurred while syncing attendance.") from e

        if failed:
            logger.warning(f"Attendance sync rejected {len(failed)} of {len(records)} records.")
        logger.info(f"Attendance sync stored {len(synced)} records.")
        return SyncResult(
            synced_count=len(synced),
            failed_count=len(failed),
            synced_records=synced,
            failed_records=failed,
        )

    @staticmethod
    def _parse(record: Dict[str, Any]):
        if _is_blank(record.get("event_date_id")) or _is_blank(record.get("student_id_number")):
            return None, MISSING_FIELDS
        try:
            return AttendanceReport(**record), None
        except PydanticValidationError as e:
            bad_fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
            if "event_date_id" in bad_fields:
                return None, INVALID_EVENT_DATE_ID
            return None, f"Invalid fields: {', '.join(sorted(bad_fields))}."

    async def _sync_one(self, conn, report: AttendanceReport):
        """Returns a SyncedRecord, or the rejection reason as a string."""
        student = await self.db_client.get_active_student_block(conn, report.student_id_number)
        if student is None:
            return STUDENT_NOT_ACTIVE
        block_id = student["block_id"]

        if not await self.db_client.event_date_exists(conn, report.event_date_id):
            return EVENT_DATE_NOT_FOUND

        slots = report.reported_slots()
        attendance_id = await self.db_client.get_attendance_id(conn, report.event_date_id, report.student_id_number)
        action = "updated"
        if attendance_id is None:
            try:
                attendance_id = await self.db_client.insert_attendance(
                    conn, report.event_date_id, report.student_id_number, block_id, slots
                )
                action = "inserted"
            except asyncpg.UniqueViolationError:
                # Another writer inserted the same (date, student) first.
                attendance_id = await self.db_client.get_attendance_id(
                    conn, report.event_date_id, report.student_id_number
                )
        if action == "updated":
            await self.db_client.update_attendance(conn, attendance_id, block_id, slots)

        return SyncedRecord(
            id=attendance_id,
            event_date_id=report.event_date_id,
            student_id_number=report.student_id_number,
            block_id=block_id,
            action=action,
        )
