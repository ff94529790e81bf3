import logging
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..config.config import settings
from ..db.db_client import AsyncPostgresClient
from ..models.db_models import PeriodStatus, SchoolPeriod, Semester, StudentStatus
from ..models.result_models import RolloverResult, RosterSyncResult
from ..notifications.notifier import ALL_EVENTS_CHANNEL, Notifier
from ..roster.roster_reader import RosterRow
from .errors import ServiceError, StateError, StorageError

logger = logging.getLogger(__name__)

_SCHOOL_YEAR = re.compile(r"^\s*(\d{4})\s*-\s*(\d{4})\s*$")


def normalize_block_name(name: str) -> str:
    """'  bsit  1a ' -> 'BSIT 1A'"""
    return " ".join((name or "").split()).upper()


def next_school_period(school_year: str, semester: Semester) -> Tuple[str, Semester]:
    """
    First semester rolls into the second of the same year; the second rolls
    into the first semester of the following year range.
    """
    match = _SCHOOL_YEAR.match(school_year or "")
    if match is None:
        raise StateError(f"Malformed school year '{school_year}'.")
    if Semester(semester) == Semester.FIRST:
        return f"{match.group(1)}-{match.group(2)}", Semester.SECOND
    end_year = int(match.group(2))
    return f"{end_year}-{end_year + 1}", Semester.FIRST


class _RosterPass:
    """
    Applies roster rows to one school period on an open transaction. Block
    lookups are cached by (department, course, name, year level) for the
    length of the pass.
    """
    def __init__(self, db_client: AsyncPostgresClient, conn, period: SchoolPeriod, student_role_id: int,
                 active_blocks_only: bool):
        self.db_client = db_client
        self.conn = conn
        self.period = period
        self.student_role_id = student_role_id
        self.active_blocks_only = active_blocks_only
        self._blocks: Dict[Tuple[str, str, str, int], int] = {}
        self.processed = self.inserted = self.updated = self.skipped = 0

    async def _resolve_block(self, row: RosterRow) -> Optional[int]:
        name = normalize_block_name(row.block)
        try:
            year_level_id = int(row.year_level)
        except ValueError:
            logger.warning(f"Skipping '{row.id_number}': year level '{row.year_level}' is not an id.")
            return None

        key = (row.department, row.course, name, year_level_id)
        if key in self._blocks:
            return self._blocks[key]

        department_id = await self.db_client.get_department_id(self.conn, row.department)
        if department_id is None:
            logger.warning(f"Skipping '{row.id_number}': unknown department '{row.department}'.")
            return None
        course_id = await self.db_client.get_course_id(self.conn, row.course)
        if course_id is None:
            logger.warning(f"Skipping '{row.id_number}': unknown course '{row.course}'.")
            return None
        if not await self.db_client.year_level_exists(self.conn, year_level_id):
            logger.warning(f"Skipping '{row.id_number}': unknown year level {year_level_id}.")
            return None

        block_id = await self.db_client.find_block_id(
            self.conn, name, department_id, course_id, year_level_id, self.period.id,
            active_only=self.active_blocks_only,
        )
        if block_id is None:
            block_id = await self.db_client.insert_block(
                self.conn, name, department_id, course_id, year_level_id, self.period.id
            )
            logger.info(f"Created block '{name}' ({block_id}) for period {self.period.id}.")
        self._blocks[key] = block_id
        return block_id

    async def apply(self, row: RosterRow) -> None:
        self.processed += 1
        block_id = await self._resolve_block(row)
        if block_id is None:
            self.skipped += 1
            return

        status = await self.db_client.get_student_status(self.conn, row.id_number)
        if status is None:
            await self.db_client.insert_roster_student(
                self.conn, row.id_number, row.first_name, row.middle_name, row.last_name,
                row.suffix, block_id, self.student_role_id,
            )
            self.inserted += 1
            return

        # Unregistered students stay so until they register themselves.
        new_status = StudentStatus.UNREGISTERED if status == StudentStatus.UNREGISTERED else StudentStatus.ACTIVE
        await self.db_client.update_roster_student(
            self.conn, row.id_number, row.first_name, row.middle_name, row.last_name,
            row.suffix, block_id, new_status.value,
        )
        self.updated += 1


class RolloverService:
    """
    Roster sync (same period) and period rollover (next semester). Both run
    as a single transaction; any failure other than a skipped row rolls the
    whole pass back. Callers must not run two of these concurrently.
    """
    def __init__(self, db_client: AsyncPostgresClient, notifier: Notifier, student_role_id: int = None):
        self.db_client = db_client
        self.notifier = notifier
        self.student_role_id = student_role_id or settings.STUDENT_ROLE_ID

    @staticmethod
    def _collect(rows: Iterable[RosterRow]) -> List[RosterRow]:
        return [row for row in rows if row.id_number.strip()]

    async def get_current_school_period(self) -> SchoolPeriod:
        try:
            async with self.db_client.connection() as conn:
                period = await self.db_client.get_active_school_period(conn)
        except Exception as e:
            logger.error("Database error while reading the active school period.", exc_info=True)
            raise StorageError("A database error occurred while reading the school period.") from e
        if period is None:
            raise StateError("No active school year semester found.")
        return period

    async def run_roster_sync(self, rows: Iterable[RosterRow]) -> RosterSyncResult:
        """
        Applies a roster to the current period and disables every Active
        student missing from it. Ids of skipped rows still count as present.
        """
        rows = self._collect(rows)
        present_ids: Set[str] = {row.id_number for row in rows}
        try:
            async with self.db_client.transaction() as conn:
                period = await self.db_client.get_active_school_period(conn)
                if period is None:
                    raise StateError("No active school year semester found.")
                roster = _RosterPass(self.db_client, conn, period, self.student_role_id, active_blocks_only=False)
                for row in rows:
                    await roster.apply(row)
                disabled = await self.db_client.disable_students_not_in(conn, sorted(present_ids), self.student_role_id)
        except ServiceError:
            raise
        except Exception as e:
            logger.error("Roster sync failed and was rolled back.", exc_info=True)
            raise StorageError("A database error occurred while syncing the roster.") from e

        logger.info(
            f"Roster sync for period {period.id}: {roster.inserted} inserted, {roster.updated} updated, "
            f"{roster.skipped} skipped, {len(disabled)} disabled."
        )
        if disabled:
            try:
                await self.notifier.publish(ALL_EVENTS_CHANNEL, "users-disabled", {"id_numbers": disabled})
            except Exception:
                logger.warning("Could not publish disabled users.", exc_info=True)

        return RosterSyncResult(
            processed=roster.processed,
            inserted=roster.inserted,
            updated=roster.updated,
            skipped=roster.skipped,
            disabled_id_numbers=disabled,
        )

    async def run_period_rollover(self, rows: Iterable[RosterRow]) -> RolloverResult:
        """
        Closes the active period and opens the next one:

        1. backfill absent placeholders for the closing period's Approved events,
        2. archive the period and insert the next one as Active,
        3. archive the old period's blocks,
        4. re-apply the roster against the new period.

        Students absent from the roster keep their status; historical
        attendance keeps the block it was written with.
        """
        rows = self._collect(rows)
        try:
            async with self.db_client.transaction() as conn:
                current = await self.db_client.get_active_school_period(conn)
                if current is None:
                    raise StateError("No active school year semester found.")

                backfilled = await self.db_client.backfill_attendance(conn, current.id, self.student_role_id)
                await self.db_client.archive_school_period(conn, current.id)
                school_year, semester = next_school_period(current.school_year, current.semester)
                new_period = await self.db_client.insert_school_period(conn, school_year, semester.value)
                archived_blocks = await self.db_client.archive_period_blocks(conn, current.id)

                roster = _RosterPass(self.db_client, conn, new_period, self.student_role_id, active_blocks_only=True)
                for row in rows:
                    await roster.apply(row)
        except ServiceError:
            raise
        except Exception as e:
            logger.error("Period rollover failed and was rolled back.", exc_info=True)
            raise StorageError("A database error occurred during the period rollover.") from e

        logger.info(
            f"Rolled over from {current.school_year} {current.semester.value} to "
            f"{new_period.school_year} {new_period.semester.value}: {backfilled} placeholders, "
            f"{archived_blocks} blocks archived, {roster.inserted} inserted, {roster.updated} updated, "
            f"{roster.skipped} skipped."
        )
        return RolloverResult(
            previous_period=current.model_copy(update={"status": PeriodStatus.ARCHIVED}),
            new_period=new_period,
            backfilled=backfilled,
            processed=roster.processed,
            inserted=roster.inserted,
            updated=roster.updated,
            skipped=roster.skipped,
        )
