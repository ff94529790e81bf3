import logging
from contextlib import asynccontextmanager
from datetime import date, time
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import asyncpg

from .query_builder import QueryBuilder
from ..models.db_models import (
    SLOTS, Admin, Attendance, Event, EventDate, EventStatus, SchoolPeriod,
)

logger = logging.getLogger(__name__)


def _affected_rows(status: str) -> int:
    """Parses the row count out of an asyncpg status string such as 'UPDATE 3'."""
    try:
        return int(str(status).split()[-1])
    except (ValueError, IndexError):
        return 0


class AsyncPostgresClient:
    """
    PostgreSQL client holding every query the services run.

    Query methods take the connection as their first argument so that a
    service can run several of them inside one transaction:

        async with db_client.transaction() as conn:
            period = await db_client.get_active_school_period(conn)
            ...
    """
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Yields a pooled connection; it goes back to the pool on every exit path."""
        async with self._pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Yields a pooled connection inside a transaction. Commits on normal
        exit, rolls back on any exception, then releases the connection.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    # --- School periods ---

    async def get_active_school_period(self, conn) -> Optional[SchoolPeriod]:
        query = "SELECT id, school_year, semester, status FROM school_periods WHERE status = 'Active' LIMIT 1;"
        record = await conn.fetchrow(query)
        return SchoolPeriod(**record) if record else None

    async def archive_school_period(self, conn, period_id: int) -> None:
        query = "UPDATE school_periods SET status = 'Archived' WHERE id = $1;"
        await conn.execute(query, period_id)

    async def insert_school_period(self, conn, school_year: str, semester: str) -> SchoolPeriod:
        query = """
            INSERT INTO school_periods (school_year, semester, status)
            VALUES ($1, $2, 'Active')
            RETURNING id, school_year, semester, status;
        """
        record = await conn.fetchrow(query, school_year, semester)
        return SchoolPeriod(**record)

    # --- Reference data and blocks ---

    async def get_department_id(self, conn, code: str) -> Optional[int]:
        return await conn.fetchval("SELECT id FROM departments WHERE code = $1 LIMIT 1;", code)

    async def get_course_id(self, conn, code: str) -> Optional[int]:
        return await conn.fetchval("SELECT id FROM courses WHERE code = $1 LIMIT 1;", code)

    async def year_level_exists(self, conn, year_level_id: int) -> bool:
        found = await conn.fetchval("SELECT 1 FROM year_levels WHERE id = $1;", year_level_id)
        return found is not None

    async def find_block_id(
        self, conn, name: str, department_id: int, course_id: int,
        year_level_id: int, school_period_id: int, active_only: bool = False
    ) -> Optional[int]:
        builder = QueryBuilder("SELECT id FROM blocks")
        builder.where("name = {}", name)
        builder.where("department_id = {}", department_id)
        builder.where("course_id = {}", course_id)
        builder.where("year_level_id = {}", year_level_id)
        builder.where("school_period_id = {}", school_period_id)
        builder.where_if(active_only, "status = 'Active'")
        query, params = builder.build()
        return await conn.fetchval(query + "\nLIMIT 1;", *params)

    async def insert_block(
        self, conn, name: str, department_id: int, course_id: int,
        year_level_id: int, school_period_id: int
    ) -> int:
        query = """
            INSERT INTO blocks (name, department_id, course_id, year_level_id, school_period_id, status)
            VALUES ($1, $2, $3, $4, $5, 'Active')
            RETURNING id;
        """
        return await conn.fetchval(query, name, department_id, course_id, year_level_id, school_period_id)

    async def archive_period_blocks(self, conn, school_period_id: int) -> int:
        query = "UPDATE blocks SET status = 'Archived' WHERE school_period_id = $1;"
        result = await conn.execute(query, school_period_id)
        return _affected_rows(result)

    async def get_block_details(self, conn, block_id: int) -> Optional[asyncpg.Record]:
        query = """
            SELECT b.id, b.name AS block_name, c.code AS course_code,
                   d.name AS department_name, d.code AS department_code,
                   yl.name AS year_level
            FROM blocks b
            JOIN courses c ON c.id = b.course_id
            JOIN departments d ON d.id = b.department_id
            LEFT JOIN year_levels yl ON yl.id = b.year_level_id
            WHERE b.id = $1;
        """
        return await conn.fetchrow(query, block_id)

    # --- Students ---

    async def get_active_student_block(self, conn, id_number: str) -> Optional[asyncpg.Record]:
        """Returns a record with the student's block_id, or None if the student is missing or not Active."""
        query = "SELECT block_id FROM users WHERE id_number = $1 AND status = 'Active';"
        return await conn.fetchrow(query, id_number)

    async def get_student_block(self, conn, id_number: str) -> Optional[asyncpg.Record]:
        query = "SELECT block_id FROM users WHERE id_number = $1;"
        return await conn.fetchrow(query, id_number)

    async def get_active_student_name(self, conn, id_number: str) -> Optional[str]:
        query = """
            SELECT last_name || ', ' || first_name
                   || COALESCE(' ' || middle_name, '')
                   || COALESCE(' ' || suffix, '') AS name
            FROM users
            WHERE id_number = $1 AND status = 'Active';
        """
        return await conn.fetchval(query, id_number)

    async def get_student_status(self, conn, id_number: str) -> Optional[str]:
        return await conn.fetchval("SELECT status FROM users WHERE id_number = $1;", id_number)

    async def update_roster_student(
        self, conn, id_number: str, first_name: str, middle_name: Optional[str],
        last_name: str, suffix: Optional[str], block_id: int, status: str
    ) -> None:
        query = """
            UPDATE users
            SET first_name = $2, middle_name = $3, last_name = $4, suffix = $5,
                block_id = $6, status = $7
            WHERE id_number = $1;
        """
        await conn.execute(query, id_number, first_name, middle_name, last_name, suffix, block_id, status)

    async def insert_roster_student(
        self, conn, id_number: str, first_name: str, middle_name: Optional[str],
        last_name: str, suffix: Optional[str], block_id: int, role_id: int
    ) -> None:
        query = """
            INSERT INTO users (id_number, first_name, middle_name, last_name, suffix, role_id, block_id, status)
            VALUES ($1, $2, $3, $4, $5, $6, $7, 'Unregistered');
        """
        await conn.execute(query, id_number, first_name, middle_name, last_name, suffix, role_id, block_id)

    async def disable_students_not_in(self, conn, id_numbers: Sequence[str], role_id: int) -> List[str]:
        """Disables every Active student whose id_number is not listed and returns the disabled ids."""
        query = """
            UPDATE users
            SET status = 'Disabled'
            WHERE status = 'Active' AND role_id = $2
              AND NOT (id_number = ANY($1::varchar[]))
            RETURNING id_number;
        """
        records = await conn.fetch(query, list(id_numbers), role_id)
        return [record["id_number"] for record in records]

    # --- Attendance sync ---

    async def event_date_exists(self, conn, event_date_id: int) -> bool:
        found = await conn.fetchval("SELECT 1 FROM event_dates WHERE id = $1;", event_date_id)
        return found is not None

    async def get_attendance_id(self, conn, event_date_id: int, student_id_number: str) -> Optional[int]:
        query = "SELECT id FROM attendance WHERE event_date_id = $1 AND student_id_number = $2;"
        return await conn.fetchval(query, event_date_id, student_id_number)

    async def insert_attendance(
        self, conn, event_date_id: int, student_id_number: str,
        block_id: Optional[int], slots: Dict[str, bool]
    ) -> int:
        query = """
            INSERT INTO attendance (event_date_id, student_id_number, block_id, am_in, am_out, pm_in, pm_out)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING id;
        """
        values = [bool(slots.get(slot, False)) for slot in SLOTS]
        return await conn.fetchval(query, event_date_id, student_id_number, block_id, *values)

    async def update_attendance(
        self, conn, attendance_id: int, block_id: Optional[int], slots: Dict[str, bool]
    ) -> None:
        """Overwrites block_id and only the slot columns present in `slots`."""
        params: List[Any] = [attendance_id, block_id]
        assignments = ["block_id = $2"]
        for slot in SLOTS:
            if slot in slots:
                params.append(bool(slots[slot]))
                assignments.append(f"{slot} = ${len(params)}")
        query = f"UPDATE attendance SET {', '.join(assignments)} WHERE id = $1;"
        await conn.execute(query, *params)

    # --- Attendance reads ---

    async def get_event_heading(self, conn, event_id: int) -> Optional[asyncpg.Record]:
        query = """
            SELECT e.id, en.name AS event_name, e.status, e.venue, e.description
            FROM events e
            JOIN event_names en ON en.id = e.event_name_id
            WHERE e.id = $1;
        """
        return await conn.fetchrow(query, event_id)

    async def get_event_dates(self, conn, event_id: int) -> List[EventDate]:
        query = """
            SELECT id, event_id, event_date, am_in, am_out, pm_in, pm_out, duration
            FROM event_dates
            WHERE event_id = $1
            ORDER BY event_date, id;
        """
        records = await conn.fetch(query, event_id)
        return [EventDate(**record) for record in records]

    async def get_block_attendance_rows(self, conn, event_id: int, block_id: int) -> List[asyncpg.Record]:
        """One row per (Active student of the block, event date), attendance columns NULL when missing."""
        query = """
            SELECT u.id_number AS student_id,
                   u.last_name || ', ' || u.first_name || COALESCE(' ' || u.suffix, '') AS student_name,
                   ed.id AS date_id, ed.event_date,
                   ed.am_in AS date_am_in, ed.am_out AS date_am_out,
                   ed.pm_in AS date_pm_in, ed.pm_out AS date_pm_out,
                   a.am_in AS att_am_in, a.am_out AS att_am_out,
                   a.pm_in AS att_pm_in, a.pm_out AS att_pm_out
            FROM users u
            JOIN event_blocks eb ON eb.block_id = u.block_id AND eb.event_id = $1
            JOIN event_dates ed ON ed.event_id = eb.event_id
            LEFT JOIN attendance a ON a.student_id_number = u.id_number AND a.event_date_id = ed.id
            WHERE u.block_id = $2 AND u.status = 'Active'
            ORDER BY u.id_number, ed.event_date;
        """
        return await conn.fetch(query, event_id, block_id)

    async def get_event_attendance_rows(
        self, conn, event_id: int, department_id: Optional[int] = None,
        year_level_id: Optional[int] = None, block_id: Optional[int] = None
    ) -> List[asyncpg.Record]:
        builder = QueryBuilder(
            """
            SELECT u.id_number,
                   u.last_name || ', ' || u.first_name
                       || COALESCE(' ' || u.middle_name, '')
                       || COALESCE(' ' || u.suffix, '') AS full_name,
                   b.id AS block_id, b.name AS block_name,
                   d.id AS department_id, d.code AS department_code, d.name AS department_name,
                   b.year_level_id, yl.name AS year_level_name,
                   c.code AS course_code, c.name AS course_name,
                   ed.id AS date_id,
                   ed.am_in AS date_am_in, ed.am_out AS date_am_out,
                   ed.pm_in AS date_pm_in, ed.pm_out AS date_pm_out,
                   a.am_in AS att_am_in, a.am_out AS att_am_out,
                   a.pm_in AS att_pm_in, a.pm_out AS att_pm_out
            FROM users u
            JOIN blocks b ON b.id = u.block_id
            JOIN departments d ON d.id = b.department_id
            JOIN courses c ON c.id = b.course_id
            LEFT JOIN year_levels yl ON yl.id = b.year_level_id
            JOIN event_blocks eb ON eb.block_id = b.id AND eb.event_id = $1
            JOIN event_dates ed ON ed.event_id = eb.event_id
            LEFT JOIN attendance a ON a.student_id_number = u.id_number AND a.event_date_id = ed.id
            """,
            [event_id],
        )
        builder.where("u.status = 'Active'")
        builder.where_if(department_id is not None, "d.id = {}", department_id)
        builder.where_if(year_level_id is not None, "b.year_level_id = {}", year_level_id)
        builder.where_if(block_id is not None, "b.id = {}", block_id)
        builder.order_by("u.last_name", "u.first_name", "d.code", "b.name")
        query, params = builder.build()
        return await conn.fetch(query, *params)

    async def get_student_event_attendance(self, conn, event_id: int, id_number: str) -> List[Attendance]:
        query = """
            SELECT a.id, a.event_date_id, a.student_id_number, a.block_id,
                   a.am_in, a.am_out, a.pm_in, a.pm_out
            FROM attendance a
            JOIN event_dates ed ON ed.id = a.event_date_id
            WHERE ed.event_id = $1 AND a.student_id_number = $2;
        """
        records = await conn.fetch(query, event_id, id_number)
        return [Attendance(**record) for record in records]

    async def get_block_roster_rows(self, conn, event_id: int, block_id: int) -> List[asyncpg.Record]:
        query = """
            SELECT u.id_number AS student_id, u.first_name, u.middle_name, u.last_name,
                   u.suffix, u.email, u.status AS user_status,
                   ed.id AS date_id, ed.event_date,
                   ed.am_in AS date_am_in, ed.am_out AS date_am_out,
                   ed.pm_in AS date_pm_in, ed.pm_out AS date_pm_out,
                   a.am_in AS att_am_in, a.am_out AS att_am_out,
                   a.pm_in AS att_pm_in, a.pm_out AS att_pm_out
            FROM users u
            JOIN event_dates ed ON ed.event_id = $1
            LEFT JOIN attendance a ON a.student_id_number = u.id_number AND a.event_date_id = ed.id
            WHERE u.block_id = $2 AND u.status = 'Active'
            ORDER BY u.last_name, u.first_name, u.id_number, ed.event_date;
        """
        return await conn.fetch(query, event_id, block_id)

    async def get_block_event_rows(
        self, conn, block_id: int, id_number: str, status: EventStatus
    ) -> List[asyncpg.Record]:
        """Dates of the block's events in `status` with the student's attendance for each date."""
        query = """
            SELECT e.id AS event_id, en.name AS event_name,
                   ed.id AS date_id, ed.event_date,
                   a.am_in AS att_am_in, a.am_out AS att_am_out,
                   a.pm_in AS att_pm_in, a.pm_out AS att_pm_out
            FROM events e
            JOIN event_names en ON en.id = e.event_name_id
            JOIN event_blocks eb ON eb.event_id = e.id AND eb.block_id = $1
            JOIN event_dates ed ON ed.event_id = e.id
            LEFT JOIN attendance a ON a.event_date_id = ed.id AND a.student_id_number = $2
            WHERE e.status = $3
            ORDER BY e.id, ed.event_date;
        """
        return await conn.fetch(query, block_id, id_number, status.value)

    async def get_event_block_rows(
        self, conn, event_id: int, department_id: Optional[int] = None, year_level_id: Optional[int] = None
    ) -> List[asyncpg.Record]:
        """
        One row per (student, event date) for the current Active blocks that
        carry on the event's blocks. A linked block maps to every Active
        block with the same department, year level and name, so an event
        from an archived period still resolves to today's students.
        """
        builder = QueryBuilder(
            """
            SELECT DISTINCT cb.id AS block_id, cb.name AS block_name, c.code AS course_code,
                   cb.department_id, cb.year_level_id, cb.status AS block_status,
                   u.id_number AS student_id,
                   u.last_name || ', ' || u.first_name || COALESCE(' ' || u.middle_name, '') AS student_name,
                   ed.id AS date_id, ed.event_date,
                   a.am_in AS att_am_in, a.am_out AS att_am_out,
                   a.pm_in AS att_pm_in, a.pm_out AS att_pm_out
            FROM event_blocks eb
            JOIN events e ON e.id = eb.event_id
            JOIN blocks ob ON ob.id = eb.block_id
            JOIN blocks cb ON cb.department_id = ob.department_id
                          AND cb.year_level_id = ob.year_level_id
                          AND cb.name = ob.name
                          AND cb.status = 'Active'
            JOIN courses c ON c.id = cb.course_id
            JOIN users u ON u.block_id = cb.id AND u.status = 'Active'
            JOIN event_dates ed ON ed.event_id = e.id
            LEFT JOIN attendance a ON a.student_id_number = u.id_number AND a.event_date_id = ed.id
            """
        )
        builder.where("eb.event_id = {}", event_id)
        builder.where("e.status IN ('Approved', 'Archived')")
        builder.where_if(department_id is not None, "cb.department_id = {}", department_id)
        builder.where_if(year_level_id is not None, "cb.year_level_id = {}", year_level_id)
        builder.order_by("block_name", "block_id", "student_name", "student_id", "event_date")
        query, params = builder.build()
        return await conn.fetch(query, *params)

    # --- Events ---

    async def get_event_name(self, conn, event_name_id: int) -> Optional[str]:
        return await conn.fetchval("SELECT name FROM event_names WHERE id = $1;", event_name_id)

    async def get_admin(self, conn, id_number: str) -> Optional[Admin]:
        query = "SELECT id_number, first_name, last_name, role_id FROM admins WHERE id_number = $1;"
        record = await conn.fetchrow(query, id_number)
        return Admin(**record) if record else None

    async def get_event(self, conn, event_id: int) -> Optional[Event]:
        query = """
            SELECT id, event_name_id, venue, description, scan_personnel, school_period_id,
                   created_by, approved_by, status
            FROM events
            WHERE id = $1;
        """
        record = await conn.fetchrow(query, event_id)
        return Event(**record) if record else None

    async def get_approved_event_date_rows(self, conn, block_id: Optional[int] = None) -> List[asyncpg.Record]:
        """Every date of every Approved event, optionally only events linked to `block_id`."""
        builder = QueryBuilder(
            """
            SELECT e.id AS event_id, en.name AS event_name, e.venue, e.description,
                   ARRAY(SELECT eb.block_id FROM event_blocks eb
                         WHERE eb.event_id = e.id ORDER BY eb.block_id) AS block_ids,
                   ed.id AS date_id, ed.event_date,
                   ed.am_in, ed.am_out, ed.pm_in, ed.pm_out, ed.duration
            FROM events e
            JOIN event_names en ON en.id = e.event_name_id
            JOIN event_dates ed ON ed.event_id = e.id
            """
        )
        builder.where("e.status = 'Approved'")
        builder.where_if(
            block_id is not None,
            "EXISTS (SELECT 1 FROM event_blocks lb WHERE lb.event_id = e.id AND lb.block_id = {})",
            block_id,
        )
        builder.order_by("e.id", "ed.event_date")
        query, params = builder.build()
        return await conn.fetch(query, *params)

    async def get_duplicate_candidates(
        self, conn, event_name_id: int, venue: str, exclude_event_id: Optional[int] = None
    ) -> List[asyncpg.Record]:
        """Pending or Approved events with the same name and venue, each with its date strings and block ids."""
        builder = QueryBuilder(
            """
            SELECT e.id,
                   ARRAY(SELECT to_char(ed.event_date, 'YYYY-MM-DD')
                         FROM event_dates ed WHERE ed.event_id = e.id) AS dates,
                   ARRAY(SELECT eb.block_id
                         FROM event_blocks eb WHERE eb.event_id = e.id) AS block_ids
            FROM events e
            """
        )
        builder.where("e.event_name_id = {}", event_name_id)
        builder.where("e.venue = {}", venue)
        builder.where("e.status IN ('Pending', 'Approved')")
        builder.where_if(exclude_event_id is not None, "e.id <> {}", exclude_event_id)
        query, params = builder.build()
        return await conn.fetch(query, *params)

    async def insert_event(
        self, conn, event_name_id: int, school_period_id: int, venue: str,
        description: Optional[str], scan_personnel: Optional[str],
        created_by: str, status: EventStatus
    ) -> int:
        query = """
            INSERT INTO events (event_name_id, school_period_id, venue, description, scan_personnel, created_by, status)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING id;
        """
        return await conn.fetchval(
            query, event_name_id, school_period_id, venue, description,
            scan_personnel, created_by, status.value
        )

    async def update_event(
        self, conn, event_id: int, event_name_id: int, school_period_id: int,
        venue: str, description: Optional[str], scan_personnel: Optional[str], edited_by: str
    ) -> None:
        query = """
            UPDATE events
            SET event_name_id = $2, school_period_id = $3, venue = $4,
                description = $5, scan_personnel = $6, created_by = $7
            WHERE id = $1;
        """
        await conn.execute(
            query, event_id, event_name_id, school_period_id, venue,
            description, scan_personnel, edited_by
        )

    async def insert_event_dates(
        self, conn, event_id: int, event_dates: Sequence[date],
        slots: Dict[str, Optional[time]], duration: Optional[int]
    ) -> None:
        """Inserts one row per date, all sharing the same slot template and duration."""
        if not event_dates:
            return
        query = """
            INSERT INTO event_dates (event_id, event_date, am_in, am_out, pm_in, pm_out, duration)
            VALUES ($1, $2, $3, $4, $5, $6, $7);
        """
        template = [slots.get(slot) for slot in SLOTS]
        await conn.executemany(query, [(event_id, d, *template, duration) for d in event_dates])

    async def insert_event_blocks(self, conn, event_id: int, block_ids: Sequence[int]) -> None:
        if not block_ids:
            return
        query = "INSERT INTO event_blocks (event_id, block_id) VALUES ($1, $2);"
        await conn.executemany(query, [(event_id, block_id) for block_id in block_ids])

    async def get_event_date_ids(self, conn, event_id: int) -> List[int]:
        records = await conn.fetch("SELECT id FROM event_dates WHERE event_id = $1;", event_id)
        return [record["id"] for record in records]

    async def get_event_block_ids(self, conn, event_id: int) -> List[int]:
        records = await conn.fetch(
            "SELECT block_id FROM event_blocks WHERE event_id = $1 ORDER BY block_id;", event_id
        )
        return [record["block_id"] for record in records]

    async def delete_attendance_for_dates(self, conn, event_date_ids: Sequence[int]) -> int:
        if not event_date_ids:
            return 0
        query = "DELETE FROM attendance WHERE event_date_id = ANY($1::int[]);"
        result = await conn.execute(query, list(event_date_ids))
        return _affected_rows(result)

    async def count_attendance_for_dates(self, conn, event_date_ids: Sequence[int]) -> int:
        if not event_date_ids:
            return 0
        query = "SELECT COUNT(*) FROM attendance WHERE event_date_id = ANY($1::int[]);"
        return await conn.fetchval(query, list(event_date_ids))

    async def delete_event_dates(self, conn, event_id: int) -> None:
        await conn.execute("DELETE FROM event_dates WHERE event_id = $1;", event_id)

    async def delete_event_blocks(self, conn, event_id: int) -> None:
        await conn.execute("DELETE FROM event_blocks WHERE event_id = $1;", event_id)

    async def approve_event(self, conn, event_id: int, approver_id: str) -> int:
        query = "UPDATE events SET status = 'Approved', approved_by = $2 WHERE id = $1 AND status = 'Pending';"
        result = await conn.execute(query, event_id, approver_id)
        return _affected_rows(result)

    async def set_event_status(self, conn, event_id: int, status: EventStatus) -> int:
        result = await conn.execute("UPDATE events SET status = $2 WHERE id = $1;", event_id, status.value)
        return _affected_rows(result)

    # --- Rollover and sweeping ---

    async def backfill_attendance(self, conn, school_period_id: int, student_role_id: int) -> int:
        """
        Inserts an all-false attendance row for every date of every Approved
        event of the period and every Active student in one of its blocks,
        leaving existing rows untouched.
        """
        query = """
            INSERT INTO attendance (event_date_id, student_id_number, block_id, am_in, am_out, pm_in, pm_out)
            SELECT ed.id, u.id_number, u.block_id, FALSE, FALSE, FALSE, FALSE
            FROM events e
            JOIN event_blocks eb ON eb.event_id = e.id
            JOIN blocks b ON b.id = eb.block_id AND b.school_period_id = $1
            JOIN users u ON u.block_id = b.id AND u.status = 'Active' AND u.role_id = $2
            JOIN event_dates ed ON ed.event_id = e.id
            WHERE e.status = 'Approved' AND e.school_period_id = $1
            ON CONFLICT (event_date_id, student_id_number) DO NOTHING;
        """
        result = await conn.execute(query, school_period_id, student_role_id)
        return _affected_rows(result)

    async def archive_past_events(self, conn, today: date) -> int:
        """Archives every Approved event whose last date is strictly before `today`."""
        query = """
            UPDATE events e
            SET status = 'Archived'
            FROM (
                SELECT event_id, MAX(event_date) AS last_date
                FROM event_dates
                GROUP BY event_id
            ) last_dates
            WHERE last_dates.event_id = e.id
              AND e.status = 'Approved'
              AND last_dates.last_date < $1;
        """
        result = await conn.execute(query, today)
        return _affected_rows(result)
