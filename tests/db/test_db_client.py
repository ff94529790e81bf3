import pytest
from datetime import date
from unittest.mock import AsyncMock

from app.eventattend.db.db_client import AsyncPostgresClient, _affected_rows
from app.eventattend.models.db_models import EventStatus


@pytest.fixture
def conn() -> AsyncMock:
    return AsyncMock()

@pytest.fixture
def client() -> AsyncPostgresClient:
    return AsyncPostgresClient(pool=AsyncMock())


@pytest.mark.parametrize("status,expected", [
    ("UPDATE 3", 3),
    ("DELETE 0", 0),
    ("INSERT 0 12", 12),
    ("", 0),
    (None, 0),
])
def test_affected_rows(status, expected):
    assert _affected_rows(status) == expected


@pytest.mark.asyncio
class TestAsyncPostgresClient:

    async def test_update_attendance_sets_only_reported_slots(self, client, conn):
        await client.update_attendance(conn, 55, 7, {"pm_out": None, "am_in": True})

        query, *params = conn.execute.await_args.args
        assert query == "UPDATE attendance SET block_id = $2, am_in = $3, pm_out = $4 WHERE id = $1;"
        assert params == [55, 7, True, False]

    async def test_insert_attendance_defaults_unreported_slots_to_false(self, client, conn):
        conn.fetchval.return_value = 101

        assert await client.insert_attendance(conn, 5, "S1", 7, {"pm_in": True}) == 101
        assert conn.fetchval.await_args.args[1:] == (5, "S1", 7, False, False, True, False)

    async def test_find_block_id_filters_on_status_only_when_asked(self, client, conn):
        await client.find_block_id(conn, "BSIT 1A", 1, 2, 1, 3)
        query, *params = conn.fetchval.await_args.args
        assert "status" not in query
        assert params == ["BSIT 1A", 1, 2, 1, 3]
        assert query.endswith("\nLIMIT 1;")

        await client.find_block_id(conn, "BSIT 1A", 1, 2, 1, 3, active_only=True)
        assert "status = 'Active'" in conn.fetchval.await_args.args[0]

    async def test_event_attendance_rows_binds_optional_filters(self, client, conn):
        await client.get_event_attendance_rows(conn, 9, department_id=2, block_id=5)

        query, *params = conn.fetch.await_args.args
        assert params == [9, 2, 5]
        assert "d.id = $2" in query and "b.id = $3" in query
        assert "b.year_level_id = $" not in query

    async def test_event_block_rows_map_to_current_active_blocks(self, client, conn):
        await client.get_event_block_rows(conn, 9, year_level_id=1)

        query, *params = conn.fetch.await_args.args
        assert params == [9, 1]
        assert "eb.event_id = $1" in query and "cb.year_level_id = $2" in query
        assert "cb.department_id = $" not in query
        assert "cb.status = 'Active'" in query
        assert "e.status IN ('Approved', 'Archived')" in query

    async def test_approved_event_date_rows_filter_on_block_only_when_given(self, client, conn):
        await client.get_approved_event_date_rows(conn)
        query, *params = conn.fetch.await_args.args
        assert params == [] and "EXISTS" not in query
        assert "e.status = 'Approved'" in query

        await client.get_approved_event_date_rows(conn, block_id=4)
        query, *params = conn.fetch.await_args.args
        assert params == [4]
        assert "lb.block_id = $1" in query
        assert query.endswith("ORDER BY e.id, ed.event_date")

    async def test_approve_event_reports_zero_when_not_pending(self, client, conn):
        conn.execute.return_value = "UPDATE 0"
        assert await client.approve_event(conn, 9, "A-1") == 0
        assert "status = 'Pending'" in conn.execute.await_args.args[0]

    async def test_set_event_status_writes_enum_value(self, client, conn):
        conn.execute.return_value = "UPDATE 1"
        assert await client.set_event_status(conn, 9, EventStatus.DELETED) == 1
        assert conn.execute.await_args.args[1:] == (9, "Deleted")

    async def test_archive_past_events_uses_strictly_earlier_dates(self, client, conn):
        conn.execute.return_value = "UPDATE 2"

        assert await client.archive_past_events(conn, date(2024, 9, 3)) == 2
        query = conn.execute.await_args.args[0]
        assert "last_dates.last_date < $1" in query
        assert "e.status = 'Approved'" in query

    async def test_disable_students_returns_disabled_ids(self, client, conn):
        conn.fetch.return_value = [{"id_number": "S9"}, {"id_number": "S8"}]

        disabled = await client.disable_students_not_in(conn, ["S1"], 1)

        assert disabled == ["S9", "S8"]
        assert conn.fetch.await_args.args[1:] == (["S1"], 1)

    async def test_active_period_missing(self, client, conn):
        conn.fetchrow.return_value = None
        assert await client.get_active_school_period(conn) is None
