import pytest

from app.eventattend.models.db_models import PeriodStatus, SchoolPeriod, Semester
from app.eventattend.roster.roster_reader import RosterRow
from app.eventattend.services.errors import StateError, StorageError
from app.eventattend.services.rollover_service import (
    RolloverService, next_school_period, normalize_block_name,
)

FIRST_SEM = SchoolPeriod(id=3, school_year="2024-2025", semester="1st Semester", status="Active")
SECOND_SEM = SchoolPeriod(id=4, school_year="2024-2025", semester="2nd Semester", status="Active")


def roster_row(id_number: str, block: str = "BSIT 1A", year_level: str = "1", **extra) -> RosterRow:
    data = dict(
        id_number=id_number, department="CCS", course="BSIT", block=block,
        year_level=year_level, first_name="Ana", last_name="Reyes",
    )
    data.update(extra)
    return RosterRow(**data)


@pytest.fixture
def service(db_client, notifier):
    db_client.get_active_school_period.return_value = FIRST_SEM
    db_client.get_department_id.return_value = 1
    db_client.get_course_id.return_value = 2
    db_client.year_level_exists.return_value = True
    db_client.find_block_id.return_value = 7
    db_client.get_student_status.return_value = None
    db_client.disable_students_not_in.return_value = []
    return RolloverService(db_client=db_client, notifier=notifier, student_role_id=1)


class TestNextSchoolPeriod:

    def test_first_semester_rolls_to_second_of_same_year(self):
        assert next_school_period("2024-2025", Semester.FIRST) == ("2024-2025", Semester.SECOND)

    def test_second_semester_rolls_to_next_year(self):
        assert next_school_period("2024-2025", "2nd Semester") == ("2025-2026", Semester.FIRST)

    @pytest.mark.parametrize("school_year", ["2024", "24-25", "", "2024/2025"])
    def test_malformed_year_is_rejected(self, school_year):
        with pytest.raises(StateError):
            next_school_period(school_year, Semester.SECOND)

    def test_block_names_are_normalized(self):
        assert normalize_block_name("  bsit   1a ") == "BSIT 1A"


@pytest.mark.asyncio
class TestRosterSync:

    async def test_new_students_are_inserted_and_absent_active_students_disabled(self, service, db_client, notifier, fake_tx):
        """Scenario: The roster lists S1 and S2; S9 is Active but missing from it."""
        db_client.disable_students_not_in.return_value = ["S9"]

        result = await service.run_roster_sync([roster_row("S2"), roster_row("S1")])

        assert (result.processed, result.inserted, result.updated, result.skipped) == (2, 2, 0, 0)
        assert result.disabled_id_numbers == ["S9"]
        db_client.disable_students_not_in.assert_awaited_once_with(fake_tx.conn, ["S1", "S2"], 1)
        db_client.insert_roster_student.assert_any_await(fake_tx.conn, "S1", "Ana", None, "Reyes", None, 7, 1)
        notifier.publish.assert_awaited_once_with("all-events", "users-disabled", {"id_numbers": ["S9"]})
        assert fake_tx.committed == 1

    async def test_unregistered_student_stays_unregistered(self, service, db_client, fake_tx):
        db_client.get_student_status.side_effect = ["Unregistered", "Disabled"]

        result = await service.run_roster_sync([roster_row("S1"), roster_row("S2")])

        assert result.updated == 2
        statuses = [c.args[-1] for c in db_client.update_roster_student.await_args_list]
        assert statuses == ["Unregistered", "Active"]

    async def test_block_lookup_is_cached_across_rows(self, service, db_client):
        await service.run_roster_sync([roster_row("S1", block="bsit 1a"), roster_row("S2", block="BSIT  1A")])

        db_client.find_block_id.assert_awaited_once()
        assert db_client.find_block_id.await_args.args[1] == "BSIT 1A"
        assert db_client.find_block_id.await_args.kwargs == {"active_only": False}

    async def test_missing_block_is_created(self, service, db_client, fake_tx):
        db_client.find_block_id.return_value = None
        db_client.insert_block.return_value = 40

        await service.run_roster_sync([roster_row("S1")])

        db_client.insert_block.assert_awaited_once_with(fake_tx.conn, "BSIT 1A", 1, 2, 1, FIRST_SEM.id)
        assert db_client.insert_roster_student.await_args.args[6] == 40

    async def test_rows_with_unresolvable_references_are_skipped(self, service, db_client, fake_tx):
        """Scenario: One row has a text year level and one has an unknown department."""
        db_client.get_department_id.side_effect = [None, 1]

        result = await service.run_roster_sync([
            roster_row("S1", year_level="First Year"),
            roster_row("S2", block="BSIT 1B"),
            roster_row("S3"),
        ])

        assert (result.processed, result.inserted, result.skipped) == (3, 1, 2)
        # Skipped ids still count as present on the roster.
        db_client.disable_students_not_in.assert_awaited_once_with(fake_tx.conn, ["S1", "S2", "S3"], 1)

    async def test_blank_ids_are_ignored(self, service, db_client):
        result = await service.run_roster_sync([roster_row(""), roster_row("S1")])
        assert result.processed == 1

    async def test_no_active_period(self, service, db_client, fake_tx):
        db_client.get_active_school_period.return_value = None
        with pytest.raises(StateError):
            await service.run_roster_sync([roster_row("S1")])
        assert fake_tx.rolled_back == 1

    async def test_database_error_rolls_back_whole_sync(self, service, db_client, notifier, fake_tx):
        db_client.disable_students_not_in.side_effect = RuntimeError("lost connection")

        with pytest.raises(StorageError):
            await service.run_roster_sync([roster_row("S1")])
        assert fake_tx.rolled_back == 1 and fake_tx.committed == 0
        notifier.publish.assert_not_awaited()

    async def test_nothing_disabled_publishes_nothing(self, service, notifier):
        await service.run_roster_sync([roster_row("S1")])
        notifier.publish.assert_not_awaited()


@pytest.mark.asyncio
class TestPeriodRollover:

    async def test_second_semester_rolls_into_next_year(self, service, db_client, fake_tx):
        """Scenario: 2024-2025 2nd Semester is closed and 2025-2026 1st Semester opens."""
        db_client.get_active_school_period.return_value = SECOND_SEM
        db_client.insert_school_period.return_value = SchoolPeriod(
            id=5, school_year="2025-2026", semester="1st Semester", status="Active"
        )
        db_client.backfill_attendance.return_value = 12
        db_client.archive_period_blocks.return_value = 3
        db_client.get_student_status.return_value = "Active"

        result = await service.run_period_rollover([roster_row("S1")])

        assert result.previous_period.status == PeriodStatus.ARCHIVED
        assert (result.new_period.school_year, result.new_period.semester) == ("2025-2026", Semester.FIRST)
        assert (result.backfilled, result.updated) == (12, 1)
        db_client.insert_school_period.assert_awaited_once_with(fake_tx.conn, "2025-2026", "1st Semester")
        db_client.update_roster_student.assert_awaited_once_with(
            fake_tx.conn, "S1", "Ana", None, "Reyes", None, 7, "Active"
        )
        assert db_client.find_block_id.await_args.args[5] == 5
        assert db_client.find_block_id.await_args.kwargs == {"active_only": True}
        db_client.disable_students_not_in.assert_not_awaited()
        # Backfill is the only attendance write; existing rows are never touched.
        db_client.update_attendance.assert_not_awaited()
        db_client.insert_attendance.assert_not_awaited()
        assert fake_tx.committed == 1

    async def test_steps_run_in_order(self, service, db_client):
        db_client.insert_school_period.return_value = SECOND_SEM
        await service.run_period_rollover([roster_row("S1")])

        steps = [name for name, _, _ in db_client.mock_calls if name in (
            "backfill_attendance", "archive_school_period", "insert_school_period",
            "archive_period_blocks", "find_block_id",
        )]
        assert steps == [
            "backfill_attendance", "archive_school_period", "insert_school_period",
            "archive_period_blocks", "find_block_id",
        ]
        db_client.backfill_attendance.assert_awaited_once_with(db_client.transaction.return_value.conn, 3, 1)
        db_client.update_attendance.assert_not_awaited()

    async def test_malformed_current_year_aborts_before_new_period(self, service, db_client, fake_tx):
        db_client.get_active_school_period.return_value = FIRST_SEM.model_copy(update={"school_year": "2024"})

        with pytest.raises(StateError):
            await service.run_period_rollover([roster_row("S1")])
        db_client.insert_school_period.assert_not_awaited()
        assert fake_tx.rolled_back == 1

    async def test_failure_mid_roster_rolls_back(self, service, db_client, fake_tx):
        db_client.insert_school_period.return_value = SECOND_SEM
        db_client.insert_roster_student.side_effect = RuntimeError("constraint violated")

        with pytest.raises(StorageError):
            await service.run_period_rollover([roster_row("S1")])
        assert fake_tx.rolled_back == 1 and fake_tx.committed == 0


@pytest.mark.asyncio
async def test_current_period_missing_is_a_state_error(service, db_client):
    db_client.get_active_school_period.return_value = None
    with pytest.raises(StateError):
        await service.get_current_school_period()
