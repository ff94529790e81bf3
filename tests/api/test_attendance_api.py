import pytest
from datetime import date, time

from app.eventattend.api import dependencies
from app.eventattend.main import app
from app.eventattend.models.db_models import EventDate
from app.eventattend.models.summary_models import EventBlocksAttendance
from app.eventattend.models.result_models import SyncResult
from app.eventattend.services.attendance_summary_service import AttendanceSummaryService
from app.eventattend.services.errors import NotFoundError


@pytest.fixture
def real_summary_service(client, db_client):
    """Routes summaries through the real service and aggregator over a mocked database."""
    service = AttendanceSummaryService(db_client=db_client)
    app.dependency_overrides[dependencies.get_attendance_summary_service] = lambda: service
    return service


@pytest.mark.asyncio
class TestAttendanceApi:

    async def test_sync_forwards_raw_records(self, client, sync_service):
        sync_service.sync_attendance.return_value = SyncResult(
            synced_count=0, failed_count=0, synced_records=[], failed_records=[]
        )
        records = [{"event_date_id": 1, "student_id_number": "S1", "am_in": True}]

        response = await client.post("/attendance/sync", json={"attendance_data": records})

        assert response.status_code == 200
        sync_service.sync_attendance.assert_awaited_once_with(records)

    async def test_block_summary_omits_unscheduled_slots(self, client, db_client, real_summary_service):
        """Scenario: Only am_in and pm_out are scheduled, so no am_out or pm_in keys appear."""
        event_date = EventDate(id=1, event_id=9, event_date=date(2024, 9, 2), am_in=time(8, 0), pm_out=time(17, 0))
        db_client.get_event_heading.return_value = {"event_name": "Orientation", "status": "Approved"}
        db_client.get_event_dates.return_value = [event_date]
        db_client.get_block_attendance_rows.return_value = [{
            "student_id": "S1", "student_name": "Reyes, Ana", "date_id": 1, "event_date": event_date.event_date,
            "date_am_in": time(8, 0), "date_am_out": None, "date_pm_in": None, "date_pm_out": time(17, 0),
            "att_am_in": True, "att_am_out": None, "att_pm_in": None, "att_pm_out": False,
        }]

        response = await client.get("/attendance/events/9/blocks/4/summary")

        assert response.status_code == 200
        body = response.json()
        assert body["available_time_periods"] == {
            "hasAmIn": True, "hasAmOut": False, "hasPmIn": False, "hasPmOut": True,
        }
        student = body["attendance_summary"][0]
        assert (student["present_count"], student["absent_count"], student["total_sessions"]) == (1, 1, 2)
        assert "am_out_total" not in student and "pm_in_attended" not in student
        detail = student["attendance_details"][0]
        assert detail["am_in"] == "2024-09-02T08:00:00"
        assert "am_out" not in detail

    async def test_block_summary_for_block_outside_the_event_is_empty(self, client, db_client, real_summary_service):
        """Scenario: Block 4 was never invited to event 9."""
        event_date = EventDate(id=1, event_id=9, event_date=date(2024, 9, 2), am_in=time(8, 0))
        db_client.get_event_heading.return_value = {"event_name": "Orientation", "status": "Approved"}
        db_client.get_event_dates.return_value = [event_date]
        db_client.get_block_attendance_rows.return_value = []

        response = await client.get("/attendance/events/9/blocks/4/summary")

        assert response.status_code == 200
        body = response.json()
        assert body["attendance_summary"] == []
        assert body["first_event_date"] == body["last_event_date"] == "2024-09-02"

    async def test_event_blocks_passes_filters(self, client, summary_service):
        summary_service.get_event_blocks_attendance.return_value = EventBlocksAttendance(
            event_id=9, event_name="Orientation", blocks=[]
        )

        response = await client.get("/attendance/events/9/blocks", params={"year_level_id": 1})

        assert response.status_code == 200
        assert response.json() == {"event_id": 9, "event_name": "Orientation", "blocks": []}
        summary_service.get_event_blocks_attendance.assert_awaited_once_with(
            9, department_id=None, year_level_id=1
        )

    async def test_event_blocks_of_unknown_event(self, client, summary_service):
        summary_service.get_event_blocks_attendance.side_effect = NotFoundError("Event not found.")

        response = await client.get("/attendance/events/404/blocks")

        assert response.status_code == 404

    async def test_invalid_attendance_filter_is_rejected(self, client):
        response = await client.get("/attendance/events/9/blocks/4/summary", params={"attendance_filter": "late"})
        assert response.status_code == 422

    async def test_event_summary_passes_filters(self, client, summary_service):
        summary_service.get_event_attendance_summary.side_effect = NotFoundError("Event not found.")

        response = await client.get(
            "/attendance/events/9/summary",
            params={"department_id": 2, "block_id": 4, "attendance_filter": "absent"},
        )

        assert response.status_code == 404
        kwargs = summary_service.get_event_attendance_summary.await_args.kwargs
        assert (kwargs["department_id"], kwargs["year_level_id"], kwargs["block_id"]) == (2, None, 4)
        assert kwargs["attendance_filter"] == "absent"

    async def test_student_events_scope_is_validated(self, client, summary_service):
        response = await client.get("/attendance/students/S1/events", params={"scope": "upcoming"})

        assert response.status_code == 422
        summary_service.get_student_events.assert_not_awaited()

    async def test_student_events(self, client, summary_service):
        summary_service.get_student_events.return_value = []

        response = await client.get("/attendance/students/S1/events", params={"scope": "past"})

        assert response.status_code == 200 and response.json() == []
        summary_service.get_student_events.assert_awaited_once_with("S1", "past")
