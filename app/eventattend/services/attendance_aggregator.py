"""
Pure aggregation over schedule and attendance rows.

A row pairs one event date with one student's attendance for it. Schedule
columns are named ``date_<slot>`` (a time, or None when the slot is not
scheduled that day) and attendance columns ``att_<slot>`` (a bool, or None
when the student has no attendance row for that date). Both asyncpg records
and plain dicts work as rows.

Each slot therefore has three states on a given date: not scheduled,
scheduled but missed, and attended. Only scheduled slots count towards
totals, and only slots scheduled on at least one date of the event are
reported at all.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from ..models.db_models import SLOTS, EventDate
from ..models.summary_models import (
    AttendanceFilter, AvailableTimePeriods, BlockAttendanceDetail, BlockRef, DepartmentRef,
    EventBlockAttendance, EventBlockStudent, RosterDate, RosterStudent, ScheduledDate,
    SlotAttendance, StudentBlockSummary, StudentDateSummary, StudentEvent,
    StudentEventSummary, UpcomingEvent, YearLevelRef,
)


class DateTally(NamedTuple):
    required: int
    attended: int
    # slot -> attended, for the available slots scheduled on this date
    slots: Dict[str, bool]


def available_time_periods(event_dates: Iterable[EventDate]) -> AvailableTimePeriods:
    """Marks a slot available when any date of the event schedules it."""
    flags = {f"has_{slot}": False for slot in SLOTS}
    for event_date in event_dates:
        for slot in SLOTS:
            if getattr(event_date, slot) is not None:
                flags[f"has_{slot}"] = True
    return AvailableTimePeriods(**flags)


def tally_date(row: Mapping[str, Any], available: AvailableTimePeriods) -> DateTally:
    required = attended = 0
    slots: Dict[str, bool] = {}
    for slot in available.slots:
        if row[f"date_{slot}"] is None:
            continue
        was_present = bool(row[f"att_{slot}"])
        required += 1
        attended += int(was_present)
        slots[slot] = was_present
    return DateTally(required, attended, slots)


def apply_attendance_filter(students: List, attendance_filter: AttendanceFilter) -> List:
    if attendance_filter == AttendanceFilter.PRESENT:
        return [s for s in students if s.present_count > 0]
    if attendance_filter == AttendanceFilter.ABSENT:
        return [s for s in students if s.absent_count > 0]
    return students


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() if isinstance(value, (date, datetime)) else str(value)


def summarize_block(
    rows: Iterable[Mapping[str, Any]],
    available: AvailableTimePeriods,
    attendance_filter: AttendanceFilter = AttendanceFilter.ALL,
) -> List[StudentBlockSummary]:
    """
    Per-student totals for one block. Rows must be grouped by student;
    students keep the order of their first row.
    """
    students: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        student = students.get(row["student_id"])
        if student is None:
            student = {
                "student_id": row["student_id"],
                "student_name": row["student_name"],
                "present_count": 0,
                "absent_count": 0,
                "total_sessions": 0,
                "attendance_details": [],
            }
            for slot in available.slots:
                student[f"{slot}_attended"] = 0
                student[f"{slot}_total"] = 0
            students[row["student_id"]] = student

        tally = tally_date(row, available)
        student["present_count"] += tally.attended
        student["absent_count"] += tally.required - tally.attended
        student["total_sessions"] += tally.required

        event_date = _iso(row["event_date"])
        detail = {
            "date_id": row["date_id"],
            "event_date": event_date,
            "sessions_required": tally.required,
            "sessions_attended": tally.attended,
        }
        for slot in available.slots:
            scheduled = slot in tally.slots
            was_present = tally.slots.get(slot, False)
            if scheduled:
                student[f"{slot}_total"] += 1
                student[f"{slot}_attended"] += int(was_present)
            detail[f"{slot}_attended"] = was_present
            detail[slot] = f"{event_date}T{_iso(row[f'date_{slot}'])}" if was_present else None
        student["attendance_details"].append(BlockAttendanceDetail(**detail))

    summaries = [StudentBlockSummary(**student) for student in students.values()]
    return apply_attendance_filter(summaries, attendance_filter)


def split_full_name(full_name: str) -> Tuple[str, str]:
    """
    Splits 'Last, First Middle Suffix' into (last, first). The first name is
    the first word after the comma.
    """
    last, _, rest = full_name.partition(",")
    words = rest.split()
    return last.strip(), words[0] if words else ""


class EventRollup(NamedTuple):
    students: List[StudentEventSummary]
    departments: List[DepartmentRef]
    year_levels: List[YearLevelRef]
    blocks: List[BlockRef]


def summarize_event(
    rows: Iterable[Mapping[str, Any]],
    attendance_filter: AttendanceFilter = AttendanceFilter.ALL,
) -> EventRollup:
    """
    Groups rows by student across every block of the event. Students are
    sorted by (last name, first name) with plain case-sensitive comparison.
    """
    students: Dict[str, StudentEventSummary] = {}
    departments: Dict[int, DepartmentRef] = {}
    year_levels: Dict[int, YearLevelRef] = {}
    blocks: Dict[int, BlockRef] = {}

    for row in rows:
        departments[row["department_id"]] = DepartmentRef(
            id=row["department_id"], code=row["department_code"], name=row["department_name"]
        )
        year_levels[row["year_level_id"]] = YearLevelRef(id=row["year_level_id"], name=row["year_level_name"])
        blocks[row["block_id"]] = BlockRef(
            id=row["block_id"],
            name=row["block_name"],
            course_code=row["course_code"],
            course_name=row["course_name"],
            department_id=row["department_id"],
            department_code=row["department_code"],
            year_level_id=row["year_level_id"],
        )

        student = students.get(row["id_number"])
        if student is None:
            last_name, first_name = split_full_name(row["full_name"])
            student = StudentEventSummary(
                id_number=row["id_number"],
                full_name=row["full_name"],
                last_name=last_name,
                first_name=first_name,
                block_id=row["block_id"],
                block_name=row["block_name"],
                course_code=row["course_code"],
                course_name=row["course_name"],
                department_id=row["department_id"],
                department_code=row["department_code"],
                department_name=row["department_name"],
                year_level_id=row["year_level_id"],
                year_level_name=row["year_level_name"],
                present_count=0,
                absent_count=0,
                total_sessions=0,
            )
            students[row["id_number"]] = student

        required = sum(1 for slot in SLOTS if row[f"date_{slot}"] is not None)
        attended = sum(1 for slot in SLOTS if row[f"date_{slot}"] is not None and row[f"att_{slot}"])
        student.present_count += attended
        student.absent_count += required - attended
        student.total_sessions += required

    ordered = sorted(students.values(), key=lambda s: (s.last_name, s.first_name))
    ordered = apply_attendance_filter(ordered, attendance_filter)

    kept_departments = {s.department_id for s in ordered}
    kept_year_levels = {s.year_level_id for s in ordered}
    kept_blocks = {s.block_id for s in ordered}
    return EventRollup(
        students=ordered,
        departments=sorted(
            (d for d in departments.values() if d.id in kept_departments),
            key=lambda d: d.code,
        ),
        year_levels=sorted(
            (y for y in year_levels.values() if y.id in kept_year_levels),
            key=lambda y: y.name or "",
        ),
        blocks=sorted((b for b in blocks.values() if b.id in kept_blocks), key=lambda b: b.name),
    )


def summarize_student(
    event_dates: List[EventDate],
    attendance_by_date: Mapping[int, Any],
    available: AvailableTimePeriods,
) -> Dict[str, StudentDateSummary]:
    """
    Per-date counters for one student, keyed by 'YYYY-MM-DD'. Slot counters
    are 0 or 1 and only reported for available slots.
    """
    summary: Dict[str, StudentDateSummary] = {}
    for event_date in event_dates:
        record = attendance_by_date.get(event_date.id)
        row = {}
        for slot in SLOTS:
            row[f"date_{slot}"] = getattr(event_date, slot)
            row[f"att_{slot}"] = getattr(record, slot) if record is not None else None
        tally = tally_date(row, available)

        fields = {
            "present_count": tally.attended,
            "absent_count": tally.required - tally.attended,
            "total_count": tally.required,
        }
        for slot in available.slots:
            fields[f"{slot}_total"] = int(slot in tally.slots)
            fields[f"{slot}_attended"] = int(tally.slots.get(slot, False))
        summary[event_date.event_date.isoformat()] = StudentDateSummary(**fields)
    return summary


def _roster_name(row: Mapping[str, Any]) -> str:
    name = f"{row['last_name']}, {row['first_name']}"
    if row["middle_name"]:
        name += f" {row['middle_name'][0]}."
    if row["suffix"]:
        name += f" {row['suffix']}"
    return name


def build_block_roster(rows: Iterable[Mapping[str, Any]]) -> List[RosterStudent]:
    """
    Per student, per date: the slots scheduled that day with their times,
    and the scheduled slots the student attended.
    """
    students: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        student = students.get(row["student_id"])
        if student is None:
            student = {
                "student_id": row["student_id"],
                "name": _roster_name(row),
                "first_name": row["first_name"],
                "middle_name": row["middle_name"],
                "last_name": row["last_name"],
                "suffix": row["suffix"],
                "email": row["email"],
                "status": row["user_status"],
                "dates": [],
            }
            students[row["student_id"]] = student

        schedule = {slot: row[f"date_{slot}"] for slot in SLOTS if row[f"date_{slot}"] is not None}
        attendance = {slot: True for slot in schedule if row[f"att_{slot}"]}
        student["dates"].append(RosterDate(date=_iso(row["event_date"]), schedule=schedule, attendance=attendance))

    return [RosterStudent(**student) for student in students.values()]


def group_student_events(
    rows: Iterable[Mapping[str, Any]],
    ongoing_on: Optional[date] = None,
) -> List[StudentEvent]:
    """
    Groups per-date rows into events, ordered by first date. When
    `ongoing_on` is given, only events whose first..last date range
    contains that day are kept. Dates without an attendance row show all
    four slots as False.
    """
    events: Dict[int, Dict[str, Any]] = {}
    for row in rows:
        event = events.setdefault(
            row["event_id"],
            {"event_id": row["event_id"], "event_name": row["event_name"], "dates": []},
        )
        event["dates"].append((row["event_date"], {slot: bool(row[f"att_{slot}"]) for slot in SLOTS}))

    result = []
    for event in events.values():
        dates = sorted(event["dates"], key=lambda item: item[0])
        if ongoing_on is not None and not dates[0][0] <= ongoing_on <= dates[-1][0]:
            continue
        result.append(StudentEvent(
            event_id=event["event_id"],
            event_name=event["event_name"],
            event_dates=[d.isoformat() for d, _ in dates],
            attendance={d.isoformat(): SlotAttendance(**slots) for d, slots in dates},
        ))
    result.sort(key=lambda e: e.event_dates[0])
    return result


def group_event_blocks(rows: Iterable[Mapping[str, Any]]) -> List[EventBlockAttendance]:
    """
    Nests per-date rows as block -> student -> date, keeping row order.
    Blocks only appear when they have at least one student row.
    """
    blocks: Dict[int, Dict[str, Any]] = {}
    for row in rows:
        block = blocks.get(row["block_id"])
        if block is None:
            block = {
                "block_id": row["block_id"],
                "block_name": row["block_name"],
                "course_code": row["course_code"],
                "department_id": row["department_id"],
                "year_level_id": row["year_level_id"],
                "status": row["block_status"],
                "students": {},
            }
            blocks[row["block_id"]] = block
        student = block["students"].setdefault(
            row["student_id"],
            {"student_id": row["student_id"], "student_name": row["student_name"], "attendance": {}},
        )
        student["attendance"][_iso(row["event_date"])] = SlotAttendance(
            **{slot: bool(row[f"att_{slot}"]) for slot in SLOTS}
        )

    return [
        EventBlockAttendance(**{**block, "students": [EventBlockStudent(**s) for s in block["students"].values()]})
        for block in blocks.values()
    ]


# Days either side of today in which an event's first date counts as upcoming.
UPCOMING_WINDOW = timedelta(days=3)


def scheduled_date(event_date: EventDate) -> ScheduledDate:
    return ScheduledDate(
        event_date_id=event_date.id,
        event_date=event_date.event_date,
        duration=event_date.duration,
        **{slot: getattr(event_date, slot) for slot in SLOTS},
    )


def is_upcoming(first: date, last: date, today: date) -> bool:
    """Starts within UPCOMING_WINDOW of today, or is running today."""
    return today - UPCOMING_WINDOW <= first <= today + UPCOMING_WINDOW or first <= today <= last


def group_upcoming_events(rows: Iterable[Mapping[str, Any]], today: date) -> List[UpcomingEvent]:
    """Groups per-date rows into events and keeps the upcoming ones, earliest first."""
    events: Dict[int, Dict[str, Any]] = {}
    for row in rows:
        event = events.setdefault(row["event_id"], {
            "event_id": row["event_id"],
            "event_name": row["event_name"],
            "venue": row["venue"],
            "description": row["description"],
            "block_ids": list(row["block_ids"] or []),
            "dates": [],
        })
        event["dates"].append(scheduled_date(EventDate(
            id=row["date_id"], event_id=row["event_id"], event_date=row["event_date"],
            duration=row["duration"], **{slot: row[slot] for slot in SLOTS},
        )))

    result = []
    for event in events.values():
        dates = sorted(event["dates"], key=lambda d: d.event_date)
        first, last = dates[0].event_date, dates[-1].event_date
        if not is_upcoming(first, last, today):
            continue
        result.append(UpcomingEvent(**{**event, "dates": dates}, first_event_date=first, last_event_date=last))
    result.sort(key=lambda e: (e.first_event_date, e.event_id))
    return result
