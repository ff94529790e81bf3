# app/eventattend/models/summary_models.py
#
# Read models produced by the attendance aggregator. Per-slot fields are
# optional and are only set for slots the event actually schedules, so they
# are serialized with exclude_unset to omit unscheduled slots entirely.

from pydantic import BaseModel, ConfigDict, Field
from datetime import date, time
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .db_models import SLOTS, BlockStatus, EventStatus


class AttendanceFilter(str, Enum):
    ALL = "all"
    PRESENT = "present"
    ABSENT = "absent"


class AvailableTimePeriods(BaseModel):
    """Which of the four slots are scheduled on at least one date of an event."""
    model_config = ConfigDict(populate_by_name=True)

    has_am_in: bool = Field(False, alias="hasAmIn")
    has_am_out: bool = Field(False, alias="hasAmOut")
    has_pm_in: bool = Field(False, alias="hasPmIn")
    has_pm_out: bool = Field(False, alias="hasPmOut")

    def includes(self, slot: str) -> bool:
        return getattr(self, f"has_{slot}")

    @property
    def slots(self) -> Tuple[str, ...]:
        return tuple(slot for slot in SLOTS if self.includes(slot))


# --- Block summary ---

class BlockAttendanceDetail(BaseModel):
    date_id: int
    event_date: Optional[str] = None
    sessions_required: int
    sessions_attended: int
    am_in: Optional[str] = None
    am_in_attended: Optional[bool] = None
    am_out: Optional[str] = None
    am_out_attended: Optional[bool] = None
    pm_in: Optional[str] = None
    pm_in_attended: Optional[bool] = None
    pm_out: Optional[str] = None
    pm_out_attended: Optional[bool] = None

class StudentBlockSummary(BaseModel):
    student_id: str
    student_name: str
    present_count: int
    absent_count: int
    total_sessions: int
    am_in_attended: Optional[int] = None
    am_in_total: Optional[int] = None
    am_out_attended: Optional[int] = None
    am_out_total: Optional[int] = None
    pm_in_attended: Optional[int] = None
    pm_in_total: Optional[int] = None
    pm_out_attended: Optional[int] = None
    pm_out_total: Optional[int] = None
    attendance_details: List[BlockAttendanceDetail]

class BlockAttendanceSummary(BaseModel):
    event_id: int
    block_id: int
    first_event_date: Optional[date] = None
    last_event_date: Optional[date] = None
    available_time_periods: AvailableTimePeriods
    attendance_summary: List[StudentBlockSummary]


# --- Whole-event summary ---

class DepartmentRef(BaseModel):
    id: int
    code: str
    name: str

class YearLevelRef(BaseModel):
    id: int
    name: Optional[str] = None

class BlockRef(BaseModel):
    id: int
    name: str
    course_code: str
    course_name: str
    department_id: int
    department_code: str
    year_level_id: int

class StudentEventSummary(BaseModel):
    id_number: str
    full_name: str
    last_name: str
    first_name: str
    block_id: int
    block_name: str
    course_code: str
    course_name: str
    department_id: int
    department_code: str
    department_name: str
    year_level_id: int
    year_level_name: Optional[str] = None
    present_count: int = 0
    absent_count: int = 0
    total_sessions: int = 0

class EventAttendanceSummary(BaseModel):
    event_id: int
    event_name: str
    event_status: str
    department_ids: List[int] = []
    year_level_ids: List[int] = []
    block_ids: List[int] = []
    departments: List[DepartmentRef] = []
    year_levels: List[YearLevelRef] = []
    blocks: List[BlockRef] = []
    students: List[StudentEventSummary] = []


# --- Single student summary ---

class StudentDateSummary(BaseModel):
    present_count: int
    absent_count: int
    total_count: int
    am_in_attended: Optional[int] = None
    am_in_total: Optional[int] = None
    am_out_attended: Optional[int] = None
    am_out_total: Optional[int] = None
    pm_in_attended: Optional[int] = None
    pm_in_total: Optional[int] = None
    pm_out_attended: Optional[int] = None
    pm_out_total: Optional[int] = None

class StudentAttendanceSummary(BaseModel):
    event_name: str
    student_id: str
    student_name: str
    available_time_periods: AvailableTimePeriods
    attendance_summary: Dict[str, StudentDateSummary]


# --- Block roster (three-state per-date view) ---

class RosterDate(BaseModel):
    date: str
    schedule: Dict[str, time] = Field(description="Only the slots scheduled on this date.")
    attendance: Dict[str, bool] = Field(description="Only the slots the student attended.")

class RosterStudent(BaseModel):
    student_id: str
    name: str
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    suffix: Optional[str] = None
    email: Optional[str] = None
    status: str
    dates: List[RosterDate]

class EventDetails(BaseModel):
    venue: str
    description: Optional[str] = None
    status: str

class DepartmentLabel(BaseModel):
    name: str
    code: str

class BlockAttendanceRoster(BaseModel):
    event_id: int
    event_name: str
    event_details: Optional[EventDetails] = None
    block_id: int
    block_name: Optional[str] = None
    course_code: Optional[str] = None
    department: Optional[DepartmentLabel] = None
    year_level: Optional[str] = None
    students: List[RosterStudent]


# --- Student's own events ---

class SlotAttendance(BaseModel):
    am_in: bool = False
    am_out: bool = False
    pm_in: bool = False
    pm_out: bool = False

class StudentEvent(BaseModel):
    event_id: int
    event_name: str
    event_dates: List[str]
    attendance: Dict[str, SlotAttendance]


# --- Current blocks of an event ---

class EventBlockStudent(BaseModel):
    student_id: str
    student_name: str
    attendance: Dict[str, SlotAttendance] = Field(description="Keyed by event date (YYYY-MM-DD).")

class EventBlockAttendance(BaseModel):
    block_id: int
    block_name: str
    course_code: str
    department_id: int
    year_level_id: int
    status: BlockStatus
    students: List[EventBlockStudent]

class EventBlocksAttendance(BaseModel):
    event_id: int
    event_name: str
    blocks: List[EventBlockAttendance]


# --- Event listings ---

class ScheduledDate(BaseModel):
    event_date_id: int
    event_date: date
    am_in: Optional[time] = None
    am_out: Optional[time] = None
    pm_in: Optional[time] = None
    pm_out: Optional[time] = None
    duration: Optional[int] = None

class UpcomingEvent(BaseModel):
    event_id: int
    event_name: str
    venue: str
    description: Optional[str] = None
    block_ids: List[int]
    first_event_date: date
    last_event_date: date
    dates: List[ScheduledDate]

class EventDetail(BaseModel):
    """An event with its catalog name, dates in order and invited block ids."""
    event_id: int
    event_name: str
    venue: str
    description: Optional[str] = None
    scan_personnel: Optional[str] = None
    status: EventStatus
    school_period_id: int
    created_by: str
    approved_by: Optional[str] = None
    block_ids: List[int]
    dates: List[ScheduledDate]
