# app/eventattend/models/db_models.py

from pydantic import BaseModel, Field
from datetime import date, time
from enum import Enum
from typing import Optional

# Time slots of a single event date, in schedule order.
SLOTS = ("am_in", "am_out", "pm_in", "pm_out")


class Semester(str, Enum):
    FIRST = "1st Semester"
    SECOND = "2nd Semester"

class PeriodStatus(str, Enum):
    ACTIVE = "Active"
    ARCHIVED = "Archived"

class BlockStatus(str, Enum):
    ACTIVE = "Active"
    ARCHIVED = "Archived"
    DISABLED = "Disabled"

class StudentStatus(str, Enum):
    NOT_ENROLLED = "NotEnrolled"
    UNREGISTERED = "Unregistered"
    ACTIVE = "Active"
    DISABLED = "Disabled"

class EventStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    ARCHIVED = "Archived"
    DELETED = "Deleted"


class SchoolPeriod(BaseModel):
    """
    A school year + semester pair, mapping to the 'school_periods' table.
    Exactly one row is Active at any time.
    """
    id: int
    school_year: str = Field(..., description="Year range such as '2024-2025'")
    semester: Semester
    status: PeriodStatus

class Admin(BaseModel):
    """Read-only view of the 'admins' table used for creator checks."""
    id_number: str
    first_name: str
    last_name: str
    role_id: int

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

class Event(BaseModel):
    """
    A scheduled activity spanning one or more dates, mapping to the 'events' table.
    """
    id: int
    event_name_id: int
    venue: str
    description: Optional[str] = None
    scan_personnel: Optional[str] = None
    school_period_id: int
    created_by: str
    approved_by: Optional[str] = None
    status: EventStatus

class EventDate(BaseModel):
    """
    One calendar occurrence of an event. A slot left as None is not scheduled
    on this date.
    """
    id: int
    event_id: int
    event_date: date
    am_in: Optional[time] = None
    am_out: Optional[time] = None
    pm_in: Optional[time] = None
    pm_out: Optional[time] = None
    duration: Optional[int] = None

class Attendance(BaseModel):
    """
    A student's record for one event date. block_id is captured when the
    row is written and is not updated when the student changes block.
    """
    id: int
    event_date_id: int
    student_id_number: str
    block_id: Optional[int] = None
    am_in: bool = False
    am_out: bool = False
    pm_in: bool = False
    pm_out: bool = False
