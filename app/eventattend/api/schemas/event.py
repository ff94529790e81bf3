from pydantic import BaseModel, Field
from datetime import date, time
from typing import List, Optional


class EventRequest(BaseModel):
    """Request model for creating or rewriting an event."""
    event_name_id: int = Field(..., description="Id from the event name catalog.")
    venue: str = Field(..., min_length=1)
    dates: List[date] = Field(..., min_length=1, description="Dates in YYYY-MM-DD format; duplicates are ignored.")
    block_ids: List[int] = Field(..., min_length=1, description="Blocks invited to the event.")
    description: Optional[str] = None
    scan_personnel: Optional[str] = None
    am_in: Optional[time] = Field(None, description="Leave empty when the slot is not scheduled.")
    am_out: Optional[time] = None
    pm_in: Optional[time] = None
    pm_out: Optional[time] = None
    duration: Optional[int] = Field(None, ge=0, description="Scan window in minutes, same for every date.")
    admin_id_number: str = Field(..., min_length=1, description="The acting admin.")

class EventEditRequest(EventRequest):
    """Edit shape that carries the event id in the body instead of the path."""
    event_id: int

class ApproveEventRequest(BaseModel):
    admin_id_number: str = Field(..., min_length=1, description="The approving admin.")

class MessageResponse(BaseModel):
    message: str
