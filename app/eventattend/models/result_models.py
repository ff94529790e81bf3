# app/eventattend/models/result_models.py

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional

from .db_models import SchoolPeriod


class SyncedRecord(BaseModel):
    id: int
    event_date_id: int
    student_id_number: str
    block_id: Optional[int] = None
    action: Literal["inserted", "updated"]

class FailedRecord(BaseModel):
    record: Dict[str, Any] = Field(..., description="The raw input that was rejected.")
    error: str

class SyncResult(BaseModel):
    synced_count: int
    failed_count: int
    synced_records: List[SyncedRecord]
    failed_records: List[FailedRecord]


class EventCreateResult(BaseModel):
    event_id: int
    auto_approved: bool

class EventEditResult(BaseModel):
    event_id: int


class RosterSyncResult(BaseModel):
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    disabled_id_numbers: List[str] = []

class RolloverResult(BaseModel):
    previous_period: SchoolPeriod
    new_period: SchoolPeriod
    backfilled: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
