from fastapi import APIRouter, Depends, Query, Request
from typing import List, Optional

from ..models.result_models import SyncResult
from ..models.summary_models import (
    AttendanceFilter, BlockAttendanceRoster, BlockAttendanceSummary,
    EventAttendanceSummary, EventBlocksAttendance, StudentAttendanceSummary, StudentEvent,
)
from ..services.attendance_summary_service import AttendanceSummaryService
from ..services.attendance_sync_service import AttendanceSyncService
from ..services.errors import ServiceError
from .dependencies import get_attendance_summary_service, get_attendance_sync_service
from .schemas.attendance import AttendanceSyncRequest
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

router = APIRouter(prefix="/attendance", tags=["Attendance"])


@router.post("/sync", response_model=SyncResult, summary="Sync a batch of scan reports")
@limiter.limit("60/minute")
async def sync_attendance(request: Request, sync_request: AttendanceSyncRequest, service: AttendanceSyncService = Depends(get_attendance_sync_service)):
    try:
        return await service.sync_attendance(sync_request.attendance_data)
    except ServiceError as e:
        raise to_http_exception(e)

@router.get("/events/{event_id}/summary", response_model=EventAttendanceSummary, response_model_exclude_unset=True, summary="Attendance summary of a whole event")
@limiter.limit("30/minute")
async def get_event_summary(
    request: Request,
    event_id: int,
    department_id: Optional[int] = Query(None, ge=1),
    year_level_id: Optional[int] = Query(None, ge=1),
    block_id: Optional[int] = Query(None, ge=1),
    attendance_filter: AttendanceFilter = AttendanceFilter.ALL,
    service: AttendanceSummaryService = Depends(get_attendance_summary_service),
):
    try:
        return await service.get_event_attendance_summary(
            event_id, department_id=department_id, year_level_id=year_level_id,
            block_id=block_id, attendance_filter=attendance_filter,
        )
    except ServiceError as e:
        raise to_http_exception(e)

@router.get("/events/{event_id}/blocks", response_model=EventBlocksAttendance, summary="Per-date attendance of an event, grouped by current block")
@limiter.limit("30/minute")
async def get_event_blocks(
    request: Request,
    event_id: int,
    department_id: Optional[int] = Query(None, ge=1),
    year_level_id: Optional[int] = Query(None, ge=1),
    service: AttendanceSummaryService = Depends(get_attendance_summary_service),
):
    try:
        return await service.get_event_blocks_attendance(
            event_id, department_id=department_id, year_level_id=year_level_id
        )
    except ServiceError as e:
        raise to_http_exception(e)

@router.get("/events/{event_id}/blocks/{block_id}/summary", response_model=BlockAttendanceSummary, response_model_exclude_unset=True, summary="Attendance summary of one block")
@limiter.limit("30/minute")
async def get_block_summary(request: Request, event_id: int, block_id: int, attendance_filter: AttendanceFilter = AttendanceFilter.ALL, service: AttendanceSummaryService = Depends(get_attendance_summary_service)):
    try:
        return await service.get_block_attendance_summary(event_id, block_id, attendance_filter)
    except ServiceError as e:
        raise to_http_exception(e)

@router.get("/events/{event_id}/blocks/{block_id}/students", response_model=BlockAttendanceRoster, summary="Per-date attendance of every student in a block")
@limiter.limit("30/minute")
async def get_block_roster(request: Request, event_id: int, block_id: int, service: AttendanceSummaryService = Depends(get_attendance_summary_service)):
    try:
        return await service.get_block_attendance_roster(event_id, block_id)
    except ServiceError as e:
        raise to_http_exception(e)

@router.get("/events/{event_id}/students/{student_id}/summary", response_model=StudentAttendanceSummary, response_model_exclude_unset=True, summary="Per-date attendance summary of one student")
@limiter.limit("30/minute")
async def get_student_summary(request: Request, event_id: int, student_id: str, service: AttendanceSummaryService = Depends(get_attendance_summary_service)):
    try:
        return await service.get_student_attendance_summary(event_id, student_id)
    except ServiceError as e:
        raise to_http_exception(e)

@router.get("/students/{id_number}/events", response_model=List[StudentEvent], summary="Ongoing or past events of a student's block")
@limiter.limit("30/minute")
async def get_student_events(request: Request, id_number: str, scope: str = Query("ongoing", pattern="^(ongoing|past)$"), service: AttendanceSummaryService = Depends(get_attendance_summary_service)):
    try:
        return await service.get_student_events(id_number, scope)
    except ServiceError as e:
        raise to_http_exception(e)
