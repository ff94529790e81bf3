from fastapi import APIRouter, Depends, Query, Request, status
from typing import List, Optional

from ..models.result_models import EventCreateResult, EventEditResult
from ..models.summary_models import EventDetail, UpcomingEvent
from ..services.errors import ServiceError
from ..services.event_service import EventFields, EventService
from .dependencies import get_event_service
from .schemas.event import ApproveEventRequest, EventEditRequest, EventRequest, MessageResponse
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

router = APIRouter(prefix="/events", tags=["Events"])


def _fields(event_request: EventRequest) -> EventFields:
    return EventFields(**event_request.model_dump(exclude={"event_id"}))


@router.post("", response_model=EventCreateResult, status_code=status.HTTP_201_CREATED, summary="Create an event")
@limiter.limit("20/minute")
async def create_event(request: Request, event_request: EventRequest, service: EventService = Depends(get_event_service)):
    try:
        return await service.create_event(_fields(event_request))
    except ServiceError as e:
        raise to_http_exception(e)

@router.get("/upcoming", response_model=List[UpcomingEvent], summary="Approved events starting within three days or running today")
@limiter.limit("30/minute")
async def get_upcoming_events(request: Request, block_id: Optional[int] = Query(None, ge=1), service: EventService = Depends(get_event_service)):
    try:
        return await service.get_upcoming_events(block_id=block_id)
    except ServiceError as e:
        raise to_http_exception(e)

@router.get("/{event_id}", response_model=EventDetail, summary="One event with its dates and blocks")
@limiter.limit("30/minute")
async def get_event(request: Request, event_id: int, service: EventService = Depends(get_event_service)):
    try:
        return await service.get_event(event_id)
    except ServiceError as e:
        raise to_http_exception(e)

@router.put("/{event_id}",response_model=EventEditResult, summary="Replace an event's details, dates and blocks")
@limiter.limit("20/minute")
async def update_event(request: Request, event_id: int, event_request: EventRequest, service: EventService = Depends(get_event_service)):
    try:
        return await service.edit_event(event_id, _fields(event_request))
    except ServiceError as e:
        raise to_http_exception(e)

@router.post("/edit", response_model=EventEditResult, summary="Same as PUT /events/{event_id}, with the id in the body")
@limiter.limit("20/minute")
async def edit_event(request: Request, edit_request: EventEditRequest, service: EventService = Depends(get_event_service)):
    try:
        return await service.edit_event(edit_request.event_id, _fields(edit_request))
    except ServiceError as e:
        raise to_http_exception(e)

@router.post("/{event_id}/approve", response_model=MessageResponse, summary="Approve a pending event")
@limiter.limit("20/minute")
async def approve_event(request: Request, event_id: int, approve_request: ApproveEventRequest, service: EventService = Depends(get_event_service)):
    try:
        await service.approve_event(event_id, approve_request.admin_id_number)
        return MessageResponse(message="Event approved.")
    except ServiceError as e:
        raise to_http_exception(e)

@router.delete("/{event_id}", response_model=MessageResponse, summary="Soft-delete a pending or approved event")
@limiter.limit("20/minute")
async def delete_event(request: Request, event_id: int, service: EventService = Depends(get_event_service)):
    try:
        await service.delete_event(event_id)
        return MessageResponse(message="Event deleted.")
    except ServiceError as e:
        raise to_http_exception(e)
