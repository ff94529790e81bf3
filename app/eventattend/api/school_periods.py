import io
import logging

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status

from ..models.db_models import SchoolPeriod
from ..models.result_models import RolloverResult, RosterSyncResult
from ..roster.roster_reader import read_roster
from ..services.errors import ServiceError
from ..services.rollover_service import RolloverService
from .dependencies import get_rollover_service
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/school-periods", tags=["School Periods"])


def _roster_stream(upload: UploadFile) -> io.TextIOWrapper:
    if upload.filename and not upload.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Roster must be a .csv file.")
    # utf-8-sig drops the BOM spreadsheet exports put in front of the header.
    return io.TextIOWrapper(upload.file, encoding="utf-8-sig", newline="")


@router.get("/current", response_model=SchoolPeriod, summary="The active school period")
@limiter.limit("60/minute")
async def get_current_school_period(request: Request, service: RolloverService = Depends(get_rollover_service)):
    try:
        return await service.get_current_school_period()
    except ServiceError as e:
        raise to_http_exception(e)

@router.post("/roster-sync", response_model=RosterSyncResult, summary="Apply a roster file to the active period")
@limiter.limit("2/minute")
async def roster_sync(request: Request, file: UploadFile = File(...), service: RolloverService = Depends(get_rollover_service)):
    stream = _roster_stream(file)
    try:
        return await service.run_roster_sync(read_roster(stream))
    except ServiceError as e:
        raise to_http_exception(e)
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Unreadable roster upload '{file.filename}': {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Roster file could not be read.")
    finally:
        stream.detach()

@router.post("/rollover", response_model=RolloverResult, summary="Close the active period and open the next one")
@limiter.limit("2/minute")
async def period_rollover(request: Request, file: UploadFile = File(...), service: RolloverService = Depends(get_rollover_service)):
    stream = _roster_stream(file)
    try:
        return await service.run_period_rollover(read_roster(stream))
    except ServiceError as e:
        raise to_http_exception(e)
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Unreadable roster upload '{file.filename}': {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Roster file could not be read.")
    finally:
        stream.detach()
