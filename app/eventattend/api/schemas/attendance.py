from pydantic import BaseModel, Field
from typing import Any, Dict, List


class AttendanceSyncRequest(BaseModel):
    """
    Raw scan reports. Records are validated one by one by the sync service,
    so a malformed record is reported back instead of failing the request.
    """
    attendance_data: List[Dict[str, Any]] = Field(..., description="Reports with event_date_id, student_id_number and any of am_in, am_out, pm_in, pm_out.")
