from pydantic import BaseModel
from typing import Any, Optional, Literal

class MetricRun(BaseModel):
    run_id: str

class SourceEvent(BaseModel):
    table: str
    row_id: Optional[str] = None
    change: Literal['insert', 'update', 'delete'] = 'update'

class OpenDayResponse(BaseModel):
    as_of_date_local: str
    created: bool

class StatusResponse(BaseModel):
    run_id: str
    as_of_date_local: Optional[str] = None
    trigger: Optional[str] = None
    status: Literal['running', 'succeeded', 'failed', 'skipped']
    outcome: Optional[str] = None
    attempts: Optional[int] = None
    started_at_utc: str
    finished_at_utc: Optional[str] = None
    error_message: Optional[str] = None

class ReportRowOut(BaseModel):
    kind: str
    label: str
    level: int = 0
    values: list[Any] = []
    styling: dict[str, Any] = {}

class ReportResponse(BaseModel):
    days: list[str]
    rows: list[ReportRowOut]

class EventAck(BaseModel):
    run_id: Optional[str] = None
    ignored: bool = False
