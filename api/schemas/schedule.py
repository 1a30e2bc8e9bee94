"""
Schedule Schemas
Pydantic models for schedule views, intake confirmation and countdown
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict


# ==================== REQUEST SCHEMAS ====================

class IntakeConfirm(BaseModel):
    """Schema for confirming intake of a dose group"""
    base_timestamp: datetime = Field(..., description="Scheduled instant of the dose group, with offset")


# ==================== RESPONSE SCHEMAS ====================

class ScheduleItemResponse(BaseModel):
    """One scheduled dose"""
    id: str
    elder_id: str
    date_key: str
    medicine_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    amount: Optional[str] = None
    time: Optional[str] = None
    base_timestamp: datetime
    status: str
    effective_status: Optional[str] = None
    taken_at: Optional[datetime] = None
    missed_logged_at: Optional[datetime] = None
    missed_notified: bool = False
    missed_notified_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CountdownResponse(BaseModel):
    """Countdown to the next dose group"""
    mode: str
    target: Optional[datetime] = None
    total_window_seconds: int = 0
    remaining_seconds: int = 0
    progress: float = 0.0
    base_timestamp: Optional[datetime] = None
    item_ids: List[str] = []


class TodaySchedule(BaseModel):
    """Today's schedule view"""
    elder_id: str
    date_key: str
    items: List[ScheduleItemResponse]
    upcoming: List[ScheduleItemResponse]
    countdown: Dict[str, Any]


class IntakeConfirmResponse(BaseModel):
    """Result of an intake confirmation"""
    elder_id: str
    base_timestamp: datetime
    taken_item_ids: List[str]


class SyncResponse(BaseModel):
    """Result of a requested resync"""
    elder_id: str
    accepted: bool
    message: str


class DoseHistory(BaseModel):
    """Dose intake history"""
    elder_id: str
    items: List[ScheduleItemResponse]
    total: int
    taken: int
    missed: int


class MissedDoseLogResponse(BaseModel):
    """One missed-dose log entry"""
    id: str
    elder_id: str
    medicine_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    amount: Optional[str] = None
    missed_dose_time: Optional[datetime] = None
    logged_at: Optional[datetime] = None
    item_path: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
