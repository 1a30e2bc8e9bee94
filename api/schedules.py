"""
Schedules API Router
Endpoints for the daily dose schedule
"""

from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_elder_id, get_coordinator, get_now, services
from api.schemas.schedule import (
    IntakeConfirm,
    IntakeConfirmResponse,
    ScheduleItemResponse,
    CountdownResponse,
    TodaySchedule,
    SyncResponse,
    DoseHistory,
    MissedDoseLogResponse,
)
from actions.countdown import progress, remaining_seconds
from actions.schedule_coordinator import TriggerSource
from models import DoseStatus


router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("/elder/{elder_id}/today", response_model=TodaySchedule)
async def get_today_schedule(
    elder_id: str = Depends(get_current_elder_id),
    now=Depends(get_now),
    db: Session = Depends(get_db)
):
    """
    Get today's schedule with effective statuses and the countdown
    """
    schedule_service = services.get_schedule_service()
    return await schedule_service.get_today_view(elder_id, now=now, db=db)


@router.post("/elder/{elder_id}/sync", response_model=SyncResponse, status_code=status.HTTP_202_ACCEPTED)
async def request_sync(
    elder_id: str = Depends(get_current_elder_id),
    coordinator=Depends(get_coordinator)
):
    """
    Ask the coordinator for a schedule pass.
    Requests made while a pass is already queued are coalesced.
    """
    accepted = coordinator.request(elder_id, TriggerSource.USER_ACTION)
    return SyncResponse(
        elder_id=elder_id,
        accepted=accepted,
        message="Sync queued" if accepted else "Sync already pending"
    )


@router.post("/elder/{elder_id}/confirm", response_model=IntakeConfirmResponse)
async def confirm_intake(
    confirm_data: IntakeConfirm,
    elder_id: str = Depends(get_current_elder_id),
    now=Depends(get_now),
    coordinator=Depends(get_coordinator),
    db: Session = Depends(get_db)
):
    """
    Confirm the elder took the doses scheduled at base_timestamp.
    Only accepted during the 30 minute intake window.
    """
    schedule_service = services.get_schedule_service()

    try:
        taken = await schedule_service.confirm_intake(
            elder_id,
            confirm_data.base_timestamp,
            now=now,
            db=db
        )
    except LookupError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    coordinator.request(elder_id, TriggerSource.USER_ACTION)
    return IntakeConfirmResponse(
        elder_id=elder_id,
        base_timestamp=confirm_data.base_timestamp,
        taken_item_ids=taken
    )


@router.get("/elder/{elder_id}/countdown", response_model=CountdownResponse)
async def get_countdown(
    elder_id: str = Depends(get_current_elder_id),
    now=Depends(get_now),
    db: Session = Depends(get_db)
):
    """
    Countdown to the next dose group
    """
    schedule_service = services.get_schedule_service()

    projection = await schedule_service.get_countdown(elder_id, now=now, db=db)
    return CountdownResponse(
        mode=projection.mode.value,
        target=projection.target,
        total_window_seconds=projection.total_window_seconds,
        remaining_seconds=remaining_seconds(projection, now),
        progress=progress(projection, now),
        base_timestamp=projection.base_timestamp,
        item_ids=projection.item_ids
    )


@router.get("/elder/{elder_id}/history", response_model=DoseHistory)
async def get_dose_history(
    elder_id: str = Depends(get_current_elder_id),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    name: Optional[str] = Query(None, description="Medicine name contains"),
    type: Optional[str] = Query(None, description="Medicine type"),
    dose_status: Optional[DoseStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    """
    Dose intake history, newest first
    """
    schedule_service = services.get_schedule_service()

    items = await schedule_service.get_dose_history(
        elder_id,
        start_date=start_date,
        end_date=end_date,
        name=name,
        type=type,
        status=dose_status.value if dose_status else None,
        db=db
    )
    return DoseHistory(
        elder_id=elder_id,
        items=[ScheduleItemResponse.model_validate(i) for i in items],
        total=len(items),
        taken=sum(1 for i in items if i.status == DoseStatus.TAKEN.value),
        missed=sum(1 for i in items if i.status == DoseStatus.MISSED.value)
    )


@router.get("/elder/{elder_id}/missed-log", response_model=List[MissedDoseLogResponse])
async def get_missed_dose_log(
    elder_id: str = Depends(get_current_elder_id),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    """
    Missed-dose log entries, most recent first
    """
    schedule_service = services.get_schedule_service()
    return await schedule_service.get_missed_dose_logs(elder_id, limit=limit, db=db)
