"""
Medicines API Router
Endpoints for the medicine catalog
"""

from typing import Optional
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_elder_id, get_now, services
from api.schemas.medicine import (
    MedicineCreate,
    MedicineUpdate,
    MedicineForceEnd,
    MedicineResponse,
    MedicineList,
)


router = APIRouter(prefix="/medicines", tags=["medicines"])


@router.post("/", response_model=MedicineResponse, status_code=status.HTTP_201_CREATED)
async def create_medicine(
    medicine_data: MedicineCreate,
    db: Session = Depends(get_db)
):
    """
    Add a medicine for an elder

    - **elder_id**: Elder ID
    - **name**: Medicine name
    - **times**: Times of day ("HH:MM"); duplicates are ignored
    - **start_date** / **end_date**: Inclusive active period
    """
    medicine_service = services.get_medicine_service()

    try:
        return await medicine_service.create_medicine(
            elder_id=medicine_data.elder_id,
            name=medicine_data.name,
            times=medicine_data.times,
            type=medicine_data.type,
            amount=medicine_data.amount,
            start_date=medicine_data.start_date,
            end_date=medicine_data.end_date,
            db=db
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get("/elder/{elder_id}", response_model=MedicineList)
async def get_elder_medicines(
    elder_id: str = Depends(get_current_elder_id),
    active_on: Optional[date] = Query(None, description="Only medicines active on this day"),
    db: Session = Depends(get_db)
):
    """
    Get all medicines of an elder
    """
    medicine_service = services.get_medicine_service()

    medicines = await medicine_service.list_medicines(elder_id, active_on=active_on, db=db)
    return MedicineList(
        medicines=[MedicineResponse.model_validate(m) for m in medicines],
        total=len(medicines)
    )


@router.get("/{medicine_id}", response_model=MedicineResponse)
async def get_medicine(
    medicine_id: str,
    db: Session = Depends(get_db)
):
    """
    Get a medicine by ID
    """
    medicine_service = services.get_medicine_service()

    medicine = await medicine_service.get_medicine(medicine_id, db=db)
    if not medicine:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Medicine {medicine_id} not found"
        )
    return medicine


@router.put("/{medicine_id}", response_model=MedicineResponse)
async def update_medicine(
    medicine_id: str,
    updates: MedicineUpdate,
    db: Session = Depends(get_db)
):
    """
    Edit a medicine

    Unresolved doses are regenerated from the new definition; taken and
    missed doses are kept.
    """
    medicine_service = services.get_medicine_service()

    try:
        medicine = await medicine_service.update_medicine(
            medicine_id,
            updates.model_dump(exclude_unset=True),
            db=db
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    if not medicine:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Medicine {medicine_id} not found"
        )
    return medicine


@router.post("/{medicine_id}/force-end", response_model=MedicineResponse)
async def force_end_medicine(
    medicine_id: str,
    force_end_data: MedicineForceEnd,
    now=Depends(get_now),
    db: Session = Depends(get_db)
):
    """
    Force end a medicine from today on; a reason is required
    """
    medicine_service = services.get_medicine_service()

    try:
        medicine = await medicine_service.force_end_medicine(
            medicine_id,
            reason=force_end_data.reason,
            actor_id=force_end_data.actor_id,
            now=now,
            db=db
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )

    if not medicine:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Medicine {medicine_id} not found"
        )
    return medicine


@router.delete("/{medicine_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medicine(
    medicine_id: str,
    now=Depends(get_now),
    db: Session = Depends(get_db)
):
    """
    Delete a medicine that has not reached its first dose
    """
    medicine_service = services.get_medicine_service()

    try:
        deleted = await medicine_service.delete_medicine(medicine_id, now=now, db=db)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Medicine {medicine_id} not found"
        )
