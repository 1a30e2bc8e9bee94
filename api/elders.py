"""
Elders API Router
Endpoints for elder accounts
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, get_coordinator, get_now, services
from api.schemas.elder import ElderCreate, ElderResponse, HelpRequestResponse


router = APIRouter(prefix="/elders", tags=["elders"])


@router.post("/", response_model=ElderResponse, status_code=status.HTTP_201_CREATED)
async def create_elder(
    elder_data: ElderCreate,
    db: Session = Depends(get_db),
    coordinator=Depends(get_coordinator)
):
    """
    Create an elder

    - **username**: Display name
    - **email**: Contact email

    The response carries the pairing code caretakers use to link.
    """
    caretaker_service = services.get_caretaker_service()

    elder = await caretaker_service.create_elder(
        username=elder_data.username,
        email=elder_data.email,
        db=db
    )

    if coordinator.is_running:
        coordinator.watch(elder.id)
    return elder


@router.get("/{elder_id}", response_model=ElderResponse)
async def get_elder(
    elder_id: str,
    db: Session = Depends(get_db)
):
    """
    Get an elder by ID
    """
    caretaker_service = services.get_caretaker_service()

    elder = await caretaker_service.get_elder(elder_id, db=db)
    if not elder:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Elder {elder_id} not found"
        )
    return elder


@router.post("/{elder_id}/help", response_model=HelpRequestResponse)
async def request_help(
    elder_id: str,
    now=Depends(get_now),
    db: Session = Depends(get_db)
):
    """
    Elder pressed the help button; alert every linked caretaker
    """
    caretaker_service = services.get_caretaker_service()

    try:
        result = await caretaker_service.request_help(elder_id, now=now, db=db)
    except LookupError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    if not result["caretaker_ids"]:
        message = "No caretaker is linked to this elder"
    elif result["alerts_sent"]:
        message = "Caretakers have been alerted"
    else:
        message = "Help request recorded; alert delivery failed"
    return HelpRequestResponse(**result, message=message)
