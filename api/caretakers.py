"""
Caretakers API Router
Endpoints for caretaker accounts and pairing
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.elder import CaretakerCreate, CaretakerLink, CaretakerResponse


router = APIRouter(prefix="/caretakers", tags=["caretakers"])


@router.post("/", response_model=CaretakerResponse, status_code=status.HTTP_201_CREATED)
async def create_caretaker(
    caretaker_data: CaretakerCreate,
    db: Session = Depends(get_db)
):
    """
    Create a caretaker, optionally linking it with an elder's pairing code
    """
    caretaker_service = services.get_caretaker_service()

    caretaker = await caretaker_service.create_caretaker(
        username=caretaker_data.username,
        email=caretaker_data.email,
        phone=caretaker_data.phone,
        db=db
    )

    if caretaker_data.pairing_code:
        try:
            caretaker = await caretaker_service.link_caretaker(
                caretaker.id, caretaker_data.pairing_code, db=db
            )
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e)
            )
    return caretaker


@router.get("/{caretaker_id}", response_model=CaretakerResponse)
async def get_caretaker(
    caretaker_id: str,
    db: Session = Depends(get_db)
):
    """
    Get a caretaker by ID
    """
    caretaker_service = services.get_caretaker_service()

    caretaker = await caretaker_service.get_caretaker(caretaker_id, db=db)
    if not caretaker:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Caretaker {caretaker_id} not found"
        )
    return caretaker


@router.post("/{caretaker_id}/link", response_model=CaretakerResponse)
async def link_caretaker(
    caretaker_id: str,
    link_data: CaretakerLink,
    db: Session = Depends(get_db)
):
    """
    Link a caretaker to an elder by pairing code
    """
    caretaker_service = services.get_caretaker_service()

    try:
        return await caretaker_service.link_caretaker(
            caretaker_id, link_data.pairing_code, db=db
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
