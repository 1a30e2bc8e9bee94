"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from typing import Generator
from datetime import datetime, timezone
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency
    Yields a SQLAlchemy session and ensures cleanup
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_elder_id(
    elder_id: str,
    db: Session = Depends(get_db)
) -> str:
    """
    Validate elder exists and return elder ID
    """
    from models import Elder

    elder = db.get(Elder, elder_id)
    if not elder:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Elder {elder_id} not found"
        )

    return elder_id


async def get_current_caretaker_id(
    caretaker_id: str,
    db: Session = Depends(get_db)
) -> str:
    """
    Validate caretaker exists and return caretaker ID
    """
    from models import Caretaker

    caretaker = db.get(Caretaker, caretaker_id)
    if not caretaker:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Caretaker {caretaker_id} not found"
        )

    return caretaker_id


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_caretaker_service():
        from services.caretaker_service import caretaker_service
        return caretaker_service

    @staticmethod
    def get_medicine_service():
        from services.medicine_service import medicine_service
        return medicine_service

    @staticmethod
    def get_schedule_service():
        from services.schedule_service import schedule_service
        return schedule_service

    @staticmethod
    def get_coordinator():
        from actions.schedule_coordinator import schedule_coordinator
        return schedule_coordinator


# Service dependency instances
services = ServiceDependency()


def get_coordinator():
    """Schedule coordinator dependency; overridable in tests"""
    return services.get_coordinator()


def get_now() -> datetime:
    """Current instant dependency; overridable in tests"""
    return datetime.now(timezone.utc)
