"""
Services Module
Business logic layer for the CareWatch application
"""

from services.caretaker_service import CaretakerService, caretaker_service
from services.medicine_service import MedicineService, medicine_service
from services.schedule_service import ScheduleService, schedule_service


__all__ = [
    # Service classes
    "CaretakerService",
    "MedicineService",
    "ScheduleService",
    # Singleton instances
    "caretaker_service",
    "medicine_service",
    "schedule_service",
]
