"""
Medicine Schemas
Pydantic models for medicine catalog requests and responses
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict


# ==================== BASE SCHEMAS ====================

class MedicineBase(BaseModel):
    """Base medicine schema"""
    name: str = Field(..., min_length=1, max_length=255)
    type: Optional[str] = Field(None, max_length=100)
    amount: Optional[str] = Field(None, max_length=100)


# ==================== REQUEST SCHEMAS ====================

class MedicineCreate(MedicineBase):
    """Schema for adding a medicine"""
    elder_id: str
    times: List[str] = Field(..., min_length=1, description="Times of day in HH:MM format")
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class MedicineUpdate(BaseModel):
    """Schema for editing a medicine"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = Field(None, max_length=100)
    amount: Optional[str] = Field(None, max_length=100)
    times: Optional[List[str]] = Field(None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class MedicineForceEnd(BaseModel):
    """Schema for force ending a medicine"""
    reason: str = Field(..., min_length=1, max_length=500)
    actor_id: Optional[str] = Field(None, description="Caretaker performing the action")


# ==================== RESPONSE SCHEMAS ====================

class MedicineResponse(MedicineBase):
    """Schema for medicine response"""
    id: str
    elder_id: str
    times: List[str] = []
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    force_ended: bool = False
    force_ended_at: Optional[datetime] = None
    force_ended_reason: Optional[str] = None
    force_ended_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MedicineList(BaseModel):
    """List of medicines"""
    medicines: List[MedicineResponse]
    total: int
