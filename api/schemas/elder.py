"""
Elder & Caretaker Schemas
Pydantic models for account and pairing requests and responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict


# ==================== REQUEST SCHEMAS ====================

class ElderCreate(BaseModel):
    """Schema for creating an elder"""
    username: str = Field(..., min_length=1, max_length=100)
    # Plain string so test and special-use domains are accepted
    email: Optional[str] = Field(None, max_length=255)


class CaretakerCreate(BaseModel):
    """Schema for creating a caretaker"""
    username: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    pairing_code: Optional[str] = Field(None, description="Link to an elder on creation")


class CaretakerLink(BaseModel):
    """Schema for linking a caretaker to an elder"""
    pairing_code: str = Field(..., min_length=4, max_length=20)


# ==================== RESPONSE SCHEMAS ====================

class ElderResponse(BaseModel):
    """Schema for elder response"""
    id: str
    username: str
    email: Optional[str] = None
    pairing_code: Optional[str] = None
    caretaker_ids: List[str] = []
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CaretakerResponse(BaseModel):
    """Schema for caretaker response"""
    id: str
    username: str
    email: Optional[str] = None
    phone: Optional[str] = None
    elder_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HelpRequestResponse(BaseModel):
    """Schema for the result of an elder's help request"""
    elder_id: str
    caretaker_ids: List[str] = []
    alerts_sent: int = 0
    alerts_failed: int = 0
    records_written: int = 0
    message: str
