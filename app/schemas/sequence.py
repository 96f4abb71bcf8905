from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

# --- 1. STEPS ---
class SequenceStepBase(BaseModel):
    channel: str = Field("email", pattern="^(email|sms|whatsapp)$")
    delay_days: int = Field(0, ge=0)
    delay_hours: int = Field(0, ge=0)
    subject: Optional[str] = None
    message: Optional[str] = None
    template_id: Optional[str] = None

class SequenceStepCreate(SequenceStepBase):
    step_order: Optional[int] = None  # appended at the end when omitted

class SequenceStepUpdate(BaseModel):
    channel: Optional[str] = Field(None, pattern="^(email|sms|whatsapp)$")
    delay_days: Optional[int] = Field(None, ge=0)
    delay_hours: Optional[int] = Field(None, ge=0)
    subject: Optional[str] = None
    message: Optional[str] = None
    template_id: Optional[str] = None
    step_order: Optional[int] = None

class SequenceStepResponse(SequenceStepBase):
    id: int
    sequence_id: int
    step_order: int

    class Config:
        from_attributes = True

# --- 2. SEQUENCES ---
class SequenceCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: str = Field("draft", pattern="^(draft|active|paused)$")
    clinic_id: Optional[int] = None
    steps: List[SequenceStepCreate] = []

class SequenceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = Field(None, pattern="^(draft|active|paused)$")

class SequenceResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: str
    clinic_id: Optional[int] = None
    owner_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    steps: List[SequenceStepResponse] = []

    class Config:
        from_attributes = True

# --- 3. ENROLLMENTS ---
class EnrollRequest(BaseModel):
    lead_id: int

class EnrollmentStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(active|paused|stopped|cancelled)$")

class EnrollmentResponse(BaseModel):
    id: int
    sequence_id: int
    lead_id: int
    status: str
    current_step_order: int
    next_send_at: Optional[datetime] = None
    enrolled_at: Optional[datetime] = None
    last_sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
