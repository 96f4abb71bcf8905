from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime

DEMO_BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled")
PATIENT_BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed", "missed")

# --- 1. SALES DEMO BOOKINGS ---
class DemoBookingCreate(BaseModel):
    clinic_name: str = Field(..., min_length=1)
    owner_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    state: Optional[str] = None
    preferred_time: Optional[str] = None
    notes: Optional[str] = None

class DemoBookingResponse(BaseModel):
    id: int
    clinic_name: str
    owner_name: str
    email: str
    phone: str
    state: Optional[str] = None
    preferred_time: Optional[str] = None
    notes: Optional[str] = None
    status: str
    lead_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class DemoBookingCreated(BaseModel):
    booking: DemoBookingResponse
    demo_url: str
    email_sent: bool

class BookingStatusUpdate(BaseModel):
    status: str

# --- 2. PATIENT BOOKINGS ---
class PatientBookingCreate(BaseModel):
    clinic_id: int
    patient_name: str = Field(..., min_length=1)
    patient_email: EmailStr
    patient_phone: str = Field(..., min_length=1)
    appointment_type: Optional[str] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None
    notes: Optional[str] = None

class PatientBookingResponse(BaseModel):
    id: int
    clinic_id: int
    patient_name: str
    patient_email: str
    patient_phone: str
    appointment_type: Optional[str] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None
    notes: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
