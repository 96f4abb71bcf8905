from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime

from app.schemas.lead import LeadResponse

# --- 1. LEAD IMPORT (external scrapers / Zapier) ---
class GeniusLeadImport(BaseModel):
    email: EmailStr
    dentist_name: Optional[str] = None
    clinic_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None

class GeniusBulkImport(BaseModel):
    leads: List[GeniusLeadImport] = Field(..., min_length=1, max_length=500)

class GeniusImportResponse(BaseModel):
    success: bool
    lead_id: Optional[int] = None
    existing: bool = False
    message: str

class GeniusBulkImportResponse(BaseModel):
    success: bool = True
    total: int
    imported: int
    duplicates: int
    failed: int
    errors: List[str]

# --- 2. CONTROL ---
class GeniusStartRequest(BaseModel):
    interval_minutes: Optional[int] = Field(None, ge=1, le=1440)

class GeniusPauseRequest(BaseModel):
    reason: Optional[str] = None

class GeniusActionResponse(BaseModel):
    success: bool
    message: str

class CycleResponse(BaseModel):
    success: bool
    emails_sent: int
    errors: int
    message: str

class GeniusStatusResponse(BaseModel):
    is_running: bool
    is_paused: bool
    pause_reason: str
    threshold_pause_fired: bool
    cycle_minutes: Optional[int] = None
    last_cycle_at: Optional[datetime] = None
    last_cycle_message: Optional[str] = None
    emails_sent_today: int
    daily_limit: int
    remaining_today: int

# --- 3. LISTINGS ---
class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

class EmailSendResponse(BaseModel):
    id: int
    lead_id: Optional[int] = None
    sequence_day: Optional[int] = None
    to_address: Optional[str] = None
    subject: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    cost_cents: Optional[float] = 0.0
    sent_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class EmailSendListResponse(BaseModel):
    sends: List[EmailSendResponse]
    pagination: Pagination

class GeniusConfigResponse(BaseModel):
    daily_email_limit: int
    monthly_budget_cents: int
    email_cost_cents: float
    pause_threshold_percent: int
    batch_size: int
    sequence_days: int
    day_delay_hours: int
    send_stagger_seconds: float
    cycle_minutes: int
    demo_link: str


class GeniusLeadListResponse(BaseModel):
    leads: List[LeadResponse]
    pagination: Pagination
