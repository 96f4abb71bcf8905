from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

# --- 1. LEAD READ ---
class LeadResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    clinic_name: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    status: str
    source: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    clinic_id: Optional[int] = None

    sequence_day: int = 0
    marketing_opt_in: bool = True
    emails_sent: int = 0
    last_sent_at: Optional[datetime] = None
    next_send_at: Optional[datetime] = None
    contacted_at: Optional[datetime] = None
    replied_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class LeadListResponse(BaseModel):
    data: List[LeadResponse]
    total: int
    page: int
    limit: int

# --- 2. LEAD WRITE ---
class LeadCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    clinic_name: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None  # validated against LeadStatus
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    clinic_id: Optional[int] = None
    marketing_opt_in: bool = True

class LeadUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    clinic_name: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    marketing_opt_in: Optional[bool] = None

class LeadStatusUpdate(BaseModel):
    status: str

# --- 3. IMPORT ---
class LeadImportRequest(BaseModel):
    # Raw rows; header names are matched case-insensitively
    leads: List[Dict[str, Any]] = Field(..., min_length=1)
    clinic_id: Optional[int] = None

class ImportRowError(BaseModel):
    row: int
    error: str

class LeadImportResult(BaseModel):
    total: int
    imported: int
    failed: int
    errors: List[ImportRowError]
    lead_ids: List[int] = []

# --- 4. KPIS ---
class LeadKPIs(BaseModel):
    total_leads: int
    new_leads: int
    contacted_leads: int
    warm_leads: int
    replied_leads: int
    demo_booked_leads: int
    won_leads: int
    lost_leads: int
