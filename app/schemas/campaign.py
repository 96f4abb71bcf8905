from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, date

# --- 1. CAMPAIGN CREATION ---
class CreateCampaignRequest(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = Field("email", pattern="^(email|sms|whatsapp)$")
    subject: Optional[str] = None
    message: str = Field(..., min_length=1)
    clinic_id: Optional[int] = None
    daily_limit: Optional[int] = Field(None, ge=1)
    lead_ids: List[int] = []

class UpdateCampaignRequest(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    status: Optional[str] = None  # goes through the campaign transition table
    daily_limit: Optional[int] = Field(None, ge=1)

class AddCampaignLeadsRequest(BaseModel):
    lead_ids: List[int] = Field(..., min_length=1)

class GenerateDraftRequest(BaseModel):
    type: str = Field("email", pattern="^(email|sms|whatsapp)$")
    goal: str = Field(..., min_length=1)  # e.g. "Reactivate patients who missed cleanings"
    clinic_name: Optional[str] = None
    tone: Optional[str] = "friendly"

class CampaignDraft(BaseModel):
    subject: Optional[str] = None
    message: str

# --- 2. CAMPAIGN READ ---
class CampaignResponse(BaseModel):
    id: int
    name: str
    type: str
    status: str
    subject: Optional[str] = None
    message: str
    clinic_id: Optional[int] = None
    daily_limit: int
    sent_today: int = 0
    sent_today_date: Optional[date] = None
    total_leads: int = 0
    total_sent: int = 0
    total_failed: int = 0
    per_tick_limit: Optional[int] = None
    is_automated: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class CampaignStats(BaseModel):
    total: int
    queued: int
    sent: int
    failed: int
    skipped: int

class CampaignDetail(BaseModel):
    campaign: CampaignResponse
    stats: CampaignStats

# --- 3. KPIS ---
class CampaignKPIs(BaseModel):
    total_campaigns: int
    active_campaigns: int
    messages_sent: int
    messages_failed: int
