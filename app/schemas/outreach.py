from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class OutreachStatusResponse(BaseModel):
    enabled: bool
    automated_campaigns: int
    active_campaigns: int
    leads_enrolled: int
    emails_sent: int
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[str] = None


class OutreachRunResponse(BaseModel):
    success: bool
    campaigns_created: int = 0
    leads_enrolled: int = 0
    message: str
