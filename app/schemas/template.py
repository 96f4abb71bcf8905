from pydantic import BaseModel
from typing import Dict, List, Optional

class MessageTemplateResponse(BaseModel):
    id: str
    name: str
    trigger_type: str
    delay_minutes: int
    channel: str
    body: str

class EmailTemplateResponse(BaseModel):
    day: int
    name: str
    subject: str
    body: str
    cta_label: str

class TemplateCatalogResponse(BaseModel):
    email: List[EmailTemplateResponse]
    messages: List[MessageTemplateResponse]

class TemplatePreviewRequest(BaseModel):
    # first_name, clinic_name, booking_url for messages; name, demo_link for emails
    data: Dict[str, Optional[str]] = {}

class TemplatePreviewResponse(BaseModel):
    id: str
    subject: Optional[str] = None
    text: str
    html: Optional[str] = None
