from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    thread_id: Optional[int] = None
    type: str = Field("sales", pattern="^(sales|patient)$")
    clinic_id: Optional[int] = None  # required for patient chats
    visitor_email: Optional[EmailStr] = None
    visitor_name: Optional[str] = None

class ChatMessageResponse(BaseModel):
    id: int
    thread_id: int
    role: str
    content: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ChatResponse(BaseModel):
    thread_id: int
    reply: str
    lead_id: Optional[int] = None

class ChatThreadResponse(BaseModel):
    id: int
    type: str
    clinic_id: Optional[int] = None
    visitor_email: Optional[str] = None
    lead_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    message_count: int = 0
