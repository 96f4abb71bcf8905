from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class ClinicBase(BaseModel):
    name: str = Field(..., min_length=1)
    brand_color: Optional[str] = "#3B82F6"
    logo_url: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None

class ClinicCreate(ClinicBase):
    # Derived from the name when omitted
    slug: Optional[str] = None

class ClinicUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    brand_color: Optional[str] = None
    logo_url: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None

class ClinicResponse(ClinicBase):
    id: int
    slug: str
    owner_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Public landing page only exposes branding
class ClinicPublicResponse(BaseModel):
    id: int
    name: str
    slug: str
    brand_color: Optional[str] = None
    logo_url: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None

    class Config:
        from_attributes = True
