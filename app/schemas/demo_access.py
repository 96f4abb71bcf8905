from pydantic import BaseModel, EmailStr
from typing import Optional

class DemoLinkRequest(BaseModel):
    email: EmailStr
    clinic_name: Optional[str] = None

class DemoLinkResponse(BaseModel):
    success: bool
    message: str

class DemoTokenVerification(BaseModel):
    valid: bool
    message: Optional[str] = None
    email: Optional[str] = None
    clinic_name: Optional[str] = None
