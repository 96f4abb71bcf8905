from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.demo_access import DemoLinkRequest, DemoLinkResponse, DemoTokenVerification
from app.services.demo_access_service import DemoAccessService

router = APIRouter(prefix="/api", tags=["Demo Access"])


@router.post("/send-demo-link", response_model=DemoLinkResponse)
def send_demo_link(payload: DemoLinkRequest, db: Session = Depends(get_db)):
    _, email_sent = DemoAccessService(db).send_demo_link(str(payload.email), payload.clinic_name)
    if not email_sent:
        raise HTTPException(status_code=500, detail="Failed to send email. Please try again.")
    return {"success": True, "message": "Demo access link has been sent to your email"}


@router.get("/verify-demo-token", response_model=DemoTokenVerification)
def verify_demo_token(token: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return DemoAccessService(db).verify_token(token)
