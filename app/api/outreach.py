from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.auth import require_admin
from app.core.database import get_db
from app.models.user import User
from app.schemas.outreach import OutreachRunResponse, OutreachStatusResponse
from app.services.outreach_service import OutreachService
from app.workers.campaign.outreach_worker import run_outreach_cycle

router = APIRouter(prefix="/api/outreach", tags=["Automated Outreach"])


@router.get("/status", response_model=OutreachStatusResponse)
def get_status(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return OutreachService(db).get_status()


@router.post("/run-now", response_model=OutreachRunResponse)
def run_now(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    result = run_outreach_cycle(db)
    if result is None:
        raise HTTPException(status_code=409, detail="Another outreach run is already in progress")
    if result["error"]:
        raise HTTPException(status_code=500, detail=f"Outreach run failed: {result['error']}")
    return {
        "success": True,
        "campaigns_created": result["campaigns_created"],
        "leads_enrolled": result["leads_enrolled"],
        "message": f"{result['campaigns_created']} campaigns created, {result['leads_enrolled']} leads enrolled",
    }
