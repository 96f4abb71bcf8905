import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.api.auth import get_current_user
from app.core.database import get_db
from app.models.campaign import Campaign
from app.models.lead import Lead
from app.models.user import User
from app.schemas.campaign import (
    AddCampaignLeadsRequest,
    CampaignDetail,
    CampaignDraft,
    CampaignKPIs,
    CampaignResponse,
    CreateCampaignRequest,
    GenerateDraftRequest,
    UpdateCampaignRequest,
)
from app.services.campaign_service import CampaignService
from app.services.clinic_service import ClinicService
from app.services.llm_service import LLMNotConfigured

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/campaigns", tags=["Campaign Module"])


def _get_campaign_or_404(campaign_id: int, user: User, db: Session) -> Campaign:
    campaign = CampaignService(db).get_campaign(campaign_id)
    if not campaign or not ClinicService(db).can_access(user, campaign.clinic_id):
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


def _check_lead_access(lead_ids: List[int], user: User, db: Session) -> None:
    clinic_ids = ClinicService(db).visible_clinic_ids(user)
    if clinic_ids is None or not lead_ids:
        return
    foreign = db.query(Lead.id).filter(
        Lead.id.in_(lead_ids),
        (Lead.clinic_id.is_(None)) | (Lead.clinic_id.notin_(clinic_ids)),
    ).first()
    if foreign:
        raise HTTPException(status_code=403, detail=f"No access to lead {foreign.id}")


# =========================================================
# 1. LIST & DETAIL
# =========================================================

@router.get("", response_model=List[CampaignResponse])
def list_campaigns(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return CampaignService(db).list_campaigns(ClinicService(db).visible_clinic_ids(user))


@router.get("/kpis", response_model=CampaignKPIs)
def get_campaign_kpis(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return CampaignService(db).get_campaign_kpis(ClinicService(db).visible_clinic_ids(user))


@router.get("/{campaign_id}", response_model=CampaignDetail)
def get_campaign_detail(campaign_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Campaign with live per-lead stats. Used by detail page."""
    campaign = _get_campaign_or_404(campaign_id, user, db)
    return {"campaign": campaign, "stats": CampaignService(db).get_campaign_stats(campaign_id)}


# =========================================================
# 2. CAMPAIGN ACTIONS
# =========================================================

@router.post("", response_model=CampaignResponse, status_code=201)
def create_campaign(
    request: CreateCampaignRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    clinics = ClinicService(db)
    if request.clinic_id is None:
        if user.role != "admin":
            raise HTTPException(status_code=400, detail="clinic_id is required")
    elif not clinics.get_clinic(request.clinic_id):
        raise HTTPException(status_code=404, detail="Clinic not found")
    elif not clinics.can_access(user, request.clinic_id):
        raise HTTPException(status_code=403, detail="No access to this clinic")

    _check_lead_access(request.lead_ids, user, db)
    try:
        return CampaignService(db).create_campaign(request)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/{campaign_id}", response_model=CampaignResponse)
def update_campaign(
    campaign_id: int,
    request: UpdateCampaignRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_campaign_or_404(campaign_id, user, db)
    try:
        return CampaignService(db).update_campaign(campaign_id, request)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{campaign_id}/leads")
def add_campaign_leads(
    campaign_id: int,
    request: AddCampaignLeadsRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_campaign_or_404(campaign_id, user, db)
    _check_lead_access(request.lead_ids, user, db)
    try:
        added = CampaignService(db).add_leads(campaign_id, request.lead_ids)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    return {"campaign_id": campaign_id, "added": added}


@router.post("/{campaign_id}/start", response_model=CampaignResponse)
def start_campaign(campaign_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Marks the campaign active; the campaign worker picks it up on its next tick."""
    _get_campaign_or_404(campaign_id, user, db)
    try:
        campaign = CampaignService(db).set_status(campaign_id, "active")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"▶️ Campaign {campaign_id} started")
    return campaign


@router.post("/{campaign_id}/pause", response_model=CampaignResponse)
def pause_campaign(campaign_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _get_campaign_or_404(campaign_id, user, db)
    try:
        campaign = CampaignService(db).set_status(campaign_id, "paused")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"⏸️ Campaign {campaign_id} paused")
    return campaign


@router.post("/generate-draft", response_model=CampaignDraft)
def generate_draft(
    request: GenerateDraftRequest,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return CampaignService(db).generate_draft(request)
    except LLMNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"❌ Draft generation failed: {e}")
        raise HTTPException(status_code=502, detail="AI draft generation failed")


# =========================================================
# 3. EXPORT
# =========================================================

@router.get("/{campaign_id}/export")
def export_campaign(campaign_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _get_campaign_or_404(campaign_id, user, db)
    output = CampaignService(db).export_campaign_leads(campaign_id)
    return StreamingResponse(
        output,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=campaign_{campaign_id}_leads.csv"},
    )
