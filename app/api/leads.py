from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from app.api.auth import get_current_user
from app.core.database import get_db
from app.models.lead import Lead
from app.models.user import User
from app.schemas.lead import (
    LeadCreate,
    LeadImportRequest,
    LeadImportResult,
    LeadKPIs,
    LeadListResponse,
    LeadResponse,
    LeadStatusUpdate,
    LeadUpdate,
)
from app.services.clinic_service import ClinicService
from app.services.lead_service import LeadService

router = APIRouter(prefix="/api/leads", tags=["Leads"])


def _get_lead_or_404(lead_id: int, user: User, db: Session) -> Lead:
    lead = LeadService(db).get_lead(lead_id)
    if not lead or not ClinicService(db).can_access(user, lead.clinic_id):
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead


def _check_clinic(clinic_id: Optional[int], user: User, db: Session) -> None:
    clinics = ClinicService(db)
    if clinic_id is None:
        if user.role != "admin":
            raise HTTPException(status_code=400, detail="clinic_id is required")
        return
    if not clinics.get_clinic(clinic_id):
        raise HTTPException(status_code=404, detail="Clinic not found")
    if not clinics.can_access(user, clinic_id):
        raise HTTPException(status_code=403, detail="No access to this clinic")


# =========================================================
# 1. LISTING
# =========================================================

@router.get("", response_model=LeadListResponse)
def list_leads(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    search: Optional[str] = None,
    status: Optional[str] = None,
    source: Optional[str] = None,
    clinic_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return LeadService(db).get_leads(
            page=page,
            limit=limit,
            search=search,
            status=status,
            source=source,
            clinic_id=clinic_id,
            clinic_ids=ClinicService(db).visible_clinic_ids(user),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/kpis", response_model=LeadKPIs)
def get_lead_kpis(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return LeadService(db).get_lead_kpis(ClinicService(db).visible_clinic_ids(user))


@router.get("/{lead_id}", response_model=LeadResponse)
def get_lead(lead_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _get_lead_or_404(lead_id, user, db)


# =========================================================
# 2. CREATE / UPDATE
# =========================================================

@router.post("", response_model=LeadResponse, status_code=201)
def create_lead(payload: LeadCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _check_clinic(payload.clinic_id, user, db)
    try:
        return LeadService(db).create_lead(payload, source="manual")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/{lead_id}", response_model=LeadResponse)
def update_lead(
    lead_id: int,
    payload: LeadUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_lead_or_404(lead_id, user, db)
    try:
        return LeadService(db).update_lead(lead_id, payload)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/{lead_id}/status", response_model=LeadResponse)
def update_lead_status(
    lead_id: int,
    payload: LeadStatusUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_lead_or_404(lead_id, user, db)
    try:
        return LeadService(db).update_status(lead_id, payload.status)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


# =========================================================
# 3. IMPORT
# =========================================================

@router.post("/import", response_model=LeadImportResult)
def import_leads(payload: LeadImportRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _check_clinic(payload.clinic_id, user, db)
    return LeadService(db).import_rows(payload.leads, source="csv_import", clinic_id=payload.clinic_id)


@router.post("/import/csv", response_model=LeadImportResult)
async def import_leads_csv(
    file: UploadFile = File(...),
    clinic_id: Optional[int] = Form(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_clinic(clinic_id, user, db)
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    try:
        return LeadService(db).import_csv(content, source="csv_import", clinic_id=clinic_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
