from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.api.auth import get_current_user, require_admin
from app.core.config import settings
from app.core.database import get_db
from app.models.user import User
from app.schemas.analytics import ClinicAnalytics
from app.schemas.clinic import ClinicCreate, ClinicPublicResponse, ClinicResponse, ClinicUpdate
from app.services.analytics_service import AnalyticsService
from app.services.clinic_service import ClinicInUse, ClinicService, DuplicateSlug, InvalidLogo

router = APIRouter(prefix="/api/clinics", tags=["Clinics"])


def _get_accessible_clinic(clinic_id: int, user: User, db: Session):
    service = ClinicService(db)
    clinic = service.get_clinic(clinic_id)
    if not clinic:
        raise HTTPException(status_code=404, detail="Clinic not found")
    if not service.can_access(user, clinic_id):
        raise HTTPException(status_code=403, detail="No access to this clinic")
    return clinic


@router.get("", response_model=List[ClinicResponse])
def list_clinics(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ClinicService(db).list_clinics(user)


@router.post("", response_model=ClinicResponse, status_code=201)
def create_clinic(payload: ClinicCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return ClinicService(db).create_clinic(payload, owner=user)
    except DuplicateSlug as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# Public: powers the /c/{slug} landing page
@router.get("/slug/{slug}", response_model=ClinicPublicResponse)
def get_clinic_by_slug(slug: str, db: Session = Depends(get_db)):
    clinic = ClinicService(db).get_by_slug(slug)
    if not clinic:
        raise HTTPException(status_code=404, detail="Clinic not found")
    return clinic


@router.get("/{clinic_id}", response_model=ClinicResponse)
def get_clinic(clinic_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _get_accessible_clinic(clinic_id, user, db)


@router.patch("/{clinic_id}", response_model=ClinicResponse)
def update_clinic(
    clinic_id: int,
    payload: ClinicUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_accessible_clinic(clinic_id, user, db)
    try:
        return ClinicService(db).update_clinic(clinic_id, payload)
    except DuplicateSlug as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{clinic_id}/logo", response_model=ClinicResponse)
async def upload_clinic_logo(
    clinic_id: int,
    logo: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_accessible_clinic(clinic_id, user, db)
    data = await logo.read(settings.MAX_LOGO_BYTES + 1)
    try:
        return ClinicService(db).save_logo(clinic_id, logo.filename, logo.content_type, data)
    except InvalidLogo as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{clinic_id}")
def delete_clinic(clinic_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        deleted = ClinicService(db).delete_clinic(clinic_id)
    except ClinicInUse as e:
        raise HTTPException(status_code=409, detail=str(e))

    if not deleted:
        raise HTTPException(status_code=404, detail="Clinic not found")
    return {"message": "Clinic deleted"}


@router.get("/{clinic_id}/analytics", response_model=ClinicAnalytics)
def get_clinic_analytics(clinic_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _get_accessible_clinic(clinic_id, user, db)
    return AnalyticsService(db).get_clinic_analytics(clinic_id)
