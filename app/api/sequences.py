from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.auth import get_current_user
from app.core.database import get_db
from app.models.lead import Lead
from app.models.sequence import Sequence, SequenceStep
from app.models.user import User
from app.schemas.sequence import (
    EnrollmentResponse,
    EnrollmentStatusUpdate,
    EnrollRequest,
    SequenceCreate,
    SequenceResponse,
    SequenceStepCreate,
    SequenceStepResponse,
    SequenceStepUpdate,
    SequenceUpdate,
)
from app.services.clinic_service import ClinicService
from app.services.sequence_service import DuplicateEnrollment, SequenceService

router = APIRouter(prefix="/api", tags=["Sequences"])


def _can_manage(sequence: Sequence, user: User, db: Session) -> bool:
    if user.role == "admin" or sequence.owner_id == user.id:
        return True
    return sequence.clinic_id is not None and ClinicService(db).can_access(user, sequence.clinic_id)


def _get_sequence_or_404(sequence_id: int, user: User, db: Session) -> Sequence:
    sequence = SequenceService(db).get_sequence(sequence_id)
    if not sequence or not _can_manage(sequence, user, db):
        raise HTTPException(status_code=404, detail="Sequence not found")
    return sequence


def _get_step_or_404(step_id: int, user: User, db: Session) -> SequenceStep:
    step = db.query(SequenceStep).filter(SequenceStep.id == step_id).first()
    if not step or not _can_manage(step.sequence, user, db):
        raise HTTPException(status_code=404, detail="Step not found")
    return step


# =========================================================
# 1. SEQUENCES
# =========================================================

@router.get("/sequences", response_model=List[SequenceResponse])
def list_sequences(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    clinic_ids = ClinicService(db).visible_clinic_ids(user)
    owner_id = None if clinic_ids is None else user.id
    return SequenceService(db).list_sequences(clinic_ids=clinic_ids, owner_id=owner_id)


@router.post("/sequences", response_model=SequenceResponse, status_code=201)
def create_sequence(payload: SequenceCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if payload.clinic_id is not None:
        clinics = ClinicService(db)
        if not clinics.get_clinic(payload.clinic_id):
            raise HTTPException(status_code=404, detail="Clinic not found")
        if not clinics.can_access(user, payload.clinic_id):
            raise HTTPException(status_code=403, detail="No access to this clinic")

    try:
        return SequenceService(db).create_sequence(payload, owner=user)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/sequences/{sequence_id}", response_model=SequenceResponse)
def get_sequence(sequence_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _get_sequence_or_404(sequence_id, user, db)


@router.patch("/sequences/{sequence_id}", response_model=SequenceResponse)
def update_sequence(
    sequence_id: int,
    payload: SequenceUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_sequence_or_404(sequence_id, user, db)
    return SequenceService(db).update_sequence(sequence_id, payload)


@router.delete("/sequences/{sequence_id}")
def delete_sequence(sequence_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _get_sequence_or_404(sequence_id, user, db)
    SequenceService(db).delete_sequence(sequence_id)
    return {"message": "Sequence deleted"}


# =========================================================
# 2. STEPS
# =========================================================

@router.post("/sequences/{sequence_id}/steps", response_model=SequenceStepResponse, status_code=201)
def add_step(
    sequence_id: int,
    payload: SequenceStepCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_sequence_or_404(sequence_id, user, db)
    try:
        return SequenceService(db).add_step(sequence_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/sequence-steps/{step_id}", response_model=SequenceStepResponse)
def update_step(
    step_id: int,
    payload: SequenceStepUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_step_or_404(step_id, user, db)
    return SequenceService(db).update_step(step_id, payload)


@router.delete("/sequence-steps/{step_id}")
def delete_step(step_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _get_step_or_404(step_id, user, db)
    SequenceService(db).delete_step(step_id)
    return {"message": "Step deleted"}


# =========================================================
# 3. ENROLLMENTS
# =========================================================

@router.get("/sequences/{sequence_id}/enrollments", response_model=List[EnrollmentResponse])
def list_enrollments(sequence_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _get_sequence_or_404(sequence_id, user, db)
    return SequenceService(db).list_enrollments(sequence_id)


@router.post("/sequences/{sequence_id}/enroll", response_model=EnrollmentResponse, status_code=201)
def enroll_lead(
    sequence_id: int,
    payload: EnrollRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_sequence_or_404(sequence_id, user, db)
    lead = db.query(Lead).filter(Lead.id == payload.lead_id).first()
    if not lead or not ClinicService(db).can_access(user, lead.clinic_id):
        raise HTTPException(status_code=404, detail="Lead not found")

    try:
        enrollment = SequenceService(db).enroll(sequence_id, payload.lead_id)
    except DuplicateEnrollment as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not enrollment:
        raise HTTPException(status_code=404, detail="Lead not found")
    return enrollment


@router.patch("/enrollments/{enrollment_id}/status", response_model=EnrollmentResponse)
def update_enrollment_status(
    enrollment_id: int,
    payload: EnrollmentStatusUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = SequenceService(db)
    enrollment = service.get_enrollment(enrollment_id)
    if not enrollment or not _can_manage(enrollment.sequence, user, db):
        raise HTTPException(status_code=404, detail="Enrollment not found")

    try:
        return service.set_enrollment_status(enrollment_id, payload.status)
    except DuplicateEnrollment as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
