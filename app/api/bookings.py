from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.auth import get_current_user, require_admin
from app.core.config import settings
from app.core.database import get_db
from app.models.user import User
from app.schemas.booking import (
    BookingStatusUpdate,
    DemoBookingCreate,
    DemoBookingCreated,
    DemoBookingResponse,
    PatientBookingCreate,
    PatientBookingResponse,
)
from app.services.booking_service import BookingService, UnknownClinic
from app.services.clinic_service import ClinicService

router = APIRouter(prefix="/api", tags=["Bookings"])


# =========================================================
# 1. SALES DEMO BOOKINGS
# =========================================================

@router.post("/bookings", response_model=DemoBookingCreated, status_code=201)
def create_demo_booking(payload: DemoBookingCreate, db: Session = Depends(get_db)):
    """Public demo request form. Responds with the instant demo link."""
    booking, email_sent = BookingService(db).create_demo_booking(payload)
    return {"booking": booking, "demo_url": settings.DEMO_LINK, "email_sent": email_sent}


@router.get("/bookings", response_model=List[DemoBookingResponse])
def list_demo_bookings(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return BookingService(db).list_demo_bookings()


@router.patch("/bookings/{booking_id}/status", response_model=DemoBookingResponse)
def update_demo_booking_status(
    booking_id: int,
    payload: BookingStatusUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        booking = BookingService(db).update_demo_status(booking_id, payload.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


# =========================================================
# 2. PATIENT BOOKINGS
# =========================================================

@router.post("/patient-bookings", response_model=PatientBookingResponse, status_code=201)
def create_patient_booking(payload: PatientBookingCreate, db: Session = Depends(get_db)):
    try:
        return BookingService(db).create_patient_booking(payload)
    except UnknownClinic as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/patient-bookings", response_model=List[PatientBookingResponse])
def list_patient_bookings(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return BookingService(db).list_patient_bookings(ClinicService(db).visible_clinic_ids(user))


@router.get("/patient-bookings/clinic/{clinic_id}", response_model=List[PatientBookingResponse])
def list_clinic_patient_bookings(clinic_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not ClinicService(db).can_access(user, clinic_id):
        raise HTTPException(status_code=403, detail="No access to this clinic")
    return BookingService(db).list_patient_bookings([clinic_id])


@router.patch("/patient-bookings/{booking_id}/status", response_model=PatientBookingResponse)
def update_patient_booking_status(
    booking_id: int,
    payload: BookingStatusUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = BookingService(db)
    booking = service.get_patient_booking(booking_id)
    if not booking or not ClinicService(db).can_access(user, booking.clinic_id):
        raise HTTPException(status_code=404, detail="Booking not found or access denied")

    try:
        return service.update_patient_status(booking_id, payload.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
