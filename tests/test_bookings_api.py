from app.core.config import settings
from app.models.booking import DemoBooking, PatientBooking
from app.models.lead import Lead
from app.models.message import OutboundMessage
from app.schemas.booking import DemoBookingCreate
from app.services.booking_service import BookingService

DEMO_REQUEST = {
    "clinic_name": "Sunrise Dental",
    "owner_name": "Dr. Lee",
    "email": "Lee@Example.com",
    "phone": "555-0199",
    "state": "TX",
}


def test_demo_booking_returns_instant_demo_link(client, db):
    response = client.post("/api/bookings", json=DEMO_REQUEST)

    assert response.status_code == 201
    body = response.json()
    assert body["demo_url"] == settings.DEMO_LINK
    assert body["booking"]["status"] == "pending"
    # no ZeptoMail key in tests
    assert body["email_sent"] is False

    lead = db.query(Lead).one()
    assert lead.source == "demo_request"
    assert lead.status == "demo_booked"
    assert lead.email == "lee@example.com"
    assert body["booking"]["lead_id"] == lead.id

    message = db.query(OutboundMessage).one()
    assert message.source == "booking"
    assert message.status == "failed"
    assert message.error_message == "EMAIL_NOT_CONFIGURED"


def test_demo_booking_promotes_existing_sales_lead(db, email_sender):
    lead = Lead(name="Dr. Lee", email="lee@example.com", status="warm", source="genius_import")
    db.add(lead)
    db.commit()

    booking, email_sent = BookingService(db).create_demo_booking(DemoBookingCreate(**DEMO_REQUEST), email_sender)

    assert email_sent is True
    assert booking.lead_id == lead.id
    db.refresh(lead)
    assert lead.status == "demo_booked"
    assert lead.source == "genius_import"
    assert db.query(Lead).count() == 1

    sent = email_sender.calls[0]
    assert sent["to"] == "lee@example.com"
    assert settings.DEMO_LINK in sent["text"]


def test_demo_booking_never_moves_won_lead_backwards(db, email_sender):
    lead = Lead(name="Dr. Lee", email="lee@example.com", status="won")
    db.add(lead)
    db.commit()

    BookingService(db).create_demo_booking(DemoBookingCreate(**DEMO_REQUEST), email_sender)

    db.refresh(lead)
    assert lead.status == "won"


def test_demo_booking_validates_email(client):
    response = client.post("/api/bookings", json={**DEMO_REQUEST, "email": "nope"})
    assert response.status_code == 422


def test_demo_bookings_admin_only(client, clinic_headers, admin_headers):
    client.post("/api/bookings", json=DEMO_REQUEST)

    assert client.get("/api/bookings", headers=clinic_headers).status_code == 403
    listed = client.get("/api/bookings", headers=admin_headers).json()
    assert len(listed) == 1


def test_demo_booking_status_update(client, db, admin_headers):
    booking_id = client.post("/api/bookings", json=DEMO_REQUEST).json()["booking"]["id"]

    ok = client.patch(f"/api/bookings/{booking_id}/status", json={"status": "Confirmed"}, headers=admin_headers)
    assert ok.status_code == 200
    assert ok.json()["status"] == "confirmed"

    bad = client.patch(f"/api/bookings/{booking_id}/status", json={"status": "missed"}, headers=admin_headers)
    assert bad.status_code == 400

    missing = client.patch("/api/bookings/999/status", json={"status": "confirmed"}, headers=admin_headers)
    assert missing.status_code == 404


def patient_request(clinic_id):
    return {
        "clinic_id": clinic_id,
        "patient_name": "Ana Souza",
        "patient_email": "ana@example.com",
        "patient_phone": "555-0142",
        "appointment_type": "Cleaning",
        "preferred_date": "2025-04-02",
    }


def test_patient_booking_for_unknown_clinic(client):
    response = client.post("/api/patient-bookings", json=patient_request(404))
    assert response.status_code == 404


def test_patient_booking_flow(client, db, clinic, clinic_headers):
    created = client.post("/api/patient-bookings", json=patient_request(clinic.id))
    assert created.status_code == 201
    booking_id = created.json()["id"]
    assert created.json()["status"] == "pending"

    listed = client.get(f"/api/patient-bookings/clinic/{clinic.id}", headers=clinic_headers).json()
    assert [b["id"] for b in listed] == [booking_id]

    updated = client.patch(
        f"/api/patient-bookings/{booking_id}/status", json={"status": "missed"}, headers=clinic_headers
    )
    assert updated.json()["status"] == "missed"

    invalid = client.patch(
        f"/api/patient-bookings/{booking_id}/status", json={"status": "rescheduled"}, headers=clinic_headers
    )
    assert invalid.status_code == 400


def test_patient_bookings_are_scoped_to_member_clinics(client, db, clinic, other_clinic, clinic_headers):
    db.add(PatientBooking(
        clinic_id=other_clinic.id,
        patient_name="Someone Else",
        patient_email="else@example.com",
        patient_phone="555-0000",
        status="pending",
    ))
    db.commit()
    foreign = db.query(PatientBooking).one()

    assert client.get("/api/patient-bookings", headers=clinic_headers).json() == []
    assert client.get(f"/api/patient-bookings/clinic/{other_clinic.id}", headers=clinic_headers).status_code == 403
    response = client.patch(
        f"/api/patient-bookings/{foreign.id}/status", json={"status": "confirmed"}, headers=clinic_headers
    )
    assert response.status_code == 404
    assert db.query(DemoBooking).count() == 0
