from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, TIMESTAMP, ForeignKey
from sqlalchemy.orm import relationship
from app.core.database import Base


class DemoBooking(Base):
    """Sales demo request submitted by a clinic owner."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    clinic_name = Column(String, nullable=False)
    owner_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    state = Column(String)
    preferred_time = Column(String)
    notes = Column(Text)

    status = Column(String, default="pending", nullable=False)  # pending, confirmed, completed, cancelled
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)


class PatientBooking(Base):
    __tablename__ = "patient_bookings"

    id = Column(Integer, primary_key=True, index=True)

    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)

    patient_name = Column(String, nullable=False)
    patient_email = Column(String, nullable=False)
    patient_phone = Column(String, nullable=False)

    appointment_type = Column(String)
    preferred_date = Column(String)
    preferred_time = Column(String)
    notes = Column(Text)

    status = Column(String, default="pending", nullable=False)  # pending, confirmed, cancelled, completed, missed

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow)

    clinic = relationship("Clinic", back_populates="patient_bookings")
