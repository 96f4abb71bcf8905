from datetime import datetime
from sqlalchemy import Column, Integer, String, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)  # public page: /c/{slug}

    brand_color = Column(String, default="#3B82F6")
    logo_url = Column(String, nullable=True)

    phone = Column(String)
    email = Column(String)
    city = Column(String)
    state = Column(String)

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow)

    owner = relationship("User")
    members = relationship("ClinicUser", back_populates="clinic", cascade="all, delete-orphan")
    leads = relationship("Lead", back_populates="clinic")
    patient_bookings = relationship("PatientBooking", back_populates="clinic")


class ClinicUser(Base):
    __tablename__ = "clinic_users"
    __table_args__ = (UniqueConstraint("clinic_id", "user_id", name="uq_clinic_user"),)

    id = Column(Integer, primary_key=True, index=True)

    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(String, default="member")  # owner, admin, member

    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    clinic = relationship("Clinic", back_populates="members")
