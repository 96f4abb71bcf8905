from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, TIMESTAMP, ForeignKey
from sqlalchemy.orm import relationship
from app.core.database import Base

class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)
    email = Column(String, index=True)
    phone = Column(String)

    clinic_name = Column(String)  # practice name for sales leads
    website = Column(String)
    notes = Column(Text)

    # new -> contacted -> warm -> replied -> demo_booked -> won / lost
    status = Column(String, default="new", nullable=False, index=True)
    source = Column(String, default="manual")

    city = Column(String)
    state = Column(String)
    country = Column(String, default="USA")

    # NULL = sales lead, set = patient lead owned by a clinic
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=True, index=True)

    # GENIUS drip position
    sequence_day = Column(Integer, default=0, nullable=False)
    marketing_opt_in = Column(Boolean, default=True, nullable=False)
    emails_sent = Column(Integer, default=0, nullable=False)
    last_sent_at = Column(TIMESTAMP, nullable=True)
    next_send_at = Column(TIMESTAMP, nullable=True, index=True)

    contacted_at = Column(TIMESTAMP, nullable=True)
    replied_at = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow)

    clinic = relationship("Clinic", back_populates="leads")
