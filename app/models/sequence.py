from sqlalchemy import Column, Integer, String, Text, TIMESTAMP, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


# ---------------------------------------------------------
# 1. SEQUENCES (The Playbook)
# ---------------------------------------------------------
class Sequence(Base):
    __tablename__ = "sequences"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default="draft")  # 'draft', 'active', 'paused'

    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow)

    steps = relationship(
        "SequenceStep",
        back_populates="sequence",
        order_by="SequenceStep.step_order",
        cascade="all, delete-orphan",
    )
    enrollments = relationship("SequenceEnrollment", back_populates="sequence", cascade="all, delete-orphan")


# ---------------------------------------------------------
# 2. SEQUENCE STEPS (One message per step)
# ---------------------------------------------------------
class SequenceStep(Base):
    __tablename__ = "sequence_steps"

    id = Column(Integer, primary_key=True, index=True)

    sequence_id = Column(Integer, ForeignKey("sequences.id"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False, default=1)

    channel = Column(String, default="email")  # 'email', 'sms', 'whatsapp'

    # Delay relative to the previous step (or to enrollment for the first one)
    delay_days = Column(Integer, default=0)
    delay_hours = Column(Integer, default=0)

    subject = Column(Text, nullable=True)
    message = Column(Text, nullable=True)  # supports {{first_name}}, {{clinic_name}}, ...
    template_id = Column(String, nullable=True)  # catalog template instead of message

    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    sequence = relationship("Sequence", back_populates="steps")


# ---------------------------------------------------------
# 3. ENROLLMENTS (The Execution Item, keyed by due time)
# ---------------------------------------------------------
class SequenceEnrollment(Base):
    __tablename__ = "sequence_enrollments"

    id = Column(Integer, primary_key=True, index=True)

    sequence_id = Column(Integer, ForeignKey("sequences.id"), nullable=False)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)

    # Status Flow: 'active' -> 'completed' | 'stopped' | 'cancelled' ('paused' is manual)
    status = Column(String, default="active", index=True)

    # Number of steps already sent
    current_step_order = Column(Integer, default=0)
    next_send_at = Column(TIMESTAMP, nullable=True, index=True)

    enrolled_at = Column(TIMESTAMP, default=datetime.utcnow)
    last_sent_at = Column(TIMESTAMP, nullable=True)
    completed_at = Column(TIMESTAMP, nullable=True)

    error_message = Column(Text, nullable=True)

    sequence = relationship("Sequence", back_populates="enrollments")
    lead = relationship("Lead")
