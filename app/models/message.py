from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Float, TIMESTAMP, ForeignKey
from app.core.database import Base

class OutboundMessage(Base):
    """Every email/SMS/WhatsApp we attempted to send. GENIUS budgets are counted from here."""
    __tablename__ = "outbound_messages"

    id = Column(Integer, primary_key=True, index=True)

    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True, index=True)

    channel = Column(String, default="email")  # email, sms, whatsapp
    source = Column(String, index=True)  # genius, sequence, campaign, booking
    sequence_day = Column(Integer, nullable=True)

    to_address = Column(Text)
    subject = Column(Text)
    body = Column(Text)

    status = Column(String, index=True)  # sent, failed, bounced
    provider = Column(String)
    error_message = Column(Text)
    cost_cents = Column(Float, default=0.0)

    sent_at = Column(TIMESTAMP, index=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
