from sqlalchemy import Boolean, Column, Integer, String, Text, TIMESTAMP, Date, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


# ---------------------------------------------------------
# 1. CAMPAIGNS (The Broadcast)
# ---------------------------------------------------------
class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)  # e.g. "Texas Clinics - Spring Promo"
    type = Column(String, default="email")  # 'email', 'sms', 'whatsapp'
    status = Column(String, default="draft")  # 'draft', 'ready', 'active', 'paused', 'completed', 'archived'

    subject = Column(Text, nullable=True)
    message = Column(Text, nullable=False)

    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=True)

    # Throttling
    daily_limit = Column(Integer, default=50)
    sent_today = Column(Integer, default=0)
    sent_today_date = Column(Date, nullable=True)
    # Optional pacing: max sends per worker tick on top of daily_limit
    per_tick_limit = Column(Integer, nullable=True)

    # Created by the outreach job; stays active to take newly enrolled leads
    is_automated = Column(Boolean, default=False, nullable=False)

    # Live Analytics (Aggregated)
    total_leads = Column(Integer, default=0)
    total_sent = Column(Integer, default=0)
    total_failed = Column(Integer, default=0)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow)

    leads = relationship("CampaignLead", back_populates="campaign", cascade="all, delete-orphan")


# ---------------------------------------------------------
# 2. CAMPAIGN LEADS (The Execution Item)
# ---------------------------------------------------------
class CampaignLead(Base):
    __tablename__ = "campaign_leads"

    id = Column(Integer, primary_key=True, index=True)

    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False)

    # Status Flow: 'queued' -> 'sent' | 'failed' | 'skipped'
    status = Column(String, default="queued")

    sent_at = Column(TIMESTAMP, nullable=True)
    error_message = Column(Text, nullable=True)

    campaign = relationship("Campaign", back_populates="leads")
    lead = relationship("Lead")
