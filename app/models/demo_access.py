from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, TIMESTAMP, ForeignKey
from app.core.database import Base


class DemoAccessToken(Base):
    """Email-gated demo link. Valid until expires_at; ``used`` records the first visit."""
    __tablename__ = "demo_access_tokens"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, nullable=False, index=True)
    clinic_name = Column(String, nullable=True)
    token = Column(String, unique=True, nullable=False, index=True)

    expires_at = Column(TIMESTAMP, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    used_at = Column(TIMESTAMP, nullable=True)

    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
