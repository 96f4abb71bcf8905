from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, TIMESTAMP
from app.core.database import Base

class AutomationJob(Base):
    __tablename__ = "automation_jobs"

    id = Column(Integer, primary_key=True, index=True)

    job_type = Column(String)  # genius_cycle, sequence_tick, campaign_tick, outreach_tick
    status = Column(String)  # running, completed, failed, skipped

    processed_count = Column(Integer, default=0)
    error_count = Column(Integer, default=0)
    message = Column(Text)

    started_at = Column(TIMESTAMP)
    finished_at = Column(TIMESTAMP)

    error_message = Column(Text)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
