from sqlalchemy import Column, String, TIMESTAMP
from app.core.database import Base

class JobLease(Base):
    """Named lock row; only the current owner may run the job until expires_at."""
    __tablename__ = "job_leases"

    name = Column(String, primary_key=True)
    owner = Column(String, nullable=True)
    expires_at = Column(TIMESTAMP, nullable=True)
