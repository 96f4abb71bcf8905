from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP
from app.core.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True)
    password_hash = Column(String)

    first_name = Column(String)
    last_name = Column(String)

    role = Column(String, default="clinic")  # admin, clinic

    is_active = Column(Boolean, default=True)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    last_login = Column(TIMESTAMP)
