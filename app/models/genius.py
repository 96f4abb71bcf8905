from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, Text, Date, TIMESTAMP
from app.core.database import Base

class GeniusEngineState(Base):
    """Single-row control record for the GENIUS drip engine (id is always 1)."""
    __tablename__ = "genius_engine_state"

    id = Column(Integer, primary_key=True)

    is_running = Column(Boolean, default=False, nullable=False)
    is_paused = Column(Boolean, default=False, nullable=False)
    pause_reason = Column(Text, default="")

    # Set once the threshold auto-pause fired so a manual resume can continue to 100%
    threshold_pause_fired = Column(Boolean, default=False, nullable=False)
    counter_date = Column(Date, nullable=True)

    cycle_minutes = Column(Integer, default=10)
    last_cycle_at = Column(TIMESTAMP, nullable=True)
    last_cycle_message = Column(String, nullable=True)

    updated_at = Column(TIMESTAMP, default=datetime.utcnow)
