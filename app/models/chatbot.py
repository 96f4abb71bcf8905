from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, TIMESTAMP, ForeignKey
from sqlalchemy.orm import relationship
from app.core.database import Base


class ChatbotThread(Base):
    __tablename__ = "chatbot_threads"

    id = Column(Integer, primary_key=True, index=True)

    type = Column(String, nullable=False)  # sales, patient
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=True, index=True)

    visitor_email = Column(String, nullable=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow)

    messages = relationship(
        "ChatbotMessage",
        back_populates="thread",
        order_by="ChatbotMessage.id",
        cascade="all, delete-orphan",
    )


class ChatbotMessage(Base):
    __tablename__ = "chatbot_messages"

    id = Column(Integer, primary_key=True, index=True)

    thread_id = Column(Integer, ForeignKey("chatbot_threads.id"), nullable=False, index=True)
    role = Column(String, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    thread = relationship("ChatbotThread", back_populates="messages")
