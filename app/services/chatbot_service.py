import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.chatbot import ChatbotMessage, ChatbotThread
from app.models.clinic import Clinic
from app.models.lead import Lead
from app.schemas.chatbot import ChatRequest
from app.services.genius_engine import GeniusConfig, day_to_delay
from app.services.lead_status import LeadStatus
from app.services.llm_service import LLMNotConfigured

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20

SALES_SYSTEM_PROMPT = f"""You are Sarah, a friendly sales specialist for {settings.SITE_NAME}, an AI-powered lead generation platform for dental clinics.

Your goals:
1. Be warm, professional and human-like
2. Answer questions clinic owners have about the platform
3. Highlight the benefits: more quality leads, automated follow-up, multi-clinic support, patient chatbots
4. When someone shows interest, point them to instant demo access: {settings.DEMO_LINK}

Demo access is instant and self-service. Never talk about scheduling or waiting.
Keep responses concise and conversational."""

PATIENT_SYSTEM_PROMPT = """You are a helpful dental assistant chatbot for {clinic_name}.

Your goals:
1. Answer common dental questions with accurate, friendly information
2. Help patients understand dental procedures and treatments
3. Help with appointment booking

When someone wants to book an appointment, collect their name, email, phone,
appointment type and preferred date and time.

Keep responses concise and caring."""

FALLBACK_REPLIES = {
    "sales": f"Thanks for reaching out! You can explore {settings.SITE_NAME} right now at {settings.DEMO_LINK}. "
             f"If you have questions, email us at {settings.SUPPORT_EMAIL}.",
    "patient": "Thanks for your message! Our team will get back to you shortly. "
               "You can also request an appointment using the booking form on this page.",
}


class UnknownClinic(ValueError):
    pass


class ThreadNotFound(ValueError):
    pass


class ChatbotService:
    def __init__(self, db: Session, llm=None):
        self.db = db
        self._llm = llm

    def _get_llm(self):
        if self._llm is None:
            from app.services.llm_service import LLMService
            self._llm = LLMService()
        return self._llm

    # ---------------------------------------------------------
    # 1. THREADS
    # ---------------------------------------------------------
    def get_thread(self, thread_id: int) -> Optional[ChatbotThread]:
        return self.db.query(ChatbotThread).filter(ChatbotThread.id == thread_id).first()

    def _open_thread(self, data: ChatRequest, now: datetime) -> Tuple[ChatbotThread, Optional[Clinic]]:
        clinic = None
        if data.type == "patient":
            if data.clinic_id is None:
                raise UnknownClinic("clinic_id is required for patient chats")
            clinic = self.db.query(Clinic).filter(Clinic.id == data.clinic_id).first()
            if not clinic:
                raise UnknownClinic(f"Clinic {data.clinic_id} does not exist")

        if data.thread_id is not None:
            thread = self.get_thread(data.thread_id)
            if not thread:
                raise ThreadNotFound(f"Thread {data.thread_id} not found")
            if thread.clinic_id and clinic is None:
                clinic = self.db.query(Clinic).filter(Clinic.id == thread.clinic_id).first()
            return thread, clinic

        thread = ChatbotThread(
            type=data.type,
            clinic_id=clinic.id if clinic else None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(thread)
        self.db.flush()
        return thread, clinic

    # ---------------------------------------------------------
    # 2. LEAD CAPTURE
    # ---------------------------------------------------------
    def _capture_lead(self, thread: ChatbotThread, data: ChatRequest, now: datetime) -> Optional[Lead]:
        if not data.visitor_email:
            return None

        email = str(data.visitor_email).strip().lower()
        thread.visitor_email = email
        if thread.lead_id:
            return self.db.query(Lead).filter(Lead.id == thread.lead_id).first()

        if thread.clinic_id:
            owner_filter = Lead.clinic_id == thread.clinic_id
        else:
            owner_filter = Lead.clinic_id.is_(None)
        lead = self.db.query(Lead).filter(Lead.email == email, owner_filter).first()

        if not lead:
            lead = Lead(
                name=(data.visitor_name or email.split("@")[0]).strip(),
                email=email,
                status=LeadStatus.NEW.value,
                source="chatbot",
                clinic_id=thread.clinic_id,
                sequence_day=0,
                marketing_opt_in=True,
                emails_sent=0,
                created_at=now,
                updated_at=now,
            )
            if lead.clinic_id is None:
                lead.next_send_at = now + day_to_delay(0, GeniusConfig.from_settings())
            self.db.add(lead)
            self.db.flush()
            logger.info(f"🤖 Chatbot captured lead {lead.id} ({email})")

        thread.lead_id = lead.id
        return lead

    # ---------------------------------------------------------
    # 3. CONVERSATION
    # ---------------------------------------------------------
    def _system_prompt(self, thread: ChatbotThread, clinic: Optional[Clinic]) -> str:
        if thread.type == "patient":
            return PATIENT_SYSTEM_PROMPT.format(clinic_name=clinic.name if clinic else "our dental clinic")
        return SALES_SYSTEM_PROMPT

    def _generate_reply(self, thread: ChatbotThread, clinic: Optional[Clinic]) -> str:
        history = [
            {"role": m.role, "content": m.content}
            for m in thread.messages[-HISTORY_LIMIT:]
        ]
        try:
            return self._get_llm().chat(self._system_prompt(thread, clinic), history, max_tokens=500)
        except LLMNotConfigured:
            logger.warning("⚠️ LLM not configured, using canned chatbot reply")
        except Exception as e:
            logger.error(f"❌ Chatbot LLM error on thread {thread.id}: {e}")
        return FALLBACK_REPLIES.get(thread.type, FALLBACK_REPLIES["sales"])

    def send_message(self, data: ChatRequest):
        """Stores the visitor message, asks the LLM and stores the reply. Returns (thread, reply, lead)."""
        now = datetime.utcnow()
        thread, clinic = self._open_thread(data, now)
        lead = self._capture_lead(thread, data, now)

        self.db.add(ChatbotMessage(thread_id=thread.id, role="user", content=data.message.strip(), created_at=now))
        self.db.flush()
        self.db.refresh(thread)

        reply = self._generate_reply(thread, clinic)

        self.db.add(ChatbotMessage(thread_id=thread.id, role="assistant", content=reply, created_at=datetime.utcnow()))
        thread.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(thread)
        return thread, reply, lead

    def get_messages(self, thread_id: int) -> Optional[List[ChatbotMessage]]:
        thread = self.get_thread(thread_id)
        if not thread:
            return None
        return list(thread.messages)

    def list_threads(self, clinic_id: Optional[int] = None, thread_type: Optional[str] = None):
        message_count = (
            self.db.query(ChatbotMessage.thread_id, func.count(ChatbotMessage.id).label("count"))
            .group_by(ChatbotMessage.thread_id)
            .subquery()
        )
        query = self.db.query(ChatbotThread, func.coalesce(message_count.c.count, 0))\
            .outerjoin(message_count, message_count.c.thread_id == ChatbotThread.id)
        if clinic_id is not None:
            query = query.filter(ChatbotThread.clinic_id == clinic_id)
        if thread_type:
            query = query.filter(ChatbotThread.type == thread_type)

        rows = query.order_by(ChatbotThread.updated_at.desc(), ChatbotThread.id.desc()).all()
        return [
            {
                "id": t.id,
                "type": t.type,
                "clinic_id": t.clinic_id,
                "visitor_email": t.visitor_email,
                "lead_id": t.lead_id,
                "created_at": t.created_at,
                "updated_at": t.updated_at,
                "message_count": count,
            }
            for t, count in rows
        ]
