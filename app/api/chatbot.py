from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.auth import get_current_user, require_admin
from app.core.database import get_db
from app.models.user import User
from app.schemas.chatbot import ChatMessageResponse, ChatRequest, ChatResponse, ChatThreadResponse
from app.services.chatbot_service import ChatbotService, ThreadNotFound, UnknownClinic
from app.services.clinic_service import ClinicService

router = APIRouter(prefix="/api/chatbot", tags=["Chatbot"])


# Public: used by the website and clinic page widgets
@router.post("/send", response_model=ChatResponse)
def send_message(payload: ChatRequest, db: Session = Depends(get_db)):
    try:
        thread, reply, lead = ChatbotService(db).send_message(payload)
    except ThreadNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnknownClinic as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"thread_id": thread.id, "reply": reply, "lead_id": lead.id if lead else thread.lead_id}


@router.get("/messages/{thread_id}", response_model=List[ChatMessageResponse])
def get_messages(thread_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    service = ChatbotService(db)
    thread = service.get_thread(thread_id)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")

    if thread.clinic_id is None:
        allowed = user.role == "admin"
    else:
        allowed = ClinicService(db).can_access(user, thread.clinic_id)
    if not allowed:
        raise HTTPException(status_code=403, detail="No access to this conversation")

    return service.get_messages(thread_id)


@router.get("/threads", response_model=List[ChatThreadResponse])
def list_threads(type: str = None, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    return ChatbotService(db).list_threads(thread_type=type)


@router.get("/threads/clinic/{clinic_id}", response_model=List[ChatThreadResponse])
def list_clinic_threads(clinic_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not ClinicService(db).can_access(user, clinic_id):
        raise HTTPException(status_code=403, detail="No access to this clinic")
    return ChatbotService(db).list_threads(clinic_id=clinic_id)
