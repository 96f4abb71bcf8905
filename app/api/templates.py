from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.auth import get_current_user
from app.schemas.template import (
    EmailTemplateResponse,
    MessageTemplateResponse,
    TemplateCatalogResponse,
    TemplatePreviewRequest,
    TemplatePreviewResponse,
)
from app.services import template_catalog

router = APIRouter(prefix="/api/templates", tags=["Templates"], dependencies=[Depends(get_current_user)])


# --- READ ALL ---
@router.get("", response_model=TemplateCatalogResponse)
def list_templates(channel: Optional[str] = Query(None, enum=["email", "sms", "messenger", "whatsapp"])):
    if channel == "email":
        return {"email": [asdict(t) for t in template_catalog.GENIUS_EMAIL_TEMPLATES], "messages": []}

    messages = template_catalog.get_templates_by_channel(channel) if channel else template_catalog.MESSAGE_TEMPLATES
    emails = [] if channel else template_catalog.GENIUS_EMAIL_TEMPLATES
    return {"email": [asdict(t) for t in emails], "messages": [asdict(t) for t in messages]}


# --- GENIUS EMAILS ---
@router.get("/email/{day}", response_model=EmailTemplateResponse)
def get_email_template(day: int):
    template = template_catalog.get_email_template(day)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return asdict(template)


@router.post("/email/{day}/preview", response_model=TemplatePreviewResponse)
def preview_email_template(day: int, payload: TemplatePreviewRequest):
    rendered = template_catalog.render_email(day, payload.data)
    if not rendered:
        raise HTTPException(status_code=404, detail="Template not found")
    return {"id": f"email_day_{day}", "subject": rendered.subject, "text": rendered.text, "html": rendered.html}


# --- SMS / MESSENGER / WHATSAPP ---
@router.get("/{template_id}", response_model=MessageTemplateResponse)
def get_template(template_id: str):
    template = template_catalog.get_template_by_id(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return asdict(template)


@router.post("/{template_id}/preview", response_model=TemplatePreviewResponse)
def preview_template(template_id: str, payload: TemplatePreviewRequest):
    text = template_catalog.render_message(template_id, payload.data)
    if text is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return {"id": template_id, "text": text}
