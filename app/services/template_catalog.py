"""
Built-in message templates.

* GENIUS_EMAIL_TEMPLATES - the 7 day sales drip sent to clinic owners
* MESSAGE_TEMPLATES - SMS / Messenger / WhatsApp follow-ups for patient leads

Everything here is pure string work; nothing touches the database.
"""
import html
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from app.core.config import settings


@dataclass(frozen=True)
class EmailTemplate:
    day: int
    name: str
    subject: str
    body: str  # plain text, {first_line} placeholders
    cta_label: str
    cta_color: str = "#18181b"


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


@dataclass(frozen=True)
class MessageTemplate:
    id: str
    name: str
    trigger_type: str  # instant, delayed
    delay_minutes: int
    channel: str  # sms, messenger, whatsapp
    body: str


# ---------------------------------------------------------
# 1. GENIUS EMAIL SEQUENCE (day 0 .. 6)
# ---------------------------------------------------------
GENIUS_EMAIL_TEMPLATES: List[EmailTemplate] = [
    EmailTemplate(
        day=0,
        name="Warm-up Trigger",
        subject="Your clinic is losing 30-50 patients every month",
        body=(
            "I checked your clinic online. Patients leave when no one replies instantly.\n"
            "I built an AI receptionist that books patients for you, 24/7.\n"
            "Want the demo link?"
        ),
        cta_label="Access Free Demo",
    ),
    EmailTemplate(
        day=1,
        name="Proof",
        subject="See how clinics get 40-60 new bookings monthly",
        body=(
            "Our AI receptionist:\n"
            "✔ Books automatically\n"
            "✔ Handles insurance questions\n"
            "✔ Converts missed calls to appointments\n"
            "✔ Works 24/7 without breaks\n\n"
            "Want to see it live?"
        ),
        cta_label="Access Free Demo",
    ),
    EmailTemplate(
        day=2,
        name="Missed Calls",
        subject="Missed calls = $300-$600 lost daily",
        body=(
            "Clinics miss 20-40 calls/day.\n"
            "Each missed patient = $1,000 lifetime value.\n"
            "Your clinic can stop losing money today."
        ),
        cta_label="Stop Losing Money",
        cta_color="#dc2626",
    ),
    EmailTemplate(
        day=3,
        name="Social Proof",
        subject="How one clinic added $14,200/month with AI receptionist",
        body=(
            "One clinic booked 17 patients overnight.\n"
            "Another reduced no-shows by 40%.\n\n"
            "Your clinic can achieve similar results."
        ),
        cta_label="See How It Works",
    ),
    EmailTemplate(
        day=4,
        name="Objection Killer",
        subject='"We already have a receptionist" (Solved)',
        body=(
            "Our AI supports your staff. It replies instantly, books patients,\n"
            "and handles workload during rush hours."
        ),
        cta_label="Try 30 Days Free",
    ),
    EmailTemplate(
        day=5,
        name="Urgency",
        subject="Final 24 hours for early pricing access",
        body=(
            "Your clinic qualifies for special pricing for only 24 more hours.\n"
            "Tomorrow the price returns to regular."
        ),
        cta_label="Claim Your Offer Now",
        cta_color="#dc2626",
    ),
    EmailTemplate(
        day=6,
        name="Final Call",
        subject="Last chance: installs in 3 minutes",
        body=(
            "This is the final reminder.\n"
            "Your AI receptionist installs in minutes and runs nonstop."
        ),
        cta_label="Start Free Today",
    ),
]

_EMAIL_BY_DAY = {t.day: t for t in GENIUS_EMAIL_TEMPLATES}

EMAIL_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin: 0; padding: 20px; font-family: Arial, sans-serif; background-color: #f9fafb; color: #1f2937;">
  <div style="max-width: 600px; margin: 0 auto; background: white; padding: 30px; border-radius: 8px;">
    <p style="margin: 0 0 16px;">Hi {name},</p>
    {paragraphs}
    <p style="margin: 0 0 24px;">
      <a href="{demo_link}" style="display: inline-block; background: {cta_color}; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 600;">
        {cta_label}
      </a>
    </p>
    <p style="margin: 24px 0 0; color: #6b7280; font-size: 14px;">
      Best,<br>The {site_name} Team
    </p>
    <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 24px 0;">
    <p style="margin: 0; font-size: 12px; color: #9ca3af;">
      <a href="{demo_link}?unsubscribe=true" style="color: #9ca3af;">Unsubscribe</a> |
      {site_name} | {support_email}
    </p>
  </div>
</body>
</html>"""

TEXT_LAYOUT = """Hi {name},

{body}

{cta_label}: {demo_link}

Best,
The {site_name} Team"""


def get_email_template(day: int) -> Optional[EmailTemplate]:
    return _EMAIL_BY_DAY.get(day)


def render_email(day: int, data: Dict) -> Optional[RenderedEmail]:
    """
    Renders the GENIUS email for ``day``.

    ``data`` keys: name (dentist / clinic contact), demo_link (optional).
    Returns None when no template exists for the day.
    """
    template = get_email_template(day)
    if template is None:
        return None

    name = (data.get("name") or "Doctor").strip() or "Doctor"
    demo_link = data.get("demo_link") or settings.DEMO_LINK

    text = TEXT_LAYOUT.format(
        name=name,
        body=template.body,
        cta_label=template.cta_label,
        demo_link=demo_link,
        site_name=settings.SITE_NAME,
    )

    paragraphs = "\n    ".join(
        f'<p style="margin: 0 0 16px;">{html.escape(block).replace(chr(10), "<br>")}</p>'
        for block in template.body.split("\n\n")
    )
    html_body = EMAIL_LAYOUT.format(
        name=html.escape(name),
        paragraphs=paragraphs,
        demo_link=html.escape(demo_link, quote=True),
        cta_color=template.cta_color,
        cta_label=html.escape(template.cta_label),
        site_name=html.escape(settings.SITE_NAME),
        support_email=html.escape(settings.SUPPORT_EMAIL),
    )
    return RenderedEmail(subject=template.subject, text=text, html=html_body)


# ---------------------------------------------------------
# 2. SMS / MESSENGER / WHATSAPP FOLLOW-UPS
# ---------------------------------------------------------
MESSAGE_TEMPLATES: List[MessageTemplate] = [
    MessageTemplate(
        id="sms_instant_confirm",
        name="Instant Confirmation",
        trigger_type="instant",
        delay_minutes=0,
        channel="sms",
        body="Hi {first_name}! Thanks for reaching out to {clinic_name}. We got your info and someone will be in touch shortly. Need to book now? {booking_url}",
    ),
    MessageTemplate(
        id="sms_10min_followup",
        name="10-Minute Follow-Up",
        trigger_type="delayed",
        delay_minutes=10,
        channel="sms",
        body="Hey {first_name}, still thinking about booking? We have appointments available as early as tomorrow. Pick a time that works: {booking_url}",
    ),
    MessageTemplate(
        id="sms_24hr_reminder",
        name="24-Hour Reminder",
        trigger_type="delayed",
        delay_minutes=1440,
        channel="sms",
        body="Hi {first_name}, just following up from {clinic_name}. Ready to schedule your visit? We'd love to help. Book here: {booking_url}",
    ),
    MessageTemplate(
        id="sms_72hr_reactivation",
        name="72-Hour Re-Activation",
        trigger_type="delayed",
        delay_minutes=4320,
        channel="sms",
        body="{first_name}, we noticed you haven't booked yet. Most patients who wait end up losing their spot. Secure yours now: {booking_url} - {clinic_name}",
    ),
    MessageTemplate(
        id="sms_7day_reactivation",
        name="7-Day Re-Activation",
        trigger_type="delayed",
        delay_minutes=10080,
        channel="sms",
        body="Hi {first_name}, this is {clinic_name}. We still have you on our list! If dental care is on your mind, we're here to help. Book when ready: {booking_url}",
    ),
    MessageTemplate(
        id="messenger_instant",
        name="Messenger Instant",
        trigger_type="instant",
        delay_minutes=0,
        channel="messenger",
        body="Hey {first_name}! 👋 Thanks for reaching out to {clinic_name}. How can we help you today? Looking to book an appointment?",
    ),
    MessageTemplate(
        id="messenger_followup",
        name="Messenger Follow-Up",
        trigger_type="delayed",
        delay_minutes=60,
        channel="messenger",
        body="Hi {first_name}! Just checking in from {clinic_name}. Did you find what you were looking for? Happy to answer any questions about our services. 😊",
    ),
    MessageTemplate(
        id="messenger_reactivation",
        name="Messenger Re-Activation",
        trigger_type="delayed",
        delay_minutes=4320,
        channel="messenger",
        body="Hey {first_name}! It's been a few days since we chatted. Still thinking about dental care? We have some great appointment slots open this week! Let me know if you'd like to book. 📅",
    ),
    MessageTemplate(
        id="whatsapp_instant",
        name="WhatsApp Instant",
        trigger_type="instant",
        delay_minutes=0,
        channel="whatsapp",
        body="Hi {first_name}! Thanks for contacting {clinic_name}. We received your inquiry and will get back to you shortly. Need to book right away? Visit: {booking_url}",
    ),
    MessageTemplate(
        id="whatsapp_followup",
        name="WhatsApp Follow-Up",
        trigger_type="delayed",
        delay_minutes=1440,
        channel="whatsapp",
        body="Hello {first_name}, this is {clinic_name} following up on your inquiry. We have appointments available this week. Would you like to schedule a visit? Book here: {booking_url}",
    ),
]

_MESSAGE_BY_ID = {t.id: t for t in MESSAGE_TEMPLATES}

# Never text leads that already converted or asked us to stop
SMS_EXCLUDED_STATUSES = frozenset({"booked", "demo_booked", "won", "lost", "unsubscribed", "opted_out"})
REACTIVATION_STATUSES = frozenset({"new", "contacted", "cold", "no_response"})


def get_template_by_id(template_id: str) -> Optional[MessageTemplate]:
    return _MESSAGE_BY_ID.get(template_id)


def get_templates_by_channel(channel: str) -> List[MessageTemplate]:
    return [t for t in MESSAGE_TEMPLATES if t.channel == channel]


def get_delayed_templates() -> List[MessageTemplate]:
    return [t for t in MESSAGE_TEMPLATES if t.trigger_type == "delayed"]


def get_instant_templates() -> List[MessageTemplate]:
    return [t for t in MESSAGE_TEMPLATES if t.trigger_type == "instant"]


def render_message(template_id: str, data: Dict) -> Optional[str]:
    """Personalised follow-up text, or None for an unknown template id."""
    template = get_template_by_id(template_id)
    if template is None:
        return None
    return template.body.format(
        first_name=data.get("first_name") or "",
        clinic_name=data.get("clinic_name") or "",
        booking_url=data.get("booking_url") or "",
    )


def should_send_sms(lead_status: str, template_id: str) -> bool:
    status = (lead_status or "").lower()
    if status in SMS_EXCLUDED_STATUSES:
        return False

    if "reactivation" in (template_id or ""):
        return status in REACTIVATION_STATUSES

    return True


# ---------------------------------------------------------
# 3. USER-AUTHORED MESSAGES ({{var}} placeholders)
# ---------------------------------------------------------
_PLACEHOLDER = re.compile(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}")


def fill_template(text: Optional[str], variables: Dict) -> str:
    if not text:
        return ""

    def _sub(match):
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, text)
