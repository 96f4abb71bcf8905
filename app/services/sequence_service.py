import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.clinic import Clinic
from app.models.lead import Lead
from app.models.message import OutboundMessage
from app.models.sequence import Sequence, SequenceStep, SequenceEnrollment
from app.models.user import User
from app.schemas.sequence import SequenceCreate, SequenceUpdate, SequenceStepCreate, SequenceStepUpdate
from app.services.lead_status import Actor, LeadStatus, InvalidTransition, apply_transition
from app.services.template_catalog import SMS_EXCLUDED_STATUSES, fill_template, render_message, should_send_sms

logger = logging.getLogger(__name__)

OPEN_ENROLLMENT_STATUSES = ("active", "paused")

# (to_email, subject, html, text) -> (success, error)
EmailSender = Callable[[str, str, str, Optional[str]], Tuple[bool, Optional[str]]]
# (channel, to_phone, body) -> (success, error)
TextSender = Callable[[str, str, str], Tuple[bool, Optional[str]]]


class DuplicateEnrollment(ValueError):
    pass


def step_delay(step: SequenceStep) -> timedelta:
    return timedelta(hours=(step.delay_days or 0) * 24 + (step.delay_hours or 0))


def lead_variables(lead: Lead, clinic: Optional[Clinic] = None) -> Dict[str, str]:
    name = (lead.name or "").strip()
    if clinic is not None:
        clinic_name = clinic.name
        booking_url = f"{settings.SITE_URL}/c/{clinic.slug}"
    else:
        clinic_name = lead.clinic_name or ""
        booking_url = settings.DEMO_LINK
    return {
        "first_name": name.split()[0] if name else "there",
        "name": name,
        "clinic_name": clinic_name,
        "booking_url": booking_url,
    }


class SequenceService:
    def __init__(self, db: Session):
        self.db = db

    # ---------------------------------------------------------
    # 1. SEQUENCES
    # ---------------------------------------------------------
    def list_sequences(self, clinic_ids: Optional[List[int]] = None, owner_id: Optional[int] = None) -> List[Sequence]:
        query = self.db.query(Sequence)
        if clinic_ids is not None:
            if owner_id is not None:
                query = query.filter((Sequence.clinic_id.in_(clinic_ids)) | (Sequence.owner_id == owner_id))
            else:
                query = query.filter(Sequence.clinic_id.in_(clinic_ids))
        return query.order_by(Sequence.created_at.desc(), Sequence.id.desc()).all()

    def get_sequence(self, sequence_id: int) -> Optional[Sequence]:
        return self.db.query(Sequence).filter(Sequence.id == sequence_id).first()

    def create_sequence(self, data: SequenceCreate, owner: Optional[User] = None) -> Sequence:
        now = datetime.utcnow()
        sequence = Sequence(
            name=data.name,
            description=data.description,
            status=data.status,
            clinic_id=data.clinic_id,
            owner_id=owner.id if owner else None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(sequence)
        self.db.flush()

        for index, step in enumerate(data.steps, start=1):
            self.db.add(self._build_step(sequence.id, step, step.step_order or index))

        self.db.commit()
        self.db.refresh(sequence)
        return sequence

    def update_sequence(self, sequence_id: int, data: SequenceUpdate) -> Optional[Sequence]:
        sequence = self.get_sequence(sequence_id)
        if not sequence:
            return None

        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(sequence, key, value)
        sequence.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(sequence)
        return sequence

    def delete_sequence(self, sequence_id: int) -> bool:
        sequence = self.get_sequence(sequence_id)
        if not sequence:
            return False

        self.db.delete(sequence)
        self.db.commit()
        return True

    # ---------------------------------------------------------
    # 2. STEPS
    # ---------------------------------------------------------
    def _build_step(self, sequence_id: int, data: SequenceStepCreate, step_order: int) -> SequenceStep:
        if not data.message and not data.template_id:
            raise ValueError("Step needs a message or a template_id")
        return SequenceStep(
            sequence_id=sequence_id,
            step_order=step_order,
            channel=data.channel,
            delay_days=data.delay_days,
            delay_hours=data.delay_hours,
            subject=data.subject,
            message=data.message,
            template_id=data.template_id,
        )

    def add_step(self, sequence_id: int, data: SequenceStepCreate) -> Optional[SequenceStep]:
        sequence = self.get_sequence(sequence_id)
        if not sequence:
            return None

        order = data.step_order or (max((s.step_order for s in sequence.steps), default=0) + 1)
        step = self._build_step(sequence.id, data, order)
        self.db.add(step)
        sequence.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(step)
        return step

    def update_step(self, step_id: int, data: SequenceStepUpdate) -> Optional[SequenceStep]:
        step = self.db.query(SequenceStep).filter(SequenceStep.id == step_id).first()
        if not step:
            return None

        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(step, key, value)

        self.db.commit()
        self.db.refresh(step)
        return step

    def delete_step(self, step_id: int) -> bool:
        step = self.db.query(SequenceStep).filter(SequenceStep.id == step_id).first()
        if not step:
            return False

        self.db.delete(step)
        self.db.commit()
        return True

    # ---------------------------------------------------------
    # 3. ENROLLMENTS
    # ---------------------------------------------------------
    def list_enrollments(self, sequence_id: int) -> List[SequenceEnrollment]:
        return (
            self.db.query(SequenceEnrollment)
            .filter(SequenceEnrollment.sequence_id == sequence_id)
            .order_by(SequenceEnrollment.enrolled_at.desc(), SequenceEnrollment.id.desc())
            .all()
        )

    def get_enrollment(self, enrollment_id: int) -> Optional[SequenceEnrollment]:
        return self.db.query(SequenceEnrollment).filter(SequenceEnrollment.id == enrollment_id).first()

    def enroll(self, sequence_id: int, lead_id: int, now: Optional[datetime] = None) -> Optional[SequenceEnrollment]:
        sequence = self.get_sequence(sequence_id)
        lead = self.db.query(Lead).filter(Lead.id == lead_id).first()
        if not sequence or not lead:
            return None

        if not sequence.steps:
            raise ValueError("Sequence has no steps")

        existing = self.db.query(SequenceEnrollment).filter(
            SequenceEnrollment.sequence_id == sequence_id,
            SequenceEnrollment.lead_id == lead_id,
            SequenceEnrollment.status.in_(OPEN_ENROLLMENT_STATUSES),
        ).first()
        if existing:
            raise DuplicateEnrollment(f"Lead {lead_id} is already enrolled in sequence {sequence_id}")

        now = now or datetime.utcnow()
        enrollment = SequenceEnrollment(
            sequence_id=sequence_id,
            lead_id=lead_id,
            status="active",
            current_step_order=0,
            next_send_at=now + step_delay(sequence.steps[0]),
            enrolled_at=now,
        )
        self.db.add(enrollment)
        self.db.commit()
        self.db.refresh(enrollment)
        return enrollment

    def set_enrollment_status(self, enrollment_id: int, status: str, now: Optional[datetime] = None) -> Optional[SequenceEnrollment]:
        enrollment = self.get_enrollment(enrollment_id)
        if not enrollment:
            return None

        if enrollment.status == "completed":
            raise ValueError("Enrollment already completed")

        if status in OPEN_ENROLLMENT_STATUSES and enrollment.status not in OPEN_ENROLLMENT_STATUSES:
            other = self.db.query(SequenceEnrollment).filter(
                SequenceEnrollment.id != enrollment.id,
                SequenceEnrollment.sequence_id == enrollment.sequence_id,
                SequenceEnrollment.lead_id == enrollment.lead_id,
                SequenceEnrollment.status.in_(OPEN_ENROLLMENT_STATUSES),
            ).first()
            if other:
                raise DuplicateEnrollment(
                    f"Lead {enrollment.lead_id} already has enrollment {other.id} in sequence {enrollment.sequence_id}"
                )

        now = now or datetime.utcnow()
        enrollment.status = status
        if status == "active":
            remaining = enrollment.sequence.steps[enrollment.current_step_order:]
            if not remaining:
                enrollment.status = "completed"
                enrollment.completed_at = now
                enrollment.next_send_at = None
            elif enrollment.next_send_at is None:
                enrollment.next_send_at = now
            enrollment.error_message = None
        elif status in ("stopped", "cancelled"):
            enrollment.next_send_at = None

        self.db.commit()
        self.db.refresh(enrollment)
        return enrollment

    # ---------------------------------------------------------
    # 4. DELIVERY (called by the sequence worker)
    # ---------------------------------------------------------
    def get_due_enrollments(self, now: datetime, limit: int = 100) -> List[SequenceEnrollment]:
        return (
            self.db.query(SequenceEnrollment)
            .join(Sequence, Sequence.id == SequenceEnrollment.sequence_id)
            .filter(
                Sequence.status == "active",
                SequenceEnrollment.status == "active",
                SequenceEnrollment.next_send_at.isnot(None),
                SequenceEnrollment.next_send_at <= now,
            )
            .order_by(SequenceEnrollment.next_send_at.asc(), SequenceEnrollment.id.asc())
            .limit(limit)
            .all()
        )

    def _ineligible_reason(self, lead: Lead, step: SequenceStep) -> Optional[str]:
        if not lead.marketing_opt_in:
            return "Lead opted out of marketing"

        if step.channel in ("sms", "whatsapp"):
            if not lead.phone:
                return "Lead has no phone number"
            if not should_send_sms(lead.status, step.template_id or "sequence_step"):
                return f"Lead status '{lead.status}' is not eligible for {step.channel}"
            return None

        if not lead.email:
            return "Lead has no email address"
        if (lead.status or "").lower() in SMS_EXCLUDED_STATUSES:
            return f"Lead status '{lead.status}' is not eligible for email"
        return None

    def process_enrollment(
        self,
        enrollment: SequenceEnrollment,
        email_sender: EmailSender,
        text_sender: TextSender,
        now: datetime,
    ) -> Optional[bool]:
        """
        Sends the next step. Returns True on send, False on provider failure
        and None when the enrollment was stopped or completed without sending.
        """
        steps = enrollment.sequence.steps
        if enrollment.current_step_order >= len(steps):
            enrollment.status = "completed"
            enrollment.completed_at = now
            enrollment.next_send_at = None
            return None

        step = steps[enrollment.current_step_order]
        lead = enrollment.lead

        reason = self._ineligible_reason(lead, step)
        if reason:
            enrollment.status = "stopped"
            enrollment.next_send_at = None
            enrollment.error_message = reason
            logger.info(f"⏹️ Enrollment {enrollment.id} stopped: {reason}")
            return None

        clinic = self.db.query(Clinic).filter(Clinic.id == lead.clinic_id).first() if lead.clinic_id else None
        variables = lead_variables(lead, clinic)

        if step.message:
            body = fill_template(step.message, variables)
        else:
            body = render_message(step.template_id, variables) or ""
        if not body:
            enrollment.status = "stopped"
            enrollment.next_send_at = None
            enrollment.error_message = f"Step {step.step_order} has nothing to send"
            return None

        if step.channel == "email":
            subject = fill_template(step.subject, variables) or f"A message from {variables['clinic_name'] or settings.SITE_NAME}"
            html = f"<div>{body.replace(chr(10), '<br/>')}</div>"
            to_address = lead.email
            success, error = email_sender(to_address, subject, html, body)
        else:
            subject = None
            to_address = lead.phone
            success, error = text_sender(step.channel, to_address, body)

        self.db.add(OutboundMessage(
            lead_id=lead.id,
            channel=step.channel,
            source="sequence",
            sequence_day=step.step_order,
            to_address=to_address,
            subject=subject,
            body=body,
            status="sent" if success else "failed",
            provider="zeptomail" if step.channel == "email" else "twilio",
            error_message=None if success else error,
            sent_at=now,
            created_at=now,
        ))

        if not success:
            enrollment.error_message = error
            return False

        enrollment.current_step_order += 1
        enrollment.last_sent_at = now
        enrollment.error_message = None

        if enrollment.current_step_order >= len(steps):
            enrollment.status = "completed"
            enrollment.completed_at = now
            enrollment.next_send_at = None
        else:
            enrollment.next_send_at = now + step_delay(steps[enrollment.current_step_order])

        if lead.status == LeadStatus.NEW.value:
            try:
                apply_transition(lead, LeadStatus.CONTACTED, Actor.AUTOMATION, now)
            except InvalidTransition as e:
                logger.warning(f"⚠️ {e}")
        return True

    def process_due_enrollments(
        self,
        email_sender: EmailSender,
        text_sender: TextSender,
        now: Optional[datetime] = None,
        limit: int = 100,
    ) -> Dict[str, int]:
        now = now or datetime.utcnow()
        result = {"processed": 0, "sent": 0, "failed": 0, "stopped": 0}

        for enrollment in self.get_due_enrollments(now, limit):
            outcome = self.process_enrollment(enrollment, email_sender, text_sender, now)
            result["processed"] += 1
            if outcome is True:
                result["sent"] += 1
            elif outcome is False:
                result["failed"] += 1
                logger.error(f"❌ Enrollment {enrollment.id} send failed: {enrollment.error_message}")
            elif enrollment.status == "stopped":
                result["stopped"] += 1
            self.db.commit()

        return result
