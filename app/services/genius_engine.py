"""
GENIUS engine: the automated 7-day email sequence for sales leads.

Budget rules (all counted from the outbound_messages log):
- never more than ``daily_email_limit`` GENIUS emails per calendar day
- never more than ``monthly_budget_cents`` of estimated spend per month
- the first time usage crosses ``pause_threshold_percent`` the engine pauses
  itself; an admin resume lets it continue up to the hard limits

Engine state lives in the single ``genius_engine_state`` row so that every
replica sees the same running/paused flags.
"""
import logging
import re
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.locks import acquire_lease, refresh_lease, release_lease
from app.models.booking import DemoBooking
from app.models.genius import GeniusEngineState
from app.models.lead import Lead
from app.models.message import OutboundMessage
from app.services.email_service import PROVIDER, is_bounce
from app.services.lead_status import (
    Actor,
    LeadStatus,
    SEQUENCE_ACTIVE_STATUSES,
    InvalidTransition,
    apply_transition,
)
from app.services.template_catalog import render_email

logger = logging.getLogger(__name__)

GENIUS_SOURCE = "genius"
LEASE_NAME = "genius_cycle"
STATE_ID = 1

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# (to_email, subject, html, text) -> (success, error)
EmailSender = Callable[[str, str, str, Optional[str]], Tuple[bool, Optional[str]]]


@dataclass
class GeniusConfig:
    daily_email_limit: int = 1666
    monthly_budget_cents: int = 10000
    email_cost_cents: float = 0.4
    pause_threshold_percent: int = 70
    batch_size: int = 50
    sequence_days: int = 7
    day_delay_hours: int = 24
    send_stagger_seconds: float = 0.2
    cycle_minutes: int = 10
    demo_link: str = "https://dentalleadgenius.com/demo"

    @classmethod
    def from_settings(cls) -> "GeniusConfig":
        return cls(
            daily_email_limit=settings.GENIUS_DAILY_EMAIL_LIMIT,
            monthly_budget_cents=settings.GENIUS_MONTHLY_BUDGET_CENTS,
            email_cost_cents=settings.GENIUS_EMAIL_COST_CENTS,
            pause_threshold_percent=settings.GENIUS_PAUSE_THRESHOLD_PERCENT,
            batch_size=settings.GENIUS_BATCH_SIZE,
            sequence_days=settings.GENIUS_SEQUENCE_DAYS,
            day_delay_hours=settings.GENIUS_DAY_DELAY_HOURS,
            send_stagger_seconds=settings.GENIUS_SEND_STAGGER_SECONDS,
            cycle_minutes=settings.GENIUS_CYCLE_MINUTES,
            demo_link=settings.DEMO_LINK,
        )


@dataclass
class BudgetStatus:
    emails_sent_today: int
    emails_sent_this_month: int
    monthly_spend_cents: float
    daily_percent_used: float
    monthly_percent_used: float
    daily_hard_limit_reached: bool
    monthly_hard_limit_reached: bool
    daily_threshold_exceeded: bool
    monthly_threshold_exceeded: bool


@dataclass
class BudgetCheck:
    can_send: bool
    reason: Optional[str] = None
    budget: Optional[BudgetStatus] = None


@dataclass
class CycleResult:
    success: bool
    emails_sent: int = 0
    errors: int = 0
    message: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ImportResult:
    success: bool
    lead_id: Optional[int] = None
    existing: bool = False
    error: Optional[str] = None


@dataclass
class BulkImportResult:
    total: int = 0
    imported: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def day_to_delay(day: int, config: GeniusConfig) -> timedelta:
    """Wait before sending ``day``: day 0 goes out immediately, later days every ``day_delay_hours``."""
    if day <= 0:
        return timedelta(0)
    return timedelta(hours=config.day_delay_hours)


def _day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _default_sender() -> EmailSender:
    from app.services.email_service import EmailService

    return EmailService().send_email


class GeniusEngine:
    def __init__(self, db: Session, config: Optional[GeniusConfig] = None, sender: Optional[EmailSender] = None):
        self.db = db
        self.config = config or GeniusConfig.from_settings()
        self._sender = sender

    @property
    def sender(self) -> EmailSender:
        if self._sender is None:
            self._sender = _default_sender()
        return self._sender

    # ---------------------------------------------------------
    # STATE
    # ---------------------------------------------------------
    def get_state(self) -> GeniusEngineState:
        state = self.db.query(GeniusEngineState).filter(GeniusEngineState.id == STATE_ID).first()
        if state is None:
            state = GeniusEngineState(
                id=STATE_ID,
                is_running=False,
                is_paused=False,
                pause_reason="",
                threshold_pause_fired=False,
                cycle_minutes=self.config.cycle_minutes,
                counter_date=datetime.utcnow().date(),
            )
            self.db.add(state)
            self.db.flush()
        return state

    def reset_daily_counter_if_needed(self, state: GeniusEngineState, now: datetime) -> None:
        today = now.date()
        if state.counter_date != today:
            state.counter_date = today
            state.threshold_pause_fired = False
            logger.info("🔄 GENIUS daily counter and threshold flag reset for new day")

    # ---------------------------------------------------------
    # BUDGET
    # ---------------------------------------------------------
    def _sent_count(self, start: datetime, end: Optional[datetime] = None) -> int:
        query = self.db.query(func.count(OutboundMessage.id)).filter(
            OutboundMessage.source == GENIUS_SOURCE,
            OutboundMessage.channel == "email",
            OutboundMessage.status == "sent",
            OutboundMessage.sent_at >= start,
        )
        if end is not None:
            query = query.filter(OutboundMessage.sent_at < end)
        return query.scalar() or 0

    def get_budget_status(self, now: Optional[datetime] = None) -> BudgetStatus:
        now = now or datetime.utcnow()
        cfg = self.config
        threshold = cfg.pause_threshold_percent / 100

        day_start, day_end = _day_bounds(now)
        sent_today = self._sent_count(day_start, day_end)
        sent_month = self._sent_count(_month_start(now))
        spend = sent_month * cfg.email_cost_cents

        daily_pct = sent_today / cfg.daily_email_limit if cfg.daily_email_limit else 1.0
        monthly_pct = spend / cfg.monthly_budget_cents if cfg.monthly_budget_cents else 1.0

        return BudgetStatus(
            emails_sent_today=sent_today,
            emails_sent_this_month=sent_month,
            monthly_spend_cents=spend,
            daily_percent_used=daily_pct,
            monthly_percent_used=monthly_pct,
            daily_hard_limit_reached=sent_today >= cfg.daily_email_limit,
            monthly_hard_limit_reached=spend >= cfg.monthly_budget_cents,
            daily_threshold_exceeded=daily_pct >= threshold,
            monthly_threshold_exceeded=monthly_pct >= threshold,
        )

    def check_budget(
        self,
        state: GeniusEngineState,
        trigger_auto_pause: bool = True,
        now: Optional[datetime] = None,
    ) -> BudgetCheck:
        """
        Hard limits (100%) always block. Crossing the threshold pauses the
        engine once; after a manual resume sends continue until 100%.
        ``trigger_auto_pause`` is False for the per-send guard inside a cycle.
        """
        budget = self.get_budget_status(now)
        cfg = self.config

        if not budget.daily_threshold_exceeded and not budget.monthly_threshold_exceeded:
            state.threshold_pause_fired = False

        if budget.daily_hard_limit_reached:
            return BudgetCheck(
                False,
                f"HARD LIMIT: Daily limit reached {budget.emails_sent_today}/{cfg.daily_email_limit} emails",
                budget,
            )

        if budget.monthly_hard_limit_reached:
            return BudgetCheck(
                False,
                f"HARD LIMIT: Monthly budget exhausted ${budget.monthly_spend_cents / 100:.2f} of ${cfg.monthly_budget_cents / 100:.2f}",
                budget,
            )

        should_auto_pause = trigger_auto_pause and not state.is_paused and not state.threshold_pause_fired

        if should_auto_pause and (budget.daily_threshold_exceeded or budget.monthly_threshold_exceeded):
            if budget.daily_threshold_exceeded:
                label, pct = "Daily", budget.daily_percent_used
            else:
                label, pct = "Monthly", budget.monthly_percent_used
            state.threshold_pause_fired = True
            self.pause(
                f"{label} budget at {round(pct * 100)}% - approaching limit. Resume to continue until 100%.",
                commit=False,
            )
            return BudgetCheck(
                False,
                f"{label} budget at {round(pct * 100)}% - auto-paused at {cfg.pause_threshold_percent}% threshold",
                budget,
            )

        return BudgetCheck(True, None, budget)

    # ---------------------------------------------------------
    # SENDING
    # ---------------------------------------------------------
    def get_due_leads(self, now: datetime, limit: int) -> List[Lead]:
        return (
            self.db.query(Lead)
            .filter(
                Lead.clinic_id.is_(None),
                Lead.status.in_([s.value for s in SEQUENCE_ACTIVE_STATUSES]),
                Lead.marketing_opt_in.is_(True),
                Lead.email.isnot(None),
                Lead.email != "",
                Lead.sequence_day < self.config.sequence_days,
                Lead.next_send_at.isnot(None),
                Lead.next_send_at <= now,
            )
            .order_by(Lead.next_send_at.asc(), Lead.id.asc())
            .limit(limit)
            .all()
        )

    def send_sequence_email(self, lead: Lead, now: datetime) -> Tuple[bool, Optional[str]]:
        day = lead.sequence_day or 0
        rendered = render_email(day, {"name": lead.name, "demo_link": self.config.demo_link})
        if rendered is None:
            return False, f"No template for day {day}"

        try:
            success, error = self.sender(lead.email, rendered.subject, rendered.html, rendered.text)
        except Exception as e:
            success, error = False, str(e)

        self.db.add(OutboundMessage(
            lead_id=lead.id,
            channel="email",
            source=GENIUS_SOURCE,
            sequence_day=day,
            to_address=lead.email,
            subject=rendered.subject,
            body=rendered.text,
            status="sent" if success else ("bounced" if is_bounce(error) else "failed"),
            provider=PROVIDER,
            error_message=None if success else error,
            cost_cents=self.config.email_cost_cents if success else 0.0,
            sent_at=now,
            created_at=now,
        ))

        if not success:
            return False, error

        next_day = day + 1
        lead.sequence_day = next_day
        lead.emails_sent = (lead.emails_sent or 0) + 1
        lead.last_sent_at = now
        if next_day >= self.config.sequence_days:
            lead.next_send_at = None
        else:
            lead.next_send_at = now + day_to_delay(next_day, self.config)

        if lead.status == LeadStatus.NEW.value:
            try:
                apply_transition(lead, LeadStatus.CONTACTED, Actor.AUTOMATION, now)
            except InvalidTransition as e:
                logger.warning(f"⚠️ {e}")
        lead.updated_at = now
        return True, None

    def run_cycle(self, now: Optional[datetime] = None, lease_token: Optional[str] = None) -> CycleResult:
        now = now or datetime.utcnow()
        state = self.get_state()
        self.reset_daily_counter_if_needed(state, now)

        if state.is_paused:
            result = CycleResult(False, message=f"GENIUS paused: {state.pause_reason}")
            return self._finish_cycle(state, result, now)

        check = self.check_budget(state, trigger_auto_pause=True, now=now)
        if not check.can_send:
            logger.warning(f"⚠️ GENIUS budget check failed: {check.reason}")
            return self._finish_cycle(state, CycleResult(False, message=check.reason or "Budget limit reached"), now)

        remaining = max(0, self.config.daily_email_limit - check.budget.emails_sent_today)
        if remaining <= 0:
            result = CycleResult(False, message=f"Daily email limit reached ({self.config.daily_email_limit}/day)")
            return self._finish_cycle(state, result, now)

        leads = self.get_due_leads(now, min(self.config.batch_size, remaining))
        if not leads:
            return self._finish_cycle(state, CycleResult(True, message="No leads due for email"), now)

        self.db.commit()

        sent = 0
        errors = 0
        for lead in leads:
            per_send = self.check_budget(state, trigger_auto_pause=False, now=now)
            if not per_send.can_send:
                logger.warning(f"🚫 GENIUS hard limit reached mid-cycle after {sent} sends: {per_send.reason}")
                break

            if lease_token and sent + errors > 0 and not refresh_lease(self.db, LEASE_NAME, lease_token):
                logger.error(f"🔓 GENIUS lease lost after {sent} sends, stopping cycle")
                break

            if sent > 0 and self.config.send_stagger_seconds > 0:
                time.sleep(self.config.send_stagger_seconds)

            success, error = self.send_sequence_email(lead, now)
            if success:
                sent += 1
                logger.info(f"✅ GENIUS day {lead.sequence_day - 1} email sent to lead {lead.id}")
            else:
                errors += 1
                logger.error(f"❌ GENIUS send failed for lead {lead.id}: {error}")
            self.db.commit()

        result = CycleResult(True, sent, errors, f"Sent {sent} emails, {errors} errors")
        logger.info(f"🏁 GENIUS cycle complete: {sent} sent, {errors} errors")
        return self._finish_cycle(state, result, now)

    def run_cycle_locked(self, now: Optional[datetime] = None) -> CycleResult:
        """run_cycle under the ``genius_cycle`` lease; skips when another cycle holds it."""
        token = acquire_lease(self.db, LEASE_NAME)
        if not token:
            return CycleResult(False, message="Another GENIUS cycle is already running")
        try:
            return self.run_cycle(now, lease_token=token)
        finally:
            release_lease(self.db, LEASE_NAME, token)

    def _finish_cycle(self, state: GeniusEngineState, result: CycleResult, now: datetime) -> CycleResult:
        state.last_cycle_at = now
        state.last_cycle_message = result.message
        state.updated_at = now
        self.db.commit()
        return result

    # ---------------------------------------------------------
    # CONTROL
    # ---------------------------------------------------------
    def start(self, interval_minutes: Optional[int] = None) -> Dict:
        state = self.get_state()
        if state.is_running:
            return {"success": False, "message": "GENIUS engine already running"}

        interval = interval_minutes or self.config.cycle_minutes
        state.is_running = True
        state.is_paused = False
        state.pause_reason = ""
        state.cycle_minutes = interval
        state.updated_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"🚀 GENIUS engine started ({interval}min cycles)")
        return {"success": True, "message": f"GENIUS engine started with {interval}-minute cycles"}

    def stop(self) -> Dict:
        state = self.get_state()
        if not state.is_running:
            return {"success": False, "message": "GENIUS engine not running"}

        state.is_running = False
        state.threshold_pause_fired = False
        state.updated_at = datetime.utcnow()
        self.db.commit()
        logger.warning("🛑 GENIUS engine stopped")
        return {"success": True, "message": "GENIUS engine stopped"}

    def pause(self, reason: str, commit: bool = True) -> Dict:
        state = self.get_state()
        state.is_paused = True
        state.pause_reason = reason
        state.updated_at = datetime.utcnow()
        if commit:
            self.db.commit()
        logger.warning(f"⏸️ GENIUS engine paused: {reason}")
        return {"success": True, "message": f"GENIUS engine paused: {reason}"}

    def resume(self) -> Dict:
        state = self.get_state()
        if not state.is_paused:
            return {"success": False, "message": "GENIUS engine not paused"}

        state.is_paused = False
        state.pause_reason = ""
        state.updated_at = datetime.utcnow()
        self.db.commit()
        logger.info("▶️ GENIUS engine resumed")
        return {"success": True, "message": "GENIUS engine resumed"}

    # ---------------------------------------------------------
    # REPORTING
    # ---------------------------------------------------------
    def get_status(self, now: Optional[datetime] = None) -> Dict:
        now = now or datetime.utcnow()
        state = self.get_state()
        self.reset_daily_counter_if_needed(state, now)
        self.db.commit()

        budget = self.get_budget_status(now)
        return {
            "is_running": state.is_running,
            "is_paused": state.is_paused,
            "pause_reason": state.pause_reason or "",
            "threshold_pause_fired": state.threshold_pause_fired,
            "cycle_minutes": state.cycle_minutes,
            "last_cycle_at": state.last_cycle_at,
            "last_cycle_message": state.last_cycle_message,
            "emails_sent_today": budget.emails_sent_today,
            "daily_limit": self.config.daily_email_limit,
            "remaining_today": max(0, self.config.daily_email_limit - budget.emails_sent_today),
        }

    def _genius_leads(self):
        return self.db.query(Lead).filter(Lead.clinic_id.is_(None))

    def get_stats(self, now: Optional[datetime] = None) -> Dict:
        now = now or datetime.utcnow()
        days = self.config.sequence_days
        active_values = [s.value for s in SEQUENCE_ACTIVE_STATUSES]

        total = self._genius_leads().count()
        completed = self._genius_leads().filter(Lead.sequence_day >= days).count()
        active = self._genius_leads().filter(
            Lead.sequence_day < days,
            Lead.status.in_(active_values),
            Lead.marketing_opt_in.is_(True),
        ).count()

        by_day_rows = (
            self.db.query(Lead.sequence_day, func.count(Lead.id))
            .filter(
                Lead.clinic_id.is_(None),
                Lead.sequence_day < days,
                Lead.status.in_(active_values),
                Lead.marketing_opt_in.is_(True),
            )
            .group_by(Lead.sequence_day)
            .all()
        )

        genius_messages = self.db.query(OutboundMessage).filter(OutboundMessage.source == GENIUS_SOURCE)
        total_sent = genius_messages.filter(OutboundMessage.status == "sent").count()
        failed = genius_messages.filter(OutboundMessage.status == "failed").count()
        bounces = genius_messages.filter(OutboundMessage.status == "bounced").count()

        budget = self.get_budget_status(now)
        return {
            "leads": {
                "total": total,
                "active": active,
                "completed": completed,
                "halted": total - active - completed,
                "by_day": {day: count for day, count in by_day_rows},
            },
            "emails": {
                "total_sent": total_sent,
                "sent_today": budget.emails_sent_today,
                "failed": failed,
                "bounces": bounces,
            },
            "budget": {
                "emails_sent_this_month": budget.emails_sent_this_month,
                "estimated_cost_cents": round(budget.monthly_spend_cents, 2),
                "monthly_limit_cents": self.config.monthly_budget_cents,
                "percent_used": round(budget.monthly_percent_used * 100),
            },
        }

    def generate_daily_report(self, now: Optional[datetime] = None) -> Dict:
        now = now or datetime.utcnow()
        stats = self.get_stats(now)
        alerts = []

        if stats["budget"]["percent_used"] >= self.config.pause_threshold_percent:
            alerts.append(f"⚠️ Email budget at {stats['budget']['percent_used']}% - approaching monthly limit")

        total_sent = stats["emails"]["total_sent"]
        bounce_rate = (stats["emails"]["bounces"] / total_sent) * 100 if total_sent else 0.0
        if bounce_rate > 5:
            alerts.append(f"⚠️ Bounce rate {bounce_rate:.1f}% exceeds 5% threshold")

        day_start, day_end = _day_bounds(now)
        imported_today = self._genius_leads().filter(
            Lead.created_at >= day_start, Lead.created_at < day_end
        ).count()
        demos_booked = self.db.query(func.count(DemoBooking.id)).scalar() or 0

        return {
            "date": now.date().isoformat(),
            "leads": {"imported": imported_today, "total": stats["leads"]["total"]},
            "emails": {"sent": stats["emails"]["sent_today"], "bounce_rate": round(bounce_rate, 2)},
            "demos": {"booked": demos_booked},
            "budget": {
                "email_cost_cents": stats["budget"]["estimated_cost_cents"],
                "percent_of_monthly_limit": stats["budget"]["percent_used"],
            },
            "alerts": alerts,
        }

    def list_leads(self, page: int = 1, limit: int = 50) -> Tuple[List[Lead], int]:
        query = self._genius_leads()
        total = query.count()
        rows = query.order_by(Lead.created_at.desc(), Lead.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return rows, total

    def list_email_sends(self, page: int = 1, limit: int = 50) -> Tuple[List[OutboundMessage], int]:
        query = self.db.query(OutboundMessage).filter(OutboundMessage.source == GENIUS_SOURCE)
        total = query.count()
        rows = (
            query.order_by(OutboundMessage.sent_at.desc(), OutboundMessage.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def get_config(self) -> Dict:
        return asdict(self.config)

    # ---------------------------------------------------------
    # LEAD IMPORT
    # ---------------------------------------------------------
    def import_lead(self, data: Dict, now: Optional[datetime] = None) -> ImportResult:
        email = (data.get("email") or "").strip().lower()
        if not email or not EMAIL_REGEX.match(email):
            return ImportResult(False, error="Invalid email format")

        existing = self._genius_leads().filter(func.lower(Lead.email) == email).first()
        if existing:
            return ImportResult(True, lead_id=existing.id, existing=True)

        now = now or datetime.utcnow()
        lead = Lead(
            name=(data.get("dentist_name") or "").strip() or "Dr.",
            email=email,
            clinic_name=data.get("clinic_name"),
            city=data.get("city"),
            state=data.get("state"),
            phone=data.get("phone"),
            website=data.get("website"),
            source=data.get("source") or "genius_import",
            status=LeadStatus.NEW.value,
            sequence_day=0,
            marketing_opt_in=True,
            emails_sent=0,
            next_send_at=now + day_to_delay(0, self.config),
            created_at=now,
            updated_at=now,
        )
        self.db.add(lead)
        self.db.commit()
        self.db.refresh(lead)
        return ImportResult(True, lead_id=lead.id, existing=False)

    def bulk_import(self, rows: List[Dict], now: Optional[datetime] = None) -> BulkImportResult:
        result = BulkImportResult(total=len(rows))
        for row in rows:
            outcome = self.import_lead(row, now)
            if not outcome.success:
                result.failed += 1
                result.errors.append(f"{row.get('email')}: {outcome.error}")
            elif outcome.existing:
                result.duplicates += 1
            else:
                result.imported += 1

        logger.info(
            f"📥 GENIUS bulk import complete: {result.imported} imported, "
            f"{result.duplicates} duplicates, {result.failed} failed"
        )
        return result
