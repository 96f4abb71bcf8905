"""
GENIUS drip behaviour: daily/monthly caps, the one-shot threshold pause,
sequence progression and lead import.
"""
from datetime import datetime, timedelta

import pytest

from app.core.locks import acquire_lease
from app.models.clinic import Clinic
from app.models.job_lease import JobLease
from app.models.lead import Lead
from app.models.message import OutboundMessage
from app.services.genius_engine import LEASE_NAME, GeniusConfig, GeniusEngine
from app.services.lead_status import Actor, apply_transition
from app.services.template_catalog import get_email_template
from conftest import FakeEmailSender

NOW = datetime(2025, 3, 15, 12, 0)


def make_config(**overrides):
    values = dict(
        daily_email_limit=10,
        monthly_budget_cents=10000,
        email_cost_cents=0.4,
        pause_threshold_percent=70,
        batch_size=50,
        send_stagger_seconds=0,
        demo_link="https://demo.example.com",
    )
    values.update(overrides)
    return GeniusConfig(**values)


def add_lead(db, email, **fields):
    values = dict(
        name="Dr. Test",
        email=email,
        status="new",
        sequence_day=0,
        marketing_opt_in=True,
        emails_sent=0,
        next_send_at=NOW,
        created_at=NOW - timedelta(days=1),
    )
    values.update(fields)
    lead = Lead(**values)
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return lead


def add_sent_messages(db, count, sent_at):
    for _ in range(count):
        db.add(OutboundMessage(channel="email", source="genius", status="sent", cost_cents=0.4, sent_at=sent_at))
    db.commit()


@pytest.fixture
def sender():
    return FakeEmailSender()


def test_day_zero_goes_out_immediately_then_waits_a_day(db, sender):
    lead = add_lead(db, "first@example.com")
    engine = GeniusEngine(db, make_config(), sender)

    result = engine.run_cycle(NOW)

    assert result.success and result.emails_sent == 1
    db.refresh(lead)
    assert lead.sequence_day == 1
    assert lead.status == "contacted"
    assert lead.contacted_at == NOW
    assert lead.next_send_at == NOW + timedelta(hours=24)
    assert sender.calls[0]["subject"] == "Your clinic is losing 30-50 patients every month"

    assert engine.run_cycle(NOW + timedelta(hours=23)).emails_sent == 0
    assert engine.run_cycle(NOW + timedelta(hours=24)).emails_sent == 1
    db.refresh(lead)
    assert lead.sequence_day == 2


def test_last_day_completes_sequence(db, sender):
    lead = add_lead(db, "last@example.com", status="contacted", sequence_day=6)
    GeniusEngine(db, make_config(), sender).run_cycle(NOW)

    db.refresh(lead)
    assert lead.sequence_day == 7
    assert lead.next_send_at is None
    assert GeniusEngine(db, make_config(), sender).run_cycle(NOW + timedelta(days=2)).emails_sent == 0


def test_automation_never_changes_status_beyond_contacted(db, sender):
    warm = add_lead(db, "warm@example.com", status="warm", sequence_day=2)
    GeniusEngine(db, make_config(), sender).run_cycle(NOW)

    db.refresh(warm)
    assert warm.status == "warm"
    assert warm.sequence_day == 3


def test_manual_reopen_resumes_at_current_sequence_day(db, sender):
    lead = add_lead(db, "reopen@example.com", status="contacted", sequence_day=3, emails_sent=3)
    engine = GeniusEngine(db, make_config(), sender)

    apply_transition(lead, "won", Actor.MANUAL, NOW)
    db.commit()
    assert engine.run_cycle(NOW).emails_sent == 0

    apply_transition(lead, "new", Actor.MANUAL, NOW)
    db.commit()
    assert engine.run_cycle(NOW + timedelta(minutes=10)).emails_sent == 1

    db.refresh(lead)
    assert sender.calls[0]["subject"] == get_email_template(3).subject
    assert lead.sequence_day == 4
    assert lead.status == "contacted"


def test_only_eligible_sales_leads_are_due(db, sender):
    clinic = Clinic(name="Patient Clinic", slug="patient-clinic")
    db.add(clinic)
    db.commit()

    add_lead(db, "replied@example.com", status="replied")
    add_lead(db, "optout@example.com", marketing_opt_in=False)
    add_lead(db, "patient@example.com", clinic_id=clinic.id)
    add_lead(db, "later@example.com", next_send_at=NOW + timedelta(hours=1))
    due = add_lead(db, "due@example.com")

    result = GeniusEngine(db, make_config(), sender).run_cycle(NOW)

    assert result.emails_sent == 1
    assert [c["to"] for c in sender.calls] == [due.email]


def test_failed_send_leaves_lead_due(db):
    lead = add_lead(db, "bounce@example.com")
    sender = FakeEmailSender(fail_for={"bounce@example.com"})

    result = GeniusEngine(db, make_config(), sender).run_cycle(NOW)

    assert result.errors == 1 and result.emails_sent == 0
    db.refresh(lead)
    assert lead.sequence_day == 0
    assert lead.status == "new"
    assert lead.next_send_at == NOW

    failed = db.query(OutboundMessage).filter(OutboundMessage.lead_id == lead.id).one()
    assert failed.status == "failed"
    assert failed.error_message == "Provider rejected message"
    assert failed.cost_cents == 0


def test_sender_exception_is_recorded_as_failure(db):
    add_lead(db, "boom@example.com")

    def exploding_sender(*args):
        raise RuntimeError("connection reset")

    result = GeniusEngine(db, make_config(), exploding_sender).run_cycle(NOW)
    assert result.errors == 1
    assert db.query(OutboundMessage).one().error_message == "connection reset"


def test_dead_address_is_logged_as_bounce(db):
    lead = add_lead(db, "gone@example.com")

    def rejecting_sender(*args):
        return False, "RECIPIENT_NOT_FOUND: {'message': 'mailbox unavailable'}"

    engine = GeniusEngine(db, make_config(), rejecting_sender)
    assert engine.run_cycle(NOW).errors == 1

    logged = db.query(OutboundMessage).filter(OutboundMessage.lead_id == lead.id).one()
    assert logged.status == "bounced"
    assert logged.provider == "zeptomail"


def test_daily_hard_limit_blocks_sends(db, sender):
    add_sent_messages(db, 10, NOW - timedelta(hours=1))
    add_lead(db, "blocked@example.com")

    result = GeniusEngine(db, make_config(pause_threshold_percent=100), sender).run_cycle(NOW)

    assert result.success is False
    assert result.message.startswith("HARD LIMIT: Daily limit reached 10/10")
    assert sender.calls == []


def test_batch_never_exceeds_remaining_daily_allowance(db, sender):
    add_sent_messages(db, 8, NOW - timedelta(hours=1))
    for i in range(5):
        add_lead(db, f"lead{i}@example.com")

    result = GeniusEngine(db, make_config(pause_threshold_percent=100), sender).run_cycle(NOW)

    assert result.emails_sent == 2
    assert len(sender.calls) == 2


def test_yesterdays_sends_do_not_count_toward_today(db, sender):
    add_sent_messages(db, 10, NOW - timedelta(days=1))
    add_lead(db, "today@example.com")

    result = GeniusEngine(db, make_config(pause_threshold_percent=100), sender).run_cycle(NOW)
    assert result.emails_sent == 1


def test_monthly_budget_hard_limit(db, sender):
    # 5 emails at 0.4c exhaust a 2c budget
    add_sent_messages(db, 5, NOW - timedelta(days=3))
    add_lead(db, "monthly@example.com")
    config = make_config(daily_email_limit=1000, monthly_budget_cents=2, pause_threshold_percent=100)

    result = GeniusEngine(db, config, sender).run_cycle(NOW)

    assert result.success is False
    assert "Monthly budget exhausted" in result.message


def test_threshold_pauses_once_then_resume_runs_to_hard_limit(db, sender):
    for i in range(12):
        add_lead(db, f"dentist{i}@example.com")
    engine = GeniusEngine(db, make_config(batch_size=4), sender)

    assert engine.run_cycle(NOW).emails_sent == 4
    assert engine.run_cycle(NOW).emails_sent == 4

    # 8/10 sent: crossing 70% pauses the engine instead of sending
    paused = engine.run_cycle(NOW)
    assert paused.success is False
    assert "auto-paused at 70% threshold" in paused.message
    state = engine.get_state()
    assert state.is_paused is True
    assert state.threshold_pause_fired is True
    assert state.pause_reason.startswith("Daily budget at 80%")

    assert engine.run_cycle(NOW).emails_sent == 0

    assert engine.resume()["success"] is True
    resumed = engine.run_cycle(NOW)
    assert resumed.emails_sent == 2
    assert engine.get_state().is_paused is False

    final = engine.run_cycle(NOW)
    assert final.message.startswith("HARD LIMIT")
    assert len(sender.calls) == 10


def test_new_day_rearms_threshold_pause(db, sender):
    engine = GeniusEngine(db, make_config(), sender)
    state = engine.get_state()
    state.threshold_pause_fired = True
    state.counter_date = (NOW - timedelta(days=1)).date()
    db.commit()
    add_sent_messages(db, 8, NOW - timedelta(hours=1))
    add_lead(db, "rearm@example.com")

    result = engine.run_cycle(NOW)

    assert result.success is False
    assert engine.get_state().is_paused is True
    assert sender.calls == []


def test_paused_engine_sends_nothing(db, sender):
    add_lead(db, "waiting@example.com")
    engine = GeniusEngine(db, make_config(), sender)
    engine.pause("Manual pause")

    result = engine.run_cycle(NOW)

    assert result.success is False
    assert result.message == "GENIUS paused: Manual pause"
    assert sender.calls == []


def test_start_stop_controls(db, sender):
    engine = GeniusEngine(db, make_config(), sender)

    assert engine.start(15)["success"] is True
    assert engine.start()["success"] is False
    assert engine.get_state().cycle_minutes == 15

    state = engine.get_state()
    state.threshold_pause_fired = True
    db.commit()

    assert engine.stop()["success"] is True
    assert engine.get_state().threshold_pause_fired is False
    assert engine.stop()["success"] is False
    assert engine.resume()["success"] is False


def test_locked_cycle_skips_when_lease_is_held(db, sender):
    add_lead(db, "locked@example.com")
    assert acquire_lease(db, LEASE_NAME)

    result = GeniusEngine(db, make_config(), sender).run_cycle_locked(NOW)

    assert result.success is False
    assert result.message == "Another GENIUS cycle is already running"
    assert sender.calls == []


def test_refused_cycle_leaves_running_lease_in_place(db, sender):
    token = acquire_lease(db, LEASE_NAME)
    GeniusEngine(db, make_config(), sender).run_cycle_locked(NOW)

    db.expire_all()
    assert db.query(JobLease).one().owner == token


def test_locked_cycle_releases_lease(db, sender):
    engine = GeniusEngine(db, make_config(), sender)
    engine.run_cycle_locked(NOW)
    assert acquire_lease(db, LEASE_NAME)


def test_cycle_stops_when_lease_is_taken_over(db, sender):
    for i in range(3):
        add_lead(db, f"lead{i}@example.com")
    token = acquire_lease(db, LEASE_NAME)
    db.query(JobLease).update({"owner": "other-replica"})
    db.commit()

    result = GeniusEngine(db, make_config(), sender).run_cycle(NOW, lease_token=token)

    assert result.emails_sent == 1
    assert len(sender.calls) == 1


def test_import_lead_dedupes_case_insensitively(db):
    engine = GeniusEngine(db, make_config())

    first = engine.import_lead({"email": "Dr.Smith@Example.com", "dentist_name": "Dr. Smith"}, NOW)
    second = engine.import_lead({"email": "dr.smith@example.com"}, NOW)

    assert first.success and not first.existing
    assert second.success and second.existing
    assert second.lead_id == first.lead_id

    lead = db.query(Lead).filter(Lead.id == first.lead_id).one()
    assert lead.email == "dr.smith@example.com"
    assert lead.next_send_at == NOW
    assert lead.source == "genius_import"


def test_import_lead_rejects_bad_email(db):
    result = GeniusEngine(db, make_config()).import_lead({"email": "not-an-email"})
    assert result.success is False
    assert result.error == "Invalid email format"


def test_bulk_import_counts(db):
    rows = [
        {"email": "a@example.com"},
        {"email": "b@example.com"},
        {"email": "A@example.com"},
        {"email": "broken"},
    ]
    result = GeniusEngine(db, make_config()).bulk_import(rows, NOW)

    assert (result.total, result.imported, result.duplicates, result.failed) == (4, 2, 1, 1)
    assert result.errors == ["broken: Invalid email format"]


def test_stats_and_report(db, sender):
    add_lead(db, "one@example.com")
    add_lead(db, "done@example.com", status="contacted", sequence_day=7, next_send_at=None)
    engine = GeniusEngine(db, make_config(), sender)
    engine.run_cycle(NOW)

    stats = engine.get_stats(NOW)
    assert stats["leads"]["total"] == 2
    assert stats["leads"]["completed"] == 1
    assert stats["leads"]["active"] == 1
    assert stats["emails"]["sent_today"] == 1
    assert stats["budget"]["estimated_cost_cents"] == 0.4

    report = engine.generate_daily_report(NOW)
    assert report["date"] == "2025-03-15"
    assert report["emails"]["sent"] == 1
    assert report["alerts"] == []
