from datetime import datetime, timedelta

import pytest

from app.models.campaign import Campaign, CampaignLead
from app.models.lead import Lead
from app.models.message import OutboundMessage
from app.schemas.campaign import CreateCampaignRequest, GenerateDraftRequest
from app.services.campaign_service import CampaignService, InvalidCampaignTransition
from app.workers.campaign.campaign_worker import run_campaign_batch
from conftest import FakeEmailSender

NOW = datetime(2025, 6, 2, 10, 0)


def make_leads(db, clinic, count, **fields):
    leads = []
    for i in range(count):
        values = dict(name=f"Patient {i}", email=f"p{i}@example.com", phone=f"555-01{i:02d}", status="new", clinic_id=clinic.id)
        values.update(fields)
        leads.append(Lead(**values))
    db.add_all(leads)
    db.commit()
    return leads


def make_campaign(db, clinic, leads, **fields):
    values = dict(
        name="Spring cleaning",
        type="email",
        subject="Hi {{first_name}}",
        message="Book at {{booking_url}}",
        clinic_id=clinic.id,
        lead_ids=[lead.id for lead in leads],
    )
    values.update(fields)
    service = CampaignService(db)
    campaign = service.create_campaign(CreateCampaignRequest(**values))
    return service.set_status(campaign.id, "active")


def test_daily_limit_caps_each_tick(db, clinic, email_sender, text_sender):
    leads = make_leads(db, clinic, 5)
    campaign = make_campaign(db, clinic, leads, daily_limit=3)

    first = run_campaign_batch(db, email_sender, text_sender, NOW)
    assert first["sent"] == 3

    second = run_campaign_batch(db, email_sender, text_sender, NOW + timedelta(hours=1))
    assert second["sent"] == 0

    next_day = run_campaign_batch(db, email_sender, text_sender, NOW + timedelta(days=1))
    assert next_day["sent"] == 2

    db.refresh(campaign)
    assert campaign.total_sent == 5
    assert campaign.sent_today == 2
    assert {c["subject"] for c in email_sender.calls} == {"Hi Patient"}


def test_campaign_completes_when_queue_is_empty(db, clinic, email_sender, text_sender):
    leads = make_leads(db, clinic, 2)
    campaign = make_campaign(db, clinic, leads)

    run_campaign_batch(db, email_sender, text_sender, NOW)
    result = run_campaign_batch(db, email_sender, text_sender, NOW)

    assert result["completed_campaigns"] == 1
    db.refresh(campaign)
    assert campaign.status == "completed"


def test_opted_out_and_unreachable_leads_are_skipped(db, clinic, email_sender, text_sender):
    opted_out = make_leads(db, clinic, 1, marketing_opt_in=False)
    no_email = make_leads(db, clinic, 1, email=None)
    make_campaign(db, clinic, opted_out + no_email)

    result = run_campaign_batch(db, email_sender, text_sender, NOW)

    assert result["skipped"] == 2
    assert email_sender.calls == []
    reasons = sorted(cl.error_message for cl in db.query(CampaignLead))
    assert reasons == ["Lead opted out of marketing", "No email address found"]


def test_sms_campaign_skips_booked_leads(db, clinic, email_sender, text_sender):
    booked = make_leads(db, clinic, 1, status="demo_booked")
    fresh = make_leads(db, clinic, 1, email="fresh@example.com", phone="555-0999")
    make_campaign(db, clinic, booked + fresh, type="sms", subject=None, message="Hi {{first_name}}")

    result = run_campaign_batch(db, email_sender, text_sender, NOW)

    assert result == {"sent": 1, "failed": 0, "skipped": 1, "completed_campaigns": 0}
    assert text_sender.calls == [{"channel": "sms", "to": "555-0999", "body": "Hi Patient"}]


def test_failures_are_counted_and_logged(db, clinic, text_sender):
    leads = make_leads(db, clinic, 2)
    campaign = make_campaign(db, clinic, leads)
    sender = FakeEmailSender(fail_for={"p1@example.com"})

    result = run_campaign_batch(db, sender, text_sender, NOW)

    assert result["sent"] == 1 and result["failed"] == 1
    db.refresh(campaign)
    assert campaign.total_failed == 1
    statuses = sorted(m.status for m in db.query(OutboundMessage).filter(OutboundMessage.source == "campaign"))
    assert statuses == ["failed", "sent"]

    sent_lead = db.query(Lead).filter(Lead.email == "p0@example.com").one()
    assert sent_lead.status == "contacted"


def test_paused_campaign_sends_nothing(db, clinic, email_sender, text_sender):
    leads = make_leads(db, clinic, 1)
    campaign = make_campaign(db, clinic, leads)
    CampaignService(db).set_status(campaign.id, "paused")

    assert run_campaign_batch(db, email_sender, text_sender, NOW)["sent"] == 0


def test_status_transitions(db, clinic):
    service = CampaignService(db)
    campaign = service.create_campaign(CreateCampaignRequest(name="X", message="Hi", clinic_id=clinic.id))

    with pytest.raises(InvalidCampaignTransition):
        service.set_status(campaign.id, "completed")
    with pytest.raises(InvalidCampaignTransition):
        service.set_status(campaign.id, "running")

    assert service.set_status(campaign.id, "active").status == "active"


class FakeLLM:
    def __init__(self, reply):
        self.reply = reply

    def generate_outreach(self, system_prompt, user_context, max_tokens=300):
        return self.reply


def test_generate_draft_parses_json(db):
    llm = FakeLLM('{"subject": "Smile season", "message": " Hi {{first_name}}! "}')
    draft = CampaignService(db).generate_draft(GenerateDraftRequest(goal="Recall"), llm=llm)
    assert draft == {"subject": "Smile season", "message": "Hi {{first_name}}!"}


def test_generate_draft_falls_back_to_raw_text(db):
    draft = CampaignService(db).generate_draft(GenerateDraftRequest(type="sms", goal="Recall"), llm=FakeLLM("Plain text"))
    assert draft == {"subject": None, "message": "Plain text"}


def test_generate_draft_without_llm_key(client, clinic_headers):
    response = client.post("/api/campaigns/generate-draft", json={"goal": "Recall"}, headers=clinic_headers)
    assert response.status_code == 503


def test_campaign_api_flow(client, db, clinic, clinic_headers, other_clinic):
    own = make_leads(db, clinic, 1)
    foreign = make_leads(db, other_clinic, 1, email="other@example.com")

    denied = client.post(
        "/api/campaigns",
        json={"name": "Mixed", "message": "Hi", "clinic_id": clinic.id, "lead_ids": [own[0].id, foreign[0].id]},
        headers=clinic_headers,
    )
    assert denied.status_code == 403

    created = client.post(
        "/api/campaigns",
        json={"name": "Recall", "message": "Hi", "clinic_id": clinic.id, "lead_ids": [own[0].id]},
        headers=clinic_headers,
    )
    assert created.status_code == 201
    campaign_id = created.json()["id"]
    assert created.json()["total_leads"] == 1
    assert created.json()["daily_limit"] == 50

    started = client.post(f"/api/campaigns/{campaign_id}/start", headers=clinic_headers)
    assert started.json()["status"] == "active"
    assert client.post(f"/api/campaigns/{campaign_id}/start", headers=clinic_headers).status_code == 400

    detail = client.get(f"/api/campaigns/{campaign_id}", headers=clinic_headers).json()
    assert detail["stats"]["queued"] == 1

    export = client.get(f"/api/campaigns/{campaign_id}/export", headers=clinic_headers)
    assert export.headers["content-type"].startswith("text/csv")
    assert export.text.splitlines()[0] == "Name,Email,Phone,Clinic,Status,Sent At,Error"


def test_campaigns_of_other_clinics_are_hidden(client, db, clinic_headers, other_clinic):
    campaign = Campaign(name="Theirs", type="email", message="Hi", clinic_id=other_clinic.id, status="draft")
    db.add(campaign)
    db.commit()

    assert client.get("/api/campaigns", headers=clinic_headers).json() == []
    assert client.get(f"/api/campaigns/{campaign.id}", headers=clinic_headers).status_code == 404
