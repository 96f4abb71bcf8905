from app.models.lead import Lead
from app.schemas.chatbot import ChatRequest
from app.services.chatbot_service import ChatbotService


class EchoLLM:
    def chat(self, system_prompt, history, max_tokens=400):
        return "Sure"


def test_overview_is_admin_only(client, clinic_headers):
    assert client.get("/api/analytics", headers=clinic_headers).status_code == 403


def test_overview_counts(client, db, clinic, admin_headers):
    db.add_all([
        Lead(name="Dr. One", email="one@example.com", status="new", source="genius_import"),
        Lead(name="Dr. Two", email="two@example.com", status="replied", source="genius_import"),
        Lead(name="Pat", email="pat@example.com", status="won", source="website", clinic_id=clinic.id),
    ])
    db.commit()

    response = client.get("/api/analytics", params={"dateRange": "7d"}, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["totals"]["leads"] == 3
    assert body["totals"]["sales_leads"] == 2
    assert body["totals"]["clinics"] == 1
    assert body["totals"]["won"] == 1
    assert body["lead_status_breakdown"]["replied"] == 1
    assert body["lead_source_breakdown"] == {"genius_import": 2, "website": 1}
    assert body["kpis"]["new_leads"]["value"] == 3
    assert body["kpis"]["new_leads"]["trend"] == "up"
    assert len(body["leads_over_time"]) == 8
    assert sum(point["value"] for point in body["leads_over_time"]) == 3


def test_unknown_date_range_is_rejected(client, admin_headers):
    assert client.get("/api/analytics", params={"dateRange": "1y"}, headers=admin_headers).status_code == 422


def test_chatbot_analytics(client, db, admin_headers):
    service = ChatbotService(db, llm=EchoLLM())
    thread, _, _ = service.send_message(ChatRequest(message="Hi", visitor_email="doc@example.com"))
    service.send_message(ChatRequest(message="Pricing?", thread_id=thread.id))

    body = client.get("/api/analytics/chatbot", headers=admin_headers).json()

    assert body["total_conversations"] == 1
    assert body["sales_conversations"] == 1
    assert body["total_messages"] == 4
    assert body["user_messages"] == 2
    assert body["ai_messages"] == 2
    assert body["leads_captured"] == 1
    assert body["average_messages_per_conversation"] == 4.0
