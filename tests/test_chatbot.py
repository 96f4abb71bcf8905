from app.models.chatbot import ChatbotMessage, ChatbotThread
from app.models.lead import Lead
from app.schemas.chatbot import ChatRequest
from app.services.chatbot_service import FALLBACK_REPLIES, ChatbotService


class RecordingLLM:
    def __init__(self, reply="Happy to help!"):
        self.reply = reply
        self.calls = []

    def chat(self, system_prompt, history, max_tokens=400):
        self.calls.append((system_prompt, history))
        return self.reply


class BrokenLLM:
    def chat(self, *args, **kwargs):
        raise RuntimeError("upstream timeout")


def test_sales_chat_falls_back_without_llm_key(client, db):
    response = client.post("/api/chatbot/send", json={"message": "How much does it cost?"})

    assert response.status_code == 200
    body = response.json()
    assert body["reply"] == FALLBACK_REPLIES["sales"]
    assert body["lead_id"] is None

    roles = [m.role for m in db.query(ChatbotMessage).order_by(ChatbotMessage.id)]
    assert roles == ["user", "assistant"]


def test_conversation_history_is_sent_to_llm(db):
    llm = RecordingLLM()
    service = ChatbotService(db, llm=llm)

    thread, _, _ = service.send_message(ChatRequest(message="Hi"))
    service.send_message(ChatRequest(message="Tell me more", thread_id=thread.id))

    system_prompt, history = llm.calls[-1]
    assert "Sarah" in system_prompt
    assert [m["content"] for m in history] == ["Hi", "Happy to help!", "Tell me more"]


def test_llm_error_uses_fallback(db):
    _, reply, _ = ChatbotService(db, llm=BrokenLLM()).send_message(ChatRequest(message="Hello"))
    assert reply == FALLBACK_REPLIES["sales"]


def test_visitor_email_captures_sales_lead_once(db):
    service = ChatbotService(db, llm=RecordingLLM())

    thread, _, lead = service.send_message(
        ChatRequest(message="Send me info", visitor_email="Dr.Kim@Example.com", visitor_name="Dr. Kim")
    )
    assert lead.source == "chatbot"
    assert lead.email == "dr.kim@example.com"
    assert lead.clinic_id is None
    assert lead.next_send_at is not None

    service.send_message(ChatRequest(message="Again", visitor_email="dr.kim@example.com"))
    assert db.query(Lead).count() == 1
    assert thread.lead_id == lead.id


def test_patient_chat_uses_clinic_prompt_and_scope(db, clinic):
    llm = RecordingLLM()
    thread, _, lead = ChatbotService(db, llm=llm).send_message(
        ChatRequest(message="Do you do implants?", type="patient", clinic_id=clinic.id, visitor_email="pat@example.com")
    )

    assert "Bright Smiles" in llm.calls[0][0]
    assert thread.clinic_id == clinic.id
    assert lead.clinic_id == clinic.id
    assert lead.next_send_at is None


def test_patient_chat_needs_existing_clinic(client):
    response = client.post("/api/chatbot/send", json={"message": "Hi", "type": "patient", "clinic_id": 42})
    assert response.status_code == 400


def test_unknown_thread(client):
    response = client.post("/api/chatbot/send", json={"message": "Hi", "thread_id": 999})
    assert response.status_code == 404


def test_message_history_access(client, db, clinic, clinic_headers, admin_headers):
    sales_id = client.post("/api/chatbot/send", json={"message": "Hi"}).json()["thread_id"]
    patient_id = client.post(
        "/api/chatbot/send", json={"message": "Hi", "type": "patient", "clinic_id": clinic.id}
    ).json()["thread_id"]

    assert client.get(f"/api/chatbot/messages/{sales_id}", headers=clinic_headers).status_code == 403
    assert len(client.get(f"/api/chatbot/messages/{patient_id}", headers=clinic_headers).json()) == 2
    assert client.get(f"/api/chatbot/messages/{sales_id}", headers=admin_headers).status_code == 200

    threads = client.get(f"/api/chatbot/threads/clinic/{clinic.id}", headers=clinic_headers).json()
    assert [t["id"] for t in threads] == [patient_id]
    assert threads[0]["message_count"] == 2

    assert client.get("/api/chatbot/threads", headers=clinic_headers).status_code == 403
    all_threads = client.get("/api/chatbot/threads", params={"type": "sales"}, headers=admin_headers).json()
    assert [t["id"] for t in all_threads] == [sales_id]
    assert db.query(ChatbotThread).count() == 2
