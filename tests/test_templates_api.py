from app.core.config import settings


def test_templates_need_login(client):
    assert client.get("/api/templates").status_code == 401


def test_full_catalog(client, clinic_headers):
    body = client.get("/api/templates", headers=clinic_headers).json()
    assert [t["day"] for t in body["email"]] == list(range(7))
    assert len(body["messages"]) == 10


def test_channel_filter(client, clinic_headers):
    emails = client.get("/api/templates", params={"channel": "email"}, headers=clinic_headers).json()
    assert emails["messages"] == []
    assert len(emails["email"]) == 7

    whatsapp = client.get("/api/templates", params={"channel": "whatsapp"}, headers=clinic_headers).json()
    assert whatsapp["email"] == []
    assert {t["channel"] for t in whatsapp["messages"]} == {"whatsapp"}


def test_email_template_lookup(client, clinic_headers):
    assert client.get("/api/templates/email/0", headers=clinic_headers).json()["day"] == 0
    assert client.get("/api/templates/email/9", headers=clinic_headers).status_code == 404


def test_email_preview(client, clinic_headers):
    response = client.post(
        "/api/templates/email/0/preview", json={"data": {"name": "Dr. <Lee>"}}, headers=clinic_headers
    )

    body = response.json()
    assert body["id"] == "email_day_0"
    assert "Dr. <Lee>" in body["text"]
    assert settings.DEMO_LINK in body["text"]
    assert "Dr. &lt;Lee&gt;" in body["html"]


def test_message_preview(client, clinic_headers):
    response = client.post(
        "/api/templates/sms_instant_confirm/preview",
        json={"data": {"first_name": "Ana", "clinic_name": "Bright Smiles", "booking_url": "https://x.test/b"}},
        headers=clinic_headers,
    )

    body = response.json()
    assert body["id"] == "sms_instant_confirm"
    assert body["text"].startswith("Hi Ana! Thanks for reaching out to Bright Smiles.")
    assert body["text"].endswith("https://x.test/b")


def test_unknown_message_template(client, clinic_headers):
    assert client.get("/api/templates/sms_nope", headers=clinic_headers).status_code == 404
    assert client.post("/api/templates/sms_nope/preview", json={}, headers=clinic_headers).status_code == 404
