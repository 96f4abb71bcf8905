from app.models.lead import Lead


def test_leads_require_login(client):
    assert client.get("/api/leads").status_code == 401


def test_admin_creates_sales_lead(client, admin_headers):
    response = client.post(
        "/api/leads",
        json={"name": "Dr. Rivera", "email": "Rivera@Example.com", "clinic_name": "Rivera Dental"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "rivera@example.com"
    assert body["status"] == "new"
    assert body["source"] == "manual"
    assert body["clinic_id"] is None
    assert body["next_send_at"] is not None


def test_clinic_user_must_pick_own_clinic(client, clinic_headers, clinic, other_clinic):
    missing = client.post("/api/leads", json={"name": "Pat"}, headers=clinic_headers)
    assert missing.status_code == 400

    foreign = client.post("/api/leads", json={"name": "Pat", "clinic_id": other_clinic.id}, headers=clinic_headers)
    assert foreign.status_code == 403

    own = client.post("/api/leads", json={"name": "Pat", "clinic_id": clinic.id}, headers=clinic_headers)
    assert own.status_code == 201
    assert own.json()["next_send_at"] is None


def test_create_lead_with_invalid_status(client, admin_headers):
    response = client.post("/api/leads", json={"name": "X", "status": "booked"}, headers=admin_headers)
    assert response.status_code == 400


def test_clinic_user_only_sees_own_leads(client, db, clinic_headers, clinic, other_clinic):
    db.add_all([
        Lead(name="Mine", clinic_id=clinic.id, status="new"),
        Lead(name="Theirs", clinic_id=other_clinic.id, status="new"),
        Lead(name="Sales", clinic_id=None, status="new"),
    ])
    db.commit()

    response = client.get("/api/leads", headers=clinic_headers)
    assert response.status_code == 200
    assert [lead["name"] for lead in response.json()["data"]] == ["Mine"]

    theirs = db.query(Lead).filter(Lead.name == "Theirs").one()
    assert client.get(f"/api/leads/{theirs.id}", headers=clinic_headers).status_code == 404


def test_list_filters_by_status(client, db, admin_headers):
    db.add_all([Lead(name="A", status="warm"), Lead(name="B", status="new")])
    db.commit()

    response = client.get("/api/leads", params={"status": "warm"}, headers=admin_headers)
    assert response.json()["total"] == 1

    bad = client.get("/api/leads", params={"status": "cold"}, headers=admin_headers)
    assert bad.status_code == 400


def test_status_update_allows_manual_moves(client, db, admin_headers):
    lead = Lead(name="Dr. Back", status="won")
    db.add(lead)
    db.commit()

    response = client.patch(f"/api/leads/{lead.id}/status", json={"status": "replied"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "replied"
    assert response.json()["replied_at"] is not None

    invalid = client.patch(f"/api/leads/{lead.id}/status", json={"status": "maybe"}, headers=admin_headers)
    assert invalid.status_code == 400


def test_kpis_count_by_status(client, db, admin_headers):
    db.add_all([Lead(name="A", status="new"), Lead(name="B", status="new"), Lead(name="C", status="won")])
    db.commit()

    kpis = client.get("/api/leads/kpis", headers=admin_headers).json()
    assert kpis["total_leads"] == 3
    assert kpis["new_leads"] == 2
    assert kpis["won_leads"] == 1
    assert kpis["lost_leads"] == 0


def test_csv_import_reports_bad_rows_and_keeps_good_ones(client, db, admin_headers):
    csv_body = (
        "Full Name,E-mail,Practice,Phone\n"
        "Dr. Good,good@example.com,Good Dental,555-0100\n"
        ",noname@example.com,Nameless,\n"
        "Dr. Typo,not-an-email,Typo Dental,\n"
        "Dr. Also Good,,Also Dental,555-0101\n"
    )
    response = client.post(
        "/api/leads/import/csv",
        files={"file": ("leads.csv", csv_body.encode(), "text/csv")},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 4
    assert body["imported"] == 2
    assert body["failed"] == 2
    assert [e["row"] for e in body["errors"]] == [2, 3]
    assert body["errors"][0]["error"] == "Missing required column: name"

    leads = db.query(Lead).order_by(Lead.id).all()
    assert [l.name for l in leads] == ["Dr. Good", "Dr. Also Good"]
    assert all(l.source == "csv_import" for l in leads)
    assert leads[0].clinic_name == "Good Dental"


def test_csv_import_for_clinic(client, db, clinic_headers, clinic):
    response = client.post(
        "/api/leads/import/csv",
        files={"file": ("patients.csv", b"name,email\nAna,ana@example.com\n", "text/csv")},
        data={"clinic_id": str(clinic.id)},
        headers=clinic_headers,
    )
    assert response.status_code == 200
    assert db.query(Lead).one().clinic_id == clinic.id


def test_csv_import_needs_name_column(client, admin_headers):
    response = client.post(
        "/api/leads/import/csv",
        files={"file": ("leads.csv", b"email\nx@example.com\n", "text/csv")},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_csv_import_rejects_empty_file(client, admin_headers):
    response = client.post(
        "/api/leads/import/csv",
        files={"file": ("leads.csv", b"", "text/csv")},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_json_import_validates_status(client, admin_headers):
    response = client.post(
        "/api/leads/import",
        json={"leads": [{"Name": "Dr. A", "Status": "warm"}, {"Name": "Dr. B", "Status": "hot"}]},
        headers=admin_headers,
    )
    body = response.json()
    assert body["imported"] == 1
    assert body["errors"][0]["row"] == 2
