from app.models.clinic import Clinic, ClinicUser
from app.models.lead import Lead


def test_create_clinic_derives_slug_and_owner(client, db, clinic_user, clinic_headers):
    response = client.post("/api/clinics", json={"name": "Happy Teeth & Co."}, headers=clinic_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["slug"] == "happy-teeth-co"
    assert body["owner_id"] == clinic_user.id

    membership = db.query(ClinicUser).filter(ClinicUser.clinic_id == body["id"]).one()
    assert membership.user_id == clinic_user.id
    assert membership.role == "owner"


def test_duplicate_slug_conflicts(client, admin_headers, clinic):
    response = client.post("/api/clinics", json={"name": "Copycat", "slug": "bright-smiles"}, headers=admin_headers)
    assert response.status_code == 409


def test_invalid_slug_rejected(client, admin_headers):
    response = client.post("/api/clinics", json={"name": "Bad", "slug": "Bad Slug!"}, headers=admin_headers)
    # upper case is folded, spaces and punctuation are not
    assert response.status_code == 400


def test_rename_slug_to_taken_value(client, admin_headers, clinic, other_clinic):
    response = client.patch(f"/api/clinics/{other_clinic.id}", json={"slug": "bright-smiles"}, headers=admin_headers)
    assert response.status_code == 409


def test_public_slug_lookup(client, clinic):
    response = client.get("/api/clinics/slug/Bright-Smiles")
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Bright Smiles"
    assert "owner_id" not in body

    assert client.get("/api/clinics/slug/nowhere").status_code == 404


def test_clinic_user_sees_only_member_clinics(client, clinic_headers, clinic, other_clinic):
    listed = client.get("/api/clinics", headers=clinic_headers).json()
    assert [c["id"] for c in listed] == [clinic.id]

    assert client.get(f"/api/clinics/{other_clinic.id}", headers=clinic_headers).status_code == 403
    assert client.get("/api/clinics/9999", headers=clinic_headers).status_code == 404


def test_delete_requires_admin(client, clinic_headers, clinic):
    assert client.delete(f"/api/clinics/{clinic.id}", headers=clinic_headers).status_code == 403


def test_delete_referenced_clinic_conflicts(client, db, admin_headers, clinic):
    db.add(Lead(name="Patient", clinic_id=clinic.id, status="new"))
    db.commit()

    response = client.delete(f"/api/clinics/{clinic.id}", headers=admin_headers)
    assert response.status_code == 409
    assert "1 leads" in response.json()["detail"]


def test_delete_unreferenced_clinic(client, db, admin_headers, other_clinic):
    response = client.delete(f"/api/clinics/{other_clinic.id}", headers=admin_headers)
    assert response.status_code == 200

    db.expire_all()
    assert db.query(Clinic).filter(Clinic.id == other_clinic.id).first() is None
    assert client.delete(f"/api/clinics/{other_clinic.id}", headers=admin_headers).status_code == 404


def test_clinic_analytics(client, db, clinic_headers, clinic):
    db.add_all([
        Lead(name="A", clinic_id=clinic.id, status="won"),
        Lead(name="B", clinic_id=clinic.id, status="new"),
        Lead(name="C", clinic_id=clinic.id, status="new"),
        Lead(name="D", clinic_id=clinic.id, status="lost"),
    ])
    db.commit()

    response = client.get(f"/api/clinics/{clinic.id}/analytics", headers=clinic_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total_leads"] == 4
    assert body["lead_status_breakdown"]["new"] == 2
    assert body["conversion_rate"] == 25.0
    assert body["bookings"]["total"] == 0


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_logo_upload_sets_logo_url(client, db, clinic_headers, clinic):
    res = client.post(
        f"/api/clinics/{clinic.id}/logo",
        files={"logo": ("logo.png", PNG_BYTES, "image/png")},
        headers=clinic_headers,
    )

    assert res.status_code == 200
    logo_url = res.json()["logo_url"]
    assert logo_url.startswith(f"/uploads/clinic-{clinic.id}-")
    assert logo_url.endswith(".png")

    served = client.get(logo_url)
    assert served.status_code == 200
    assert served.content == PNG_BYTES


def test_logo_upload_replaces_previous_file(client, clinic_headers, clinic):
    first = client.post(
        f"/api/clinics/{clinic.id}/logo", files={"logo": ("a.png", PNG_BYTES, "image/png")}, headers=clinic_headers,
    ).json()["logo_url"]
    second = client.post(
        f"/api/clinics/{clinic.id}/logo", files={"logo": ("b.jpg", PNG_BYTES, "image/jpeg")}, headers=clinic_headers,
    ).json()["logo_url"]

    assert first != second
    assert client.get(first).status_code == 404


def test_logo_upload_rejects_non_images(client, clinic_headers, clinic):
    res = client.post(
        f"/api/clinics/{clinic.id}/logo",
        files={"logo": ("notes.txt", b"hello", "text/plain")},
        headers=clinic_headers,
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "Only image files are allowed"


def test_logo_upload_rejects_oversized_files(client, clinic_headers, clinic):
    res = client.post(
        f"/api/clinics/{clinic.id}/logo",
        files={"logo": ("big.png", b"\x00" * 2048, "image/png")},
        headers=clinic_headers,
    )
    assert res.status_code == 400
    assert "exceeds" in res.json()["detail"]


def test_logo_upload_for_foreign_clinic_is_forbidden(client, clinic_headers, other_clinic):
    res = client.post(
        f"/api/clinics/{other_clinic.id}/logo",
        files={"logo": ("logo.png", PNG_BYTES, "image/png")},
        headers=clinic_headers,
    )
    assert res.status_code == 403
