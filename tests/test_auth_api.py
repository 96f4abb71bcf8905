from app.models.clinic import Clinic, ClinicUser
from app.models.user import User
from conftest import TEST_PASSWORD


def test_signup_creates_clinic_owner(client, db):
    response = client.post(
        "/api/auth/signup",
        json={"email": "Owner@Example.com", "password": "long-enough", "clinic_name": "Pearl Dental"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "owner@example.com"
    assert body["role"] == "clinic"

    clinic = db.query(Clinic).one()
    assert clinic.slug == "pearl-dental"
    assert clinic.owner_id == body["id"]
    assert db.query(ClinicUser).filter(ClinicUser.user_id == body["id"]).count() == 1


def test_signup_rejects_duplicate_email(client, clinic_user):
    response = client.post("/api/auth/signup", json={"email": "owner@example.com", "password": "long-enough"})
    assert response.status_code == 400


def test_signup_requires_strong_enough_password(client):
    response = client.post("/api/auth/signup", json={"email": "x@example.com", "password": "short"})
    assert response.status_code == 422


def test_login_returns_token_and_cookie(client, db, clinic_user):
    response = client.post("/api/auth/login", json={"email": "owner@example.com", "password": TEST_PASSWORD})

    assert response.status_code == 200
    token = response.json()["access_token"]
    assert "access_token" in response.cookies

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == "owner@example.com"

    db.expire_all()
    assert db.query(User).filter(User.id == clinic_user.id).one().last_login is not None


def test_login_with_wrong_password(client, clinic_user):
    response = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "wrong-pass"})
    assert response.status_code == 400


def test_disabled_user_cannot_login_or_use_token(client, db, clinic_user, clinic_headers):
    clinic_user.is_active = False
    db.commit()

    login = client.post("/api/auth/login", json={"email": "owner@example.com", "password": TEST_PASSWORD})
    assert login.status_code == 403
    assert client.get("/api/auth/me", headers=clinic_headers).status_code == 401


def test_garbage_token(client):
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_users_admin_only(client, clinic_headers, admin_headers):
    assert client.get("/api/users", headers=clinic_headers).status_code == 403
    assert len(client.get("/api/users", headers=admin_headers).json()) == 2


def test_admin_creates_clinic_member(client, db, admin_headers, clinic):
    response = client.post(
        "/api/users",
        json={"email": "staff@example.com", "password": "long-enough", "clinic_id": clinic.id},
        headers=admin_headers,
    )
    assert response.status_code == 201

    membership = db.query(ClinicUser).filter(ClinicUser.user_id == response.json()["id"]).one()
    assert membership.clinic_id == clinic.id
    assert membership.role == "admin"

    unknown = client.post(
        "/api/users",
        json={"email": "ghost@example.com", "password": "long-enough", "clinic_id": 999},
        headers=admin_headers,
    )
    assert unknown.status_code == 404


def test_admin_deactivates_user(client, admin_headers, clinic_user):
    response = client.patch(f"/api/users/{clinic_user.id}", json={"is_active": False}, headers=admin_headers)
    assert response.json()["is_active"] is False
