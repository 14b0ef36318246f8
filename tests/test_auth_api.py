from funnel_cms import models
from funnel_cms.core.security import create_access_token, decode_access_token, verify_callback_secret
from funnel_cms.deps import get_current_user
from funnel_cms.main import app


def test_seeded_admin_can_log_in(anonymous_client):
    response = anonymous_client.post("/api/auth/login", json={"email": "ADMIN", "password": "admin123"})
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "admin"
    assert body["email"] == "admin"
    assert decode_access_token(body["access_token"])["sub"] == "admin"

    me = anonymous_client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "admin"


def test_login_rejects_bad_password(anonymous_client):
    response = anonymous_client.post("/api/auth/login", json={"email": "admin", "password": "wrong-pass"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}


def test_invalid_token_is_unauthorized(anonymous_client):
    response = anonymous_client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_admin_creates_users(client):
    created = client.post("/api/auth/users", json={"email": "Writer@Example.com", "password": "secret99"})
    assert created.status_code == 201
    assert created.json()["email"] == "writer@example.com"
    assert created.json()["role"] == "editor"

    again = client.post("/api/auth/users", json={"email": "writer@example.com", "password": "secret99"})
    assert again.status_code == 400
    assert again.json()["error"] == "Email already exists"


def test_editor_cannot_change_site_settings(client, admin_user):
    admin_user.role = models.UserRole.editor
    app.dependency_overrides[get_current_user] = lambda: admin_user
    response = client.put("/api/admin/site-settings/theme", json={"value": {}})
    assert response.status_code == 403
    assert response.json()["error"] == "Admin only"


def test_validation_errors_use_error_envelope(client):
    response = client.post("/api/admin/pages", json={"title": "No slug"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("slug")


def test_tokens_and_callback_secret():
    token = create_access_token("someone@example.com", "editor", expires_minutes=5)
    assert decode_access_token(token)["role"] == "editor"
    assert verify_callback_secret("test-callback-secret")
    assert not verify_callback_secret("nope")
    assert not verify_callback_secret(None)
