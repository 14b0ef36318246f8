import pytest

from funnel_cms.core import ai_service, presets


@pytest.fixture()
def ai_reply(monkeypatch):
    calls = []
    reply = {}

    def fake_generate_json(system_prompt, user_text, *, temperature=None, max_tokens=None):
        calls.append({"system": system_prompt, "temperature": temperature, "max_tokens": max_tokens})
        return dict(reply)

    monkeypatch.setattr(ai_service, "is_enabled", lambda: True)
    monkeypatch.setattr(ai_service, "generate_json", fake_generate_json)
    return reply, calls


def test_normalize_site_preset_fills_defaults():
    preset = presets.normalize_preset(
        presets.SITE,
        {
            "primary_color": "#7C3AED",
            "secondary_color": "#fa0",
            "theme": "sepia",
            "heading_font": "comic-sans",
            "body_font": "lora",
            "dots_enabled": True,
            "wave_gradient_enabled": 1,
            "name": '"Electric Dreams"',
        },
    )
    assert preset == {
        "primary_color": "#7c3aed",
        "secondary_color": "#ffaa00",
        "theme": "dark",
        "heading_font": "inter",
        "body_font": "lora",
        "dots_enabled": False,
        "wave_gradient_enabled": True,
        "noise_texture_enabled": False,
        "name": "Electric Dreams",
    }


def test_normalize_preset_rejects_bad_colors():
    with pytest.raises(presets.PresetError, match="No preset"):
        presets.normalize_preset(presets.ADMIN, {})
    with pytest.raises(presets.PresetError, match="Missing required color fields"):
        presets.normalize_preset(presets.WEBAPP, {"primary_color": "#123456", "secondary_color": "#654321"})
    with pytest.raises(presets.PresetError, match="Invalid color format"):
        presets.normalize_preset(presets.ADMIN, {"primary_color": "blue", "secondary_color": "#654321"})


def test_fenced_json_reply_is_parsed():
    assert ai_service._parse_json_text('```json\n{"name": "Calm"}\n```') == {"name": "Calm"}
    assert ai_service._parse_json_text("Here you go: {\"name\": \"Calm\"} enjoy") == {"name": "Calm"}
    assert ai_service._parse_json_text("[1, 2]") == {}


def test_generate_preset_requires_key(client, monkeypatch):
    monkeypatch.setattr(ai_service, "is_enabled", lambda: False)
    response = client.post("/api/admin/ai/generate-preset")
    assert response.status_code == 503
    assert response.json() == {"error": "OpenRouter API key not configured"}


def test_site_preset_updates_public_theme(client, ai_reply):
    reply, calls = ai_reply
    reply.update(primary_color="#0D9488", secondary_color="#F97316", theme="light", heading_font="raleway", name="Ocean Ember")
    client.put("/api/admin/site-settings/theme", json={"value": {"muted": "0 0% 100%"}})

    response = client.post("/api/admin/ai/generate-preset")
    assert response.status_code == 200
    body = response.json()
    assert body["primary_color"] == "#0d9488"
    assert body["heading_font"] == "raleway"
    assert body["body_font"] == "inter"
    assert calls[0]["temperature"] == presets.SITE.temperature
    assert "raleway" in calls[0]["system"]

    theme = client.get("/api/admin/site-settings").json()["theme"]
    assert theme["primary"] == "#0d9488"
    assert theme["secondary"] == "#f97316"
    assert theme["muted"] == "0 0% 100%"
    assert theme["preset_name"] == "Ocean Ember"


def test_webapp_and_admin_presets_nest_under_their_name(client, ai_reply):
    reply, _ = ai_reply
    reply.update(primary_color="#4F46E5", accent_color="#F59E0B", name="Indigo Amber")
    webapp = client.post("/api/admin/ai/generate-webapp-preset")
    assert webapp.status_code == 200
    assert webapp.json() == {"primary_color": "#4f46e5", "accent_color": "#f59e0b", "name": "Indigo Amber"}

    reply.clear()
    reply.update(primary_color="#991B1B", secondary_color="#065F46")
    admin = client.post("/api/admin/ai/generate-admin-preset")
    assert admin.json()["name"] == presets.DEFAULT_NAME

    theme = client.get("/api/admin/site-settings").json()["theme"]
    assert theme["webapp"]["accent_color"] == "#f59e0b"
    assert theme["admin"]["primary_color"] == "#991b1b"
    assert "primary" not in theme


def test_invalid_reply_is_a_server_error(client, ai_reply):
    reply, _ = ai_reply
    reply.update(primary_color="#12345", secondary_color="#654321")
    response = client.post("/api/admin/ai/generate-admin-preset")
    assert response.status_code == 500
    assert response.json()["error"] == "Invalid color format"
    assert "theme" not in client.get("/api/admin/site-settings").json()


def test_upstream_failure_is_reported(client, monkeypatch):
    def failing(*args, **kwargs):
        raise ai_service.AIServiceError("AI request failed: 502 bad gateway")

    monkeypatch.setattr(ai_service, "is_enabled", lambda: True)
    monkeypatch.setattr(ai_service, "generate_json", failing)
    response = client.post("/api/admin/ai/generate-webapp-preset")
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to generate preset"
