def _create_page(client, slug="landing", status="published"):
    response = client.post(
        "/api/admin/pages",
        json={"title": "Landing", "slug": slug, "status": status},
    )
    assert response.status_code == 201
    return response.json()


def _create_section(client, **overrides):
    payload = {"type": "FAQ", "title": "Questions", "admin_title": "Home FAQ", "status": "published"}
    payload.update(overrides)
    response = client.post("/api/admin/sections", json=payload)
    assert response.status_code == 201
    return response.json()


def test_requires_authentication(anonymous_client):
    response = anonymous_client.get("/api/admin/pages")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_page_crud_and_slug_conflict(client):
    page = _create_page(client)
    assert page["slug"] == "landing"

    conflict = client.post("/api/admin/pages", json={"title": "Other", "slug": "landing"})
    assert conflict.status_code == 400
    assert conflict.json()["error"] == "Page slug already exists"

    updated = client.put(f"/api/admin/pages/{page['id']}", json={"title": "Home"})
    assert updated.status_code == 200
    assert updated.json()["title"] == "Home"

    assert client.delete(f"/api/admin/pages/{page['id']}").json() == {"success": True, "id": page["id"]}
    missing = client.get(f"/api/admin/pages/{page['id']}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "Page not found"


def test_page_sections_ordering(client):
    page = _create_page(client)
    first = _create_section(client, admin_title="First")
    second = _create_section(client, admin_title="Second")

    link_a = client.post(f"/api/admin/pages/{page['id']}/sections", json={"section_id": first["id"]}).json()
    link_b = client.post(f"/api/admin/pages/{page['id']}/sections", json={"section_id": second["id"]}).json()
    assert link_a["page_section"]["position"] == 0
    assert link_b["page_section"]["position"] == 1

    duplicate = client.post(f"/api/admin/pages/{page['id']}/sections", json={"section_id": first["id"]})
    assert duplicate.status_code == 400

    reordered = client.post(
        f"/api/admin/pages/{page['id']}/sections/reorder",
        json={
            "items": [
                {"id": link_a["page_section"]["id"], "position": 1},
                {"id": link_b["page_section"]["id"], "position": 0},
            ]
        },
    )
    assert [item["id"] for item in reordered.json()] == [second["id"], first["id"]]


def test_section_type_is_lowercased_on_update(client):
    section = _create_section(client)
    updated = client.put(f"/api/admin/sections/{section['id']}", json={"type": "Hero"})
    assert updated.json()["type"] == "hero"


def test_duplicate_section_copies_links_as_draft(client):
    section = _create_section(client)
    faq = client.post("/api/admin/faq-items", json={"question": "Why?", "answer": "Because."}).json()
    client.post(f"/api/admin/sections/{section['id']}/faq-items", json={"child_id": faq["id"], "status": "published"})

    clone = client.post(f"/api/admin/sections/{section['id']}/duplicate")
    assert clone.status_code == 201
    body = clone.json()
    assert body["admin_title"] == "Home FAQ V2"
    assert body["status"] == "draft"
    assert body["warnings"] == []

    children = client.get(f"/api/admin/sections/{body['id']}/faq-items").json()
    assert [child["id"] for child in children] == [faq["id"]]
    assert children[0]["link"]["status"] == "published"


def test_duplicate_cta_button_attaches_to_section(client):
    section = _create_section(client)
    cta = client.post("/api/admin/cta-buttons", json={"label": "Book a call", "url": "https://x.test"}).json()

    first = client.post(f"/api/admin/cta-buttons/{cta['id']}/duplicate", params={"section_id": section["id"]})
    second = client.post(f"/api/admin/cta-buttons/{cta['id']}/duplicate")
    assert first.json()["label"] == "Book a call (Copy)"
    assert second.json()["label"] == "Book a call (Copy 2)"

    linked = client.get(f"/api/admin/sections/{section['id']}/cta-buttons").json()
    assert [item["id"] for item in linked] == [first.json()["id"]]
    assert linked[0]["link"]["status"] == "draft"


def test_duplicate_faq_item_uses_version_suffix(client):
    faq = client.post("/api/admin/faq-items", json={"question": "Cost?", "answer": "Low."}).json()
    first = client.post(f"/api/admin/faq-items/{faq['id']}/duplicate").json()
    second = client.post(f"/api/admin/faq-items/{faq['id']}/duplicate").json()
    assert first["question"] == "Cost? V2"
    assert second["question"] == "Cost? V3"


def test_section_child_disconnect(client):
    section = _create_section(client)
    faq = client.post("/api/admin/faq-items", json={"question": "Q", "answer": "A"}).json()
    client.post(f"/api/admin/sections/{section['id']}/faq-items", json={"child_id": faq["id"]})

    removed = client.delete(f"/api/admin/sections/{section['id']}/faq-items", params={"child_id": faq["id"]})
    assert removed.status_code == 200
    again = client.delete(f"/api/admin/sections/{section['id']}/faq-items", params={"child_id": faq["id"]})
    assert again.status_code == 404


def test_public_page_shows_only_published_content(client):
    page = _create_page(client, slug="offer")
    visible = _create_section(client, admin_title="Visible")
    hidden = _create_section(client, admin_title="Hidden", status="deactivated")
    client.post(f"/api/admin/pages/{page['id']}/sections", json={"section_id": visible["id"], "status": "published"})
    client.post(f"/api/admin/pages/{page['id']}/sections", json={"section_id": hidden["id"], "status": "published"})

    shown = client.post("/api/admin/faq-items", json={"question": "Shown", "answer": "yes"}).json()
    drafted = client.post("/api/admin/faq-items", json={"question": "Drafted", "answer": "no"}).json()
    client.post(f"/api/admin/sections/{visible['id']}/faq-items", json={"child_id": shown["id"], "status": "published"})
    client.post(f"/api/admin/sections/{visible['id']}/faq-items", json={"child_id": drafted["id"]})

    client.put("/api/admin/site-settings/theme", json={"value": {"primary": "hsl(0, 100%, 50%)", "bad": 3}})

    response = client.get("/api/public/pages/offer")
    assert response.status_code == 200
    body = response.json()
    assert [section["id"] for section in body["sections"]] == [visible["id"]]
    assert [item["question"] for item in body["sections"][0]["faq_items"]] == ["Shown"]
    assert body["theme"] == {"primary": "#ff0000"}

    assert client.get("/api/public/pages/missing").status_code == 404


def test_public_page_cache_is_revalidated_on_edit(client):
    page = _create_page(client, slug="cached")
    assert client.get("/api/public/pages/cached").json()["page"]["title"] == "Landing"

    client.put(f"/api/admin/pages/{page['id']}", json={"title": "Renamed"})
    assert client.get("/api/public/pages/cached").json()["page"]["title"] == "Renamed"

    client.put(f"/api/admin/pages/{page['id']}", json={"status": "draft"})
    assert client.get("/api/public/pages/cached").status_code == 404
