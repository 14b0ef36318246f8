from funnel_cms.core import storage


def test_wistia_media_is_a_video(client):
    missing = client.post("/api/admin/media", json={"source_type": "wistia"})
    assert missing.status_code == 400

    created = client.post("/api/admin/media", json={"source_type": "wistia", "embed_id": " abc123 ", "name": "Intro"})
    assert created.status_code == 201
    body = created.json()
    assert body["url"] == "wistia:abc123"
    assert body["type"] == "video"

    clone = client.post(f"/api/admin/media/{body['id']}/duplicate").json()
    assert clone["name"] == "Intro (Copy)"
    assert clone["url"] == body["url"]


def test_deleting_media_moves_unshared_files_to_bin(client, monkeypatch):
    moved = []
    monkeypatch.setattr(storage, "move_url_to_bin_safely", lambda url: moved.append(url))
    url = "https://cdn.test/media/hero.png"
    first = client.post("/api/admin/media", json={"source_type": "upload", "url": url}).json()
    second = client.post("/api/admin/media", json={"source_type": "upload", "url": url}).json()
    assert first["type"] == "image"

    client.delete(f"/api/admin/media/{first['id']}")
    assert moved == []
    client.delete(f"/api/admin/media/{second['id']}")
    assert moved == [url]


def test_upload_validates_type_and_folder(client, monkeypatch):
    monkeypatch.setattr(storage, "upload_bytes", lambda payload, path, content_type: f"https://cdn.test/{path}")

    bad_type = client.post(
        "/api/admin/upload",
        data={"folder": "avatars"},
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert bad_type.status_code == 400
    assert bad_type.json()["error"].startswith("Invalid file type")

    bad_folder = client.post(
        "/api/admin/upload",
        data={"folder": "../etc"},
        files={"file": ("a.png", b"png", "image/png")},
    )
    assert bad_folder.status_code == 400

    ok = client.post(
        "/api/admin/upload",
        data={"folder": "/avatars/"},
        files={"file": ("My Face.PNG", b"png-bytes", "image/png")},
    )
    assert ok.status_code == 201
    body = ok.json()
    assert body["path"].startswith("avatars/")
    assert body["path"].endswith("-My-Face.png")
    assert body["size"] == len(b"png-bytes")
    assert body["url"] == f"https://cdn.test/{body['path']}"


def test_testimonial_avatar_url_is_normalized(client):
    created = client.post(
        "/api/admin/testimonials",
        json={"author_name": "Dana", "quote": "Great.", "avatar_url": "zone.b-cdn.net/dana.jpg", "rating": 5},
    )
    assert created.status_code == 201
    assert created.json()["avatar_url"] == "https://zone.b-cdn.net/dana.jpg"

    invalid = client.post("/api/admin/testimonials", json={"author_name": "Lee", "rating": 9})
    assert invalid.status_code == 400


def test_content_library_reorder(client):
    first = client.post("/api/admin/timeline", json={"title": "Kickoff"}).json()
    second = client.post("/api/admin/timeline", json={"title": "Launch"}).json()
    assert (first["position"], second["position"]) == (0, 1)

    reordered = client.post(
        "/api/admin/timeline/reorder",
        json={"items": [{"id": first["id"], "position": 1}, {"id": second["id"], "position": 0}]},
    )
    assert [item["title"] for item in reordered.json()] == ["Launch", "Kickoff"]


def test_subject_type_names_are_unique(client):
    created = client.post("/api/intel/subject-types", json={"name": "Region", "label": "Region"})
    assert created.status_code == 201
    assert created.json()["name"] == "region"

    duplicate = client.post("/api/intel/subject-types", json={"name": "REGION", "label": "Again"})
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Subject type name already exists"


def test_workflow_crud(client):
    created = client.post("/api/intel/workflows", json={"name": "Competitor Scan", "label": "Competitors"})
    assert created.status_code == 201
    workflow = created.json()
    assert workflow["slug"] == "competitor_scan"
    assert workflow["has_secret"] is False

    conflict = client.post("/api/intel/workflows", json={"name": "Competitor Scan"})
    assert conflict.status_code == 400

    bad_target = client.put(f"/api/intel/workflows/{workflow['id']}", json={"target_knowledge_base_id": 999})
    assert bad_target.status_code == 400

    disabled = client.put(f"/api/intel/workflows/{workflow['id']}", json={"enabled": False}).json()
    assert disabled["enabled"] is False
    enabled_names = [item["name"] for item in client.get("/api/intel/workflows", params={"enabled": "true"}).json()]
    assert "Competitor Scan" not in enabled_names

    status = client.get(f"/api/intel/workflows/{workflow['id']}/secrets").json()
    assert status == {"workflow_id": workflow["id"], "configured": False, "updated_at": None}
    bad_url = client.put(f"/api/intel/workflows/{workflow['id']}/secrets", json={"webhook_url": "ftp://x"})
    assert bad_url.status_code == 400

    assert client.delete(f"/api/intel/workflows/{workflow['id']}").status_code == 200


def test_research_subject_execution_targets_workflow_kb(client, monkeypatch):
    from funnel_cms.core import webhooks

    kb = client.post("/api/intel/knowledge-bases", json={"name": "Subjects"}).json()
    subject = client.post(
        "/api/admin/research-subjects",
        json={"name": "Dentists", "geography": "UK", "category": "Health"},
    ).json()
    project_bound = client.post("/api/intel/workflows", json={"name": "Project Only"}).json()
    kb_bound = client.post(
        "/api/intel/workflows",
        json={"name": "Subject Scan", "knowledge_base_target": "knowledgebase", "target_knowledge_base_id": kb["id"]},
    ).json()
    for workflow in (project_bound, kb_bound):
        client.put(f"/api/intel/workflows/{workflow['id']}/secrets", json={"webhook_url": "https://hook.test/run"})

    payloads = []
    monkeypatch.setattr(webhooks, "post_json", lambda url, payload, **kwargs: payloads.append(payload))

    rejected = client.post(
        f"/api/intel/workflows/{project_bound['id']}/execute",
        json={"research_subject_id": subject["id"]},
    )
    assert rejected.status_code == 400

    accepted = client.post(
        f"/api/intel/workflows/{kb_bound['id']}/execute",
        json={"research_subject_id": subject["id"]},
    )
    assert accepted.status_code == 200
    assert accepted.json()["data"] == {"message": "Workflow executed successfully"}
    assert payloads[0]["Name"] == "Dentists"
    assert payloads[0]["Geography"] == "UK"
    assert payloads[0]["ProjectId"] is None
    assert payloads[0]["KnowledgeBaseId"] == kb["id"]


def test_explicit_null_clears_optional_fields(client):
    item = client.post("/api/admin/timeline", json={"title": "Kickoff", "subtitle": "Week 1", "icon": "flag"}).json()

    cleared = client.put(f"/api/admin/timeline/{item['id']}", json={"subtitle": None})
    assert cleared.status_code == 200
    assert cleared.json()["subtitle"] is None
    assert cleared.json()["icon"] == "flag"

    required = client.put(f"/api/admin/timeline/{item['id']}", json={"title": None})
    assert required.status_code == 400
    assert required.json()["error"] == "title cannot be null"
    assert client.get(f"/api/admin/timeline/{item['id']}").json()["title"] == "Kickoff"

    faq = client.post("/api/admin/faq-items", json={"question": "Price?", "answer": "Ask us."}).json()
    assert client.put(f"/api/admin/faq-items/{faq['id']}", json={"answer": None}).status_code == 400
