import pytest

from funnel_cms.core import storage, webhooks


CALLBACK_HEADERS = {"X-Automation-Secret": "test-callback-secret"}

EVALUATION_OUTPUT = {
    "niche_name": "Roofers",
    "verdict": {"label": "Pursue", "score": 7.5},
    "score_details": {"score_spread": 0.8},
}


@pytest.fixture()
def knowledge_base(client):
    response = client.post("/api/intel/knowledge-bases", json={"name": "Research", "description": "Shared notes"})
    assert response.status_code == 201
    return response.json()


def _text_document(client, kb_id, title="Notes", content="# Notes\nRoofers buy in spring."):
    response = client.post(
        "/api/intel/knowledge-base/documents/upload",
        json={"knowledge_base_id": kb_id, "title": title, "content": content},
    )
    assert response.status_code == 201
    return response.json()


def _project(client, **payload):
    body = {"type": "client", "client_name": "Acme Roofing"}
    body.update(payload)
    response = client.post("/api/intel/projects", json=body)
    assert response.status_code == 201
    return response.json()


def _workflow(client, name="niche-fit-evaluation"):
    workflows = client.get("/api/intel/workflows").json()
    return next(item for item in workflows if item["name"] == name)


def test_text_document_lifecycle(client, knowledge_base):
    document = _text_document(client, knowledge_base["id"])
    assert document["source_type"] == "text"
    assert document["status"] == "processing"
    assert document["knowledge_base_name"] == "Research"

    download = client.get(f"/api/intel/knowledge-base/documents/{document['id']}/download")
    assert download.status_code == 200
    assert download.text == "# Notes\nRoofers buy in spring."
    assert download.headers["content-disposition"] == 'attachment; filename="Notes.md"'

    chunks = client.post(
        f"/api/intel/documents/{document['id']}/chunks",
        json={"chunks": [{"content": "Roofers buy in spring.", "embedding": [1.0, 0.0]}]},
        headers=CALLBACK_HEADERS,
    )
    assert chunks.status_code == 200
    assert chunks.json()["chunk_count"] == 1
    assert chunks.json()["status"] == "completed"

    kb = client.get(f"/api/intel/knowledge-bases/{knowledge_base['id']}").json()
    assert kb["document_count"] == 1

    first = client.delete(f"/api/intel/knowledge-base/documents/{document['id']}")
    assert first.json() == {"success": True, "id": document["id"], "already_deleted": False, "chunks_deleted": 1}
    second = client.delete(f"/api/intel/knowledge-base/documents/{document['id']}")
    assert second.status_code == 200
    assert second.json()["already_deleted"] is True
    assert client.delete("/api/intel/knowledge-base/documents/9999").status_code == 404

    assert client.get(f"/api/intel/knowledge-base/documents/{document['id']}").status_code == 404
    assert client.get(f"/api/intel/knowledge-bases/{knowledge_base['id']}").json()["document_count"] == 0


def test_chunk_callback_requires_secret(client, knowledge_base):
    document = _text_document(client, knowledge_base["id"])
    response = client.post(
        f"/api/intel/documents/{document['id']}/chunks",
        json={"chunks": []},
        headers={"X-Automation-Secret": "wrong"},
    )
    assert response.status_code == 401


def test_multipart_upload(client, knowledge_base, monkeypatch):
    uploaded = {}

    def fake_upload(payload, path, content_type="application/octet-stream"):
        uploaded.update(path=path, size=len(payload), content_type=content_type)
        return f"https://cdn.test/{path}"

    monkeypatch.setattr(storage, "upload_bytes", fake_upload)
    response = client.post(
        "/api/intel/knowledge-base/documents/upload",
        data={"knowledge_base_id": str(knowledge_base["id"]), "should_chunk": "false"},
        files={"file": ("1712345678901-Market Brief.pdf", b"%PDF-1.4 body", "application/pdf")},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["title"] == "Market Brief"
    assert body["file_type"] == "pdf"
    assert body["status"] == "completed"
    assert body["should_chunk"] is False
    assert body["file_size"] == len(b"%PDF-1.4 body")
    assert uploaded["path"].startswith(f"knowledge-bases/{knowledge_base['id']}/")
    assert body["file_url"] == f"https://cdn.test/{uploaded['path']}"


def test_upload_rejects_unknown_knowledge_base(client):
    response = client.post(
        "/api/intel/knowledge-base/documents/upload",
        json={"knowledge_base_id": 404, "title": "x", "content": "y"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid knowledge_base_id"


def test_knowledge_base_delete_guards(client, knowledge_base):
    document = _text_document(client, knowledge_base["id"])
    blocked = client.delete(f"/api/intel/knowledge-bases/{knowledge_base['id']}")
    assert blocked.status_code == 400
    assert blocked.json()["error"] == "Knowledge base still has documents"

    client.delete(f"/api/intel/knowledge-base/documents/{document['id']}")
    assert client.delete(f"/api/intel/knowledge-bases/{knowledge_base['id']}").status_code == 200

    project = _project(client)
    in_use = client.delete(f"/api/intel/knowledge-bases/{project['kb_id']}")
    assert in_use.status_code == 400


def test_project_creation_builds_workspace(client):
    project = _project(client, name="ignored")
    assert project["name"] == "Acme Roofing"
    assert project["slug"] == "acme-roofing"
    assert project["knowledge_base_name"] == "Acme Roofing Workspace"

    missing = client.post("/api/intel/projects", json={"type": "client"})
    assert missing.status_code == 400

    niche = _project(client, type="niche", name="Solar Installers", client_name=None, geography="US")
    assert niche["geography"] == "US"

    changed_kb = client.put(f"/api/intel/projects/{niche['id']}", json={"kb_id": project["kb_id"]})
    assert changed_kb.status_code == 400


def test_project_document_links(client, knowledge_base):
    project = _project(client)
    document = _text_document(client, knowledge_base["id"])

    candidates = client.get("/api/intel/documents", params={"project_id": project["id"]}).json()
    assert [item["id"] for item in candidates] == [document["id"]]

    linked = client.post(f"/api/intel/projects/{project['id']}/documents", json={"document_id": document["id"]})
    assert linked.status_code == 201
    assert [item["id"] for item in linked.json()] == [document["id"]]
    again = client.post(f"/api/intel/projects/{project['id']}/documents", json={"document_id": document["id"]})
    assert again.status_code == 400

    assert client.get("/api/intel/documents", params={"project_id": project["id"]}).json() == []
    assert client.get(f"/api/intel/projects/{project['id']}").json()["document_count"] == 1

    unlinked = client.delete(f"/api/intel/projects/{project['id']}/documents/{document['id']}")
    assert unlinked.status_code == 200


def test_project_archive_and_delete(client):
    project = _project(client)
    archived = client.delete(f"/api/intel/projects/{project['id']}", params={"archive": "true"})
    assert archived.status_code == 200
    body = client.get(f"/api/intel/projects/{project['id']}").json()
    assert body["status"] == "archived"
    assert body["archived_at"] is not None

    listed = client.get("/api/intel/projects").json()
    assert project["id"] not in [item["id"] for item in listed]

    assert client.delete(f"/api/intel/projects/{project['id']}").status_code == 200
    assert client.get(f"/api/intel/projects/{project['id']}").status_code == 404


def test_default_catalogs_are_seeded(client):
    names = {item["name"] for item in client.get("/api/intel/workflows").json()}
    assert {"niche-intelligence", "icp-research", "niche-fit-evaluation", "offer-architect"} <= names
    assert {item["name"] for item in client.get("/api/intel/project-types").json()} == {"client", "niche"}
    subject_types = {item["name"] for item in client.get("/api/intel/subject-types").json()}
    assert {"niche", "company", "persona"} <= subject_types


def test_execute_requires_configured_secret(client):
    project = _project(client)
    workflow = _workflow(client)
    response = client.post(f"/api/intel/workflows/{workflow['id']}/execute", json={"project_id": project["id"]})
    assert response.status_code == 404
    assert response.json()["error"] == "Webhook URL not configured for this workflow"


def test_workflow_run_and_report(client, monkeypatch):
    project = _project(client)
    workflow = _workflow(client)
    secret = client.put(
        f"/api/intel/workflows/{workflow['id']}/secrets",
        json={"webhook_url": "https://automation.test/hook", "api_key": "k-123"},
    )
    assert secret.json()["configured"] is True

    calls = []

    def fake_post_json(url, payload, *, api_key=None, timeout=None):
        calls.append((url, payload, api_key))
        return {"accepted": True}

    monkeypatch.setattr(webhooks, "post_json", fake_post_json)
    executed = client.post(
        f"/api/intel/workflows/{workflow['id']}/execute",
        json={"project_id": project["id"], "input": {"depth": "full"}},
    )
    assert executed.status_code == 200
    run_id = executed.json()["run_id"]
    assert executed.json()["data"] == {"accepted": True}

    url, payload, api_key = calls[0]
    assert url == "https://automation.test/hook"
    assert api_key == "k-123"
    assert payload["Name"] == "Acme Roofing"
    assert payload["RunId"] == run_id
    assert payload["KnowledgeBaseId"] == project["kb_id"]
    assert payload["Input"] == {"depth": "full"}

    run = client.get(f"/api/intel/runs/{run_id}").json()
    assert run["status"] == "processing"

    report_doc = _text_document(client, project["kb_id"], title="Evaluation")
    callback = client.post(
        f"/api/intel/runs/{run_id}/output",
        json={"output_json": EVALUATION_OUTPUT, "document_ids": [report_doc["id"]]},
        headers=CALLBACK_HEADERS,
    )
    assert callback.status_code == 200
    finished = callback.json()
    assert finished["status"] == "completed"
    assert finished["fit_score"] == 7.5
    assert finished["verdict"] == "Pursue"
    assert finished["output_id"] is not None

    by_workflow = client.get(
        f"/api/intel/projects/{project['id']}/documents-by-workflow",
        params={"workflow_type": "Niche Fit Evaluation"},
    ).json()
    assert [item["id"] for item in by_workflow] == [report_doc["id"]]

    report = client.get(f"/api/intel/reports/{run_id}").json()
    assert report["automation_name"] == "niche-fit-evaluation"
    view = client.get(f"/api/intel/reports/{finished['output_id']}/view").json()
    assert view["header"]["reportTypeLabel"] == "Niche Evaluation Report"
    assert view["sections"][0]["content"]["label"] == "Pursue"
    assert view["report"]["project_name"] == "Acme Roofing"


def test_failed_webhook_marks_run_failed(client, monkeypatch):
    project = _project(client)
    workflow = _workflow(client)
    client.put(f"/api/intel/workflows/{workflow['id']}/secrets", json={"webhook_url": "https://automation.test/hook"})

    def failing_post_json(url, payload, *, api_key=None, timeout=None):
        raise webhooks.WebhookError("Webhook returned 502: bad gateway")

    monkeypatch.setattr(webhooks, "post_json", failing_post_json)
    response = client.post(f"/api/intel/workflows/{workflow['id']}/execute", json={"project_id": project["id"]})
    assert response.status_code == 500
    assert response.json()["error"].startswith("Failed to call webhook")

    runs = client.get("/api/intel/runs", params={"project_id": project["id"]}).json()
    assert runs[0]["status"] == "failed"
    assert "502" in runs[0]["error_message"]


def test_report_not_found(client):
    response = client.get("/api/intel/reports/12345")
    assert response.status_code == 404
    assert response.json()["error"] == "Report not found"
