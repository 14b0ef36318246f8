import json

import pytest

from funnel_cms.core import ai_service


CALLBACK_HEADERS = {"X-Automation-Secret": "test-callback-secret"}


def _events(response):
    return [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


@pytest.fixture()
def ai_enabled(monkeypatch):
    monkeypatch.setattr(ai_service, "is_enabled", lambda: True)
    monkeypatch.setattr(ai_service, "generate_embedding", lambda text: [1.0, 0.0])


@pytest.fixture()
def indexed_kb(client):
    kb = client.post("/api/intel/knowledge-bases", json={"name": "Roofing"}).json()
    document = client.post(
        "/api/intel/knowledge-base/documents/upload",
        json={"knowledge_base_id": kb["id"], "title": "Market Notes", "content": "notes"},
    ).json()
    client.post(
        f"/api/intel/documents/{document['id']}/chunks",
        json={
            "chunks": [
                {"content": "Roofers buy in spring.", "embedding": [1.0, 0.0]},
                {"content": "Unrelated text.", "embedding": [0.0, 1.0]},
            ]
        },
        headers=CALLBACK_HEADERS,
    )
    return kb, document


def test_conversation_crud(client, indexed_kb):
    kb, document = indexed_kb
    created = client.post(
        "/api/chat/conversations",
        json={
            "contexts": [
                {"context_type": "knowledgeBase", "context_id": kb["id"]},
                {"context_type": "knowledgeBase", "context_id": kb["id"]},
            ]
        },
    )
    assert created.status_code == 201
    conversation = created.json()
    assert len(conversation["contexts"]) == 1

    added = client.post(
        f"/api/chat/conversations/{conversation['id']}/contexts",
        json={"context_type": "document", "context_id": document["id"]},
    )
    assert added.status_code == 201
    repeated = client.post(
        f"/api/chat/conversations/{conversation['id']}/contexts",
        json={"context_type": "document", "context_id": document["id"]},
    )
    assert repeated.status_code == 200
    assert repeated.json()["id"] == added.json()["id"]

    missing = client.post(
        f"/api/chat/conversations/{conversation['id']}/contexts",
        json={"context_type": "project", "context_id": 999},
    )
    assert missing.status_code == 404

    renamed = client.patch(f"/api/chat/conversations/{conversation['id']}", json={"title": "Roofing Q&A"})
    assert renamed.json()["title"] == "Roofing Q&A"

    assert client.delete(f"/api/chat/conversations/{conversation['id']}").status_code == 200
    assert client.get(f"/api/chat/conversations/{conversation['id']}").status_code == 404


def test_context_search(client, indexed_kb):
    kb, document = indexed_kb
    body = client.get("/api/chat/context-search", params={"q": "market"}).json()
    assert [item["id"] for item in body["documents"]["items"]] == [document["id"]]
    assert body["documents"]["has_more"] is False
    assert body["knowledge_bases"]["total"] == 0

    only_kbs = client.get("/api/chat/context-search", params={"types": "knowledgeBase"}).json()
    assert set(only_kbs) == {"knowledge_bases"}
    assert only_kbs["knowledge_bases"]["items"][0]["id"] == kb["id"]

    assert client.get("/api/chat/context-search", params={"types": "folder"}).status_code == 400


def test_send_message_requires_content_and_key(client):
    conversation = client.post("/api/chat/conversations", json={}).json()
    empty = client.post(f"/api/chat/conversations/{conversation['id']}/messages", json={"content": "  "})
    assert empty.status_code == 400
    assert empty.json()["error"] == "content is required"

    no_key = client.post(f"/api/chat/conversations/{conversation['id']}/messages", json={"content": "Hi"})
    assert no_key.status_code == 500
    assert no_key.json()["error"] == "OPENROUTER_API_KEY is not configured"


def test_streamed_answer_is_saved_with_citations(client, indexed_kb, ai_enabled, monkeypatch):
    kb, document = indexed_kb
    sent = {}

    def fake_stream(messages):
        sent["messages"] = messages
        yield "According to Chunk 1, "
        yield "roofers buy in spring."

    monkeypatch.setattr(ai_service, "stream_chat_completion", fake_stream)
    conversation = client.post(
        "/api/chat/conversations",
        json={"contexts": [{"context_type": "knowledgeBase", "context_id": kb["id"]}]},
    ).json()

    response = client.post(
        f"/api/chat/conversations/{conversation['id']}/messages",
        json={"content": "When do roofers buy?"},
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    events = _events(response)
    assert [event["type"] for event in events] == ["chunk", "chunk", "done"]
    done = events[-1]
    assert [citation["document_id"] for citation in done["citations"]] == [document["id"]]
    assert done["citations"][0]["section"] == "Market Notes"

    system = sent["messages"][0]
    assert system["role"] == "system"
    assert "[Document: Market Notes - Chunk 1]\nRoofers buy in spring." in system["content"]
    assert "Unrelated text." not in system["content"]
    assert sent["messages"][-1] == {"role": "user", "content": "When do roofers buy?"}

    detail = client.get(f"/api/chat/conversations/{conversation['id']}").json()
    assert detail["title"] == "When do roofers buy?"
    assert [message["role"] for message in detail["messages"]] == ["user", "assistant"]
    assistant = detail["messages"][1]
    assert assistant["id"] == done["messageId"]
    assert assistant["content"] == "According to Chunk 1, roofers buy in spring."
    assert assistant["metadata"]["rag_used"] is True
    assert assistant["metadata"]["chunks_retrieved"] == 1


def test_stream_failure_emits_error_event(client, ai_enabled, monkeypatch):
    def broken_stream(messages):
        raise ai_service.AIServiceError("AI request failed: 429 rate limited")
        yield

    monkeypatch.setattr(ai_service, "stream_chat_completion", broken_stream)
    conversation = client.post("/api/chat/conversations", json={}).json()
    response = client.post(f"/api/chat/conversations/{conversation['id']}/messages", json={"content": "Hi"})

    events = _events(response)
    assert events == [{"type": "error", "error": "AI request failed: 429 rate limited"}]
    detail = client.get(f"/api/chat/conversations/{conversation['id']}").json()
    assert [message["role"] for message in detail["messages"]] == ["user"]
