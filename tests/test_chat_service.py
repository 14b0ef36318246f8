from types import SimpleNamespace

import pytest

from funnel_cms import models
from funnel_cms.core import ai_service, chat_service
from funnel_cms.core.chat_service import RetrievedChunk


def _chunk(chunk_id, document_id, title, content, score=0.9):
    return RetrievedChunk(id=chunk_id, document_id=document_id, document_title=title, content=content, score=score)


def test_iter_sse_content_reads_deltas_until_done():
    lines = [
        ": keep-alive",
        "",
        'data: {"choices":[{"delta":{"content":"Hel"}}]}',
        b'data: {"choices":[{"delta":{"content":"lo"}}]}',
        'data: {"choices":[{"delta":{}}]}',
        "data: not-json",
        "data: [DONE]",
        'data: {"choices":[{"delta":{"content":"ignored"}}]}',
    ]
    assert list(ai_service.iter_sse_content(lines)) == ["Hel", "lo"]


def test_iter_sse_content_raises_on_error_payload():
    lines = ['data: {"error":{"message":"rate limited"}}']
    with pytest.raises(ai_service.AIServiceError, match="rate limited"):
        list(ai_service.iter_sse_content(lines))


def test_cosine_similarity():
    assert ai_service.cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert ai_service.cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert ai_service.cosine_similarity([], [1.0]) == 0.0


def test_rank_chunks_applies_threshold_and_top_k():
    rows = [
        (SimpleNamespace(id=1, document_id=10, content="a", embedding=[1.0, 0.0]), "Doc A"),
        (SimpleNamespace(id=2, document_id=10, content="b", embedding=[0.6, 0.8]), "Doc A"),
        (SimpleNamespace(id=3, document_id=11, content="c", embedding=[0.0, 1.0]), None),
        (SimpleNamespace(id=4, document_id=11, content="d", embedding=None), "Doc B"),
    ]
    ranked = chat_service.rank_chunks([1.0, 0.0], rows, top_k=5)
    assert [item.id for item in ranked] == [1, 2]
    assert chat_service.rank_chunks([1.0, 0.0], rows, top_k=1)[0].id == 1


def test_system_prompt_groups_chunks_by_document():
    chunks = [
        _chunk(1, 10, "Market Notes", "Roofers buy in spring."),
        _chunk(2, 11, "ICP Report", "Owners decide alone."),
        _chunk(3, 10, "Market Notes", "Average ticket is high."),
    ]
    contexts = [SimpleNamespace(context_type=models.ContextType.knowledge_base)]
    prompt = chat_service.build_system_prompt(chunks, contexts)
    assert "answering questions about knowledgeBase." in prompt
    assert (
        "[Document: Market Notes - Chunk 1]\nRoofers buy in spring.\n\n"
        "[Document: Market Notes - Chunk 2]\nAverage ticket is high."
    ) in prompt
    assert "\n\n---\n\n[Document: ICP Report - Chunk 1]" in prompt
    assert "from 1 context(s)" in prompt


def test_describe_multiple_context_types():
    contexts = [
        SimpleNamespace(context_type=models.ContextType.document),
        SimpleNamespace(context_type=models.ContextType.project),
    ]
    prompt = chat_service.build_system_prompt([_chunk(1, 1, "T", "x")], contexts)
    assert "answering questions about multiple contexts." in prompt


def test_build_messages_keeps_recent_history(monkeypatch):
    monkeypatch.setattr(chat_service.settings, "CHAT_HISTORY_LIMIT", 2)
    history = [
        SimpleNamespace(role="user", content="one"),
        SimpleNamespace(role="assistant", content="two"),
        SimpleNamespace(role="user", content=""),
        SimpleNamespace(role="user", content="three"),
    ]
    messages = chat_service.build_messages(history, "system text")
    assert messages == [
        {"role": "system", "content": "system text"},
        {"role": "assistant", "content": "two"},
        {"role": "user", "content": "three"},
    ]


def test_extract_citations():
    chunks = [
        _chunk(1, 10, "Market Notes", "Roofers buy in spring when storms hit the coast."),
        _chunk(2, 11, "ICP Report", "Owners decide alone."),
        _chunk(3, 12, "Pricing", "x" * 300),
    ]
    answer = "Per Chunk 2, owners matter. Also roofers buy in spring when storms hit the coast."
    citations = chat_service.extract_citations(answer, chunks)
    assert [item["chunk_id"] for item in citations] == [1, 2]
    assert citations[0] == {
        "chunk_id": 1,
        "document_id": 10,
        "text": "Roofers buy in spring when storms hit the coast.",
        "section": "Market Notes",
    }

    by_title = chat_service.extract_citations("See Pricing for details.", chunks)
    assert [item["chunk_id"] for item in by_title] == [3]
    assert len(by_title[0]["text"]) == chat_service.CITATION_TEXT_CHARS


def test_conversation_title_is_truncated():
    assert chat_service.conversation_title("  short  ") == "short"
    assert len(chat_service.conversation_title("a" * 250)) == chat_service.TITLE_MAX_CHARS
