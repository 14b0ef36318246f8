import json
import logging
from typing import Any, Iterator

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import ai_service, chat_service, documents
from funnel_cms.core.config import settings
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.core.db_read_write import WriteSessionLocal
from funnel_cms.deps import get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["chat"])
logger = logging.getLogger(__name__)

CONTEXT_SEARCH_TYPES = ("document", "project", "knowledgeBase")


def sse_event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _conversation_or_404(db: Session, conversation_id: int, user: models.User) -> models.Conversation:
    conversation = (
        db.query(models.Conversation)
        .filter(models.Conversation.id == conversation_id, models.Conversation.user_id == user.id)
        .first()
    )
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def _context_target_exists(db: Session, context_type: models.ContextType, context_id: int) -> bool:
    if context_type == models.ContextType.document:
        query = documents.live_documents(db).filter(models.Document.id == context_id)
    elif context_type == models.ContextType.project:
        query = db.query(models.Project).filter(models.Project.id == context_id)
    else:
        query = db.query(models.KnowledgeBase).filter(models.KnowledgeBase.id == context_id)
    return query.first() is not None


def _message_counts(db: Session, conversation_ids: list[int]) -> dict[int, int]:
    if not conversation_ids:
        return {}
    rows = (
        db.query(models.ChatMessage.conversation_id, func.count(models.ChatMessage.id))
        .filter(models.ChatMessage.conversation_id.in_(conversation_ids))
        .group_by(models.ChatMessage.conversation_id)
        .all()
    )
    return {conversation_id: int(count) for conversation_id, count in rows}


def to_conversation_out(conversation: models.Conversation, message_count: int = 0) -> schemas.ConversationOut:
    return schemas.ConversationOut(
        id=conversation.id,
        title=conversation.title,
        message_count=message_count,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


def _page(query, page: int, limit: int) -> dict[str, Any]:
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {"rows": rows, "total": total, "page": page, "limit": limit, "has_more": page * limit < total}


@router.get("/context-search")
def search_contexts(
    q: str | None = Query(default=None),
    types: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    requested = [item.strip() for item in (types or "").split(",") if item.strip()] or list(CONTEXT_SEARCH_TYPES)
    unknown = [item for item in requested if item not in CONTEXT_SEARCH_TYPES]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Invalid context type: {unknown[0]}")
    pattern = f"%{(q or '').strip()}%"
    result: dict[str, Any] = {}

    if "document" in requested:
        query = (
            documents.live_documents(db)
            .filter(models.Document.chunk_count > 0, models.Document.title.ilike(pattern))
            .order_by(models.Document.created_at.desc(), models.Document.id.desc())
        )
        chunk = _page(query, page, limit)
        result["documents"] = {
            **{key: value for key, value in chunk.items() if key != "rows"},
            "items": [
                {
                    "id": row.id,
                    "title": row.title,
                    "knowledge_base_id": row.knowledge_base_id,
                    "knowledge_base_name": row.knowledge_base.name if row.knowledge_base else None,
                    "chunk_count": row.chunk_count,
                }
                for row in chunk["rows"]
            ],
        }

    if "project" in requested:
        query = (
            db.query(models.Project)
            .filter(models.Project.archived_at.is_(None), models.Project.name.ilike(pattern))
            .order_by(models.Project.created_at.desc(), models.Project.id.desc())
        )
        chunk = _page(query, page, limit)
        rows = chunk["rows"]
        kb_ids = {row.kb_id for row in rows}
        counts = {}
        if kb_ids:
            counts = dict(
                db.query(models.Document.knowledge_base_id, func.count(models.Document.id))
                .filter(models.Document.knowledge_base_id.in_(kb_ids), models.Document.deleted_at.is_(None))
                .group_by(models.Document.knowledge_base_id)
                .all()
            )
        result["projects"] = {
            **{key: value for key, value in chunk.items() if key != "rows"},
            "items": [
                {"id": row.id, "name": row.name, "kb_id": row.kb_id, "document_count": int(counts.get(row.kb_id, 0))}
                for row in rows
            ],
        }

    if "knowledgeBase" in requested:
        query = (
            db.query(models.KnowledgeBase)
            .filter(models.KnowledgeBase.is_active.is_(True), models.KnowledgeBase.name.ilike(pattern))
            .order_by(models.KnowledgeBase.name.asc(), models.KnowledgeBase.id.asc())
        )
        chunk = _page(query, page, limit)
        result["knowledge_bases"] = {
            **{key: value for key, value in chunk.items() if key != "rows"},
            "items": [
                {"id": row.id, "name": row.name, "type": row.type, "description": row.description}
                for row in chunk["rows"]
            ],
        }
    return result


@router.get("/conversations", response_model=list[schemas.ConversationOut])
def list_conversations(
    db: Session = Depends(get_db_read),
    current_user: models.User = Depends(get_current_user),
):
    rows = (
        db.query(models.Conversation)
        .filter(models.Conversation.user_id == current_user.id)
        .order_by(models.Conversation.updated_at.desc(), models.Conversation.id.desc())
        .all()
    )
    counts = _message_counts(db, [row.id for row in rows])
    return [to_conversation_out(row, counts.get(row.id, 0)) for row in rows]


@router.post("/conversations", response_model=schemas.ConversationDetailOut, status_code=status.HTTP_201_CREATED)
def create_conversation(
    payload: schemas.ConversationCreateRequest,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    conversation = models.Conversation(
        user_id=current_user.id,
        title=(payload.title or "").strip() or None,
    )
    db.add(conversation)
    db.flush()

    seen: set[tuple[models.ContextType, int]] = set()
    for ref in payload.contexts:
        key = (ref.context_type, ref.context_id)
        if key in seen:
            continue
        if not _context_target_exists(db, ref.context_type, ref.context_id):
            db.rollback()
            raise HTTPException(status_code=404, detail=f"{ref.context_type.value} {ref.context_id} not found")
        seen.add(key)
        db.add(
            models.ConversationContext(
                conversation_id=conversation.id,
                context_type=ref.context_type,
                context_id=ref.context_id,
            )
        )
    commit_or_400(db, "Create conversation")
    db.refresh(conversation)
    return get_conversation(conversation.id, db, current_user)


@router.get("/conversations/{conversation_id}", response_model=schemas.ConversationDetailOut)
def get_conversation(
    conversation_id: int,
    db: Session = Depends(get_db_read),
    current_user: models.User = Depends(get_current_user),
):
    conversation = _conversation_or_404(db, conversation_id, current_user)
    return schemas.ConversationDetailOut(
        **to_conversation_out(conversation, len(conversation.messages)).model_dump(),
        contexts=[schemas.ContextOut.model_validate(item) for item in conversation.contexts],
        messages=[schemas.MessageOut.model_validate(item) for item in conversation.messages],
    )


@router.patch("/conversations/{conversation_id}", response_model=schemas.ConversationOut)
def update_conversation(
    conversation_id: int,
    payload: schemas.ConversationUpdateRequest,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    conversation = _conversation_or_404(db, conversation_id, current_user)
    conversation.title = payload.title.strip()
    db.add(conversation)
    commit_or_400(db, "Update conversation")
    db.refresh(conversation)
    return to_conversation_out(conversation, _message_counts(db, [conversation.id]).get(conversation.id, 0))


@router.delete("/conversations/{conversation_id}", response_model=schemas.DeleteResult)
def delete_conversation(
    conversation_id: int,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    conversation = _conversation_or_404(db, conversation_id, current_user)
    db.delete(conversation)
    commit_or_400(db, "Delete conversation")
    return schemas.DeleteResult(id=conversation_id)


@router.get("/conversations/{conversation_id}/contexts", response_model=list[schemas.ContextOut])
def list_conversation_contexts(
    conversation_id: int,
    db: Session = Depends(get_db_read),
    current_user: models.User = Depends(get_current_user),
):
    return _conversation_or_404(db, conversation_id, current_user).contexts


@router.post(
    "/conversations/{conversation_id}/contexts",
    response_model=schemas.ContextOut,
    status_code=status.HTTP_201_CREATED,
)
def add_conversation_context(
    conversation_id: int,
    payload: schemas.ContextRef,
    response: Response,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    conversation = _conversation_or_404(db, conversation_id, current_user)
    existing = (
        db.query(models.ConversationContext)
        .filter(
            models.ConversationContext.conversation_id == conversation.id,
            models.ConversationContext.context_type == payload.context_type,
            models.ConversationContext.context_id == payload.context_id,
        )
        .first()
    )
    if existing is not None:
        response.status_code = status.HTTP_200_OK
        return existing
    if not _context_target_exists(db, payload.context_type, payload.context_id):
        raise HTTPException(status_code=404, detail=f"{payload.context_type.value} {payload.context_id} not found")

    context = models.ConversationContext(
        conversation_id=conversation.id,
        context_type=payload.context_type,
        context_id=payload.context_id,
    )
    db.add(context)
    commit_or_400(db, "Add context")
    db.refresh(context)
    return context


@router.delete("/conversations/{conversation_id}/contexts/{context_id}", response_model=schemas.DeleteResult)
def remove_conversation_context(
    conversation_id: int,
    context_id: int,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    conversation = _conversation_or_404(db, conversation_id, current_user)
    deleted = (
        db.query(models.ConversationContext)
        .filter(
            models.ConversationContext.conversation_id == conversation.id,
            models.ConversationContext.id == context_id,
        )
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise HTTPException(status_code=404, detail="Context not found")
    commit_or_400(db, "Remove context")
    return schemas.DeleteResult(id=context_id)


def _stream_answer(
    conversation_id: int,
    messages: list[dict[str, str]],
    chunks: list[chat_service.RetrievedChunk],
) -> Iterator[str]:
    parts: list[str] = []
    try:
        for piece in ai_service.stream_chat_completion(messages):
            parts.append(piece)
            yield sse_event({"type": "chunk", "content": piece})
    except ai_service.AIServiceError as error:
        logger.warning("chat stream failed: conversation_id=%s", conversation_id, exc_info=True)
        yield sse_event({"type": "error", "error": str(error)})
        return

    answer = "".join(parts)
    citations = chat_service.extract_citations(answer, chunks)
    db = WriteSessionLocal()
    try:
        message = models.ChatMessage(
            conversation_id=conversation_id,
            role="assistant",
            content=answer,
            citations=citations,
            message_metadata={
                "model": settings.AI_CHAT_MODEL,
                "rag_used": bool(chunks),
                "chunks_retrieved": len(chunks),
            },
        )
        db.add(message)
        db.query(models.Conversation).filter(models.Conversation.id == conversation_id).update(
            {models.Conversation.updated_at: documents.utc_now()},
            synchronize_session=False,
        )
        db.commit()
        db.refresh(message)
    except Exception as error:  # noqa: BLE001
        db.rollback()
        logger.exception("assistant message save failed: conversation_id=%s", conversation_id)
        yield sse_event({"type": "error", "error": f"Failed to save message: {error}"})
        return
    finally:
        db.close()

    yield sse_event({"type": "done", "messageId": message.id, "citations": citations})


@router.post("/conversations/{conversation_id}/messages")
def send_message(
    conversation_id: int,
    payload: schemas.MessageCreateRequest,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    content = (payload.content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="content is required")
    conversation = _conversation_or_404(db, conversation_id, current_user)
    if not ai_service.is_enabled():
        raise HTTPException(status_code=500, detail="OPENROUTER_API_KEY is not configured")

    if not conversation.title:
        conversation.title = chat_service.conversation_title(content)
    db.add(models.ChatMessage(conversation_id=conversation.id, role="user", content=content))
    db.add(conversation)
    commit_or_400(db, "Save message")
    db.refresh(conversation)

    contexts = list(conversation.contexts)
    chunks = chat_service.retrieve_chunks(db, contexts, content) if contexts else []
    system_prompt = chat_service.build_system_prompt(chunks, contexts) if chunks else None
    messages = chat_service.build_messages(conversation.messages, system_prompt)
    logger.info(
        "chat message accepted: conversation_id=%s contexts=%s chunks=%s",
        conversation.id,
        len(contexts),
        len(chunks),
    )

    return StreamingResponse(
        _stream_answer(conversation.id, messages, chunks),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
