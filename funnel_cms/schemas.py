import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from funnel_cms.core.media_urls import normalize_avatar_url
from funnel_cms.models import (
    ContentStatus,
    ContextType,
    DocumentStatus,
    MediaSourceType,
    MediaType,
    RunStatus,
    UserRole,
)


SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
URL_PATTERN = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)


def normalize_slug(value: str) -> str:
    slug = str(value).strip().lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    return re.sub(r"-{2,}", "-", slug).strip("-")


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=128)


class UserCreateRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=128)
    role: UserRole = UserRole.editor


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: UserRole
    email: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: UserRole
    created_at: datetime


class ReorderItem(BaseModel):
    id: int
    position: int = Field(ge=0)


class ReorderRequest(BaseModel):
    items: list[ReorderItem] = Field(min_length=1)


class DeleteResult(BaseModel):
    success: bool = True
    id: int


# Pages and sections


class PageCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: ContentStatus = ContentStatus.draft

    @field_validator("slug", mode="before")
    @classmethod
    def normalize_page_slug(cls, value: str) -> str:
        if value is None:
            return value
        return normalize_slug(value)

    @field_validator("slug")
    @classmethod
    def validate_page_slug(cls, value: str) -> str:
        if not SLUG_PATTERN.match(value):
            raise ValueError("Slug must contain lowercase letters, digits and hyphens")
        return value


class PageUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: ContentStatus | None = None

    @field_validator("slug", mode="before")
    @classmethod
    def normalize_optional_slug(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_slug(value)

    @field_validator("slug")
    @classmethod
    def validate_optional_slug(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not SLUG_PATTERN.match(value):
            raise ValueError("Slug must contain lowercase letters, digits and hyphens")
        return value


class PageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    slug: str
    description: str | None = None
    status: ContentStatus
    created_at: datetime
    updated_at: datetime


class LinkOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    position: int
    status: ContentStatus
    created_at: datetime | None = None


class SectionLinkOut(LinkOut):
    role: str | None = None


class LinkCreateRequest(BaseModel):
    child_id: int
    position: int | None = Field(default=None, ge=0)
    status: ContentStatus = ContentStatus.draft
    role: str | None = None


class LinkUpdateRequest(BaseModel):
    position: int | None = Field(default=None, ge=0)
    status: ContentStatus | None = None
    role: str | None = None


class PageSectionCreateRequest(BaseModel):
    section_id: int
    position: int | None = Field(default=None, ge=0)
    status: ContentStatus = ContentStatus.draft


class SectionCreateRequest(BaseModel):
    type: str = Field(min_length=1, max_length=50)
    title: str | None = None
    admin_title: str | None = None
    subtitle: str | None = None
    eyebrow: str | None = None
    content: dict[str, Any] = Field(default_factory=dict)
    media_url: str | None = None
    status: ContentStatus = ContentStatus.draft

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: str) -> str:
        if value is None:
            return value
        return str(value).strip().lower()


class SectionUpdateRequest(BaseModel):
    type: str | None = Field(default=None, min_length=1, max_length=50)
    title: str | None = None
    admin_title: str | None = None
    subtitle: str | None = None
    eyebrow: str | None = None
    content: dict[str, Any] | None = None
    media_url: str | None = None
    status: ContentStatus | None = None


class SectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str | None = None
    admin_title: str | None = None
    subtitle: str | None = None
    eyebrow: str | None = None
    content: dict[str, Any] = Field(default_factory=dict)
    media_url: str | None = None
    status: ContentStatus
    created_at: datetime
    updated_at: datetime


class PageSectionOut(SectionOut):
    page_section: LinkOut


class PageRefOut(BaseModel):
    id: int
    title: str
    slug: str
    page_section_id: int
    status: ContentStatus


class SectionDetailOut(SectionOut):
    pages: list[PageRefOut] = Field(default_factory=list)


class SectionDuplicateOut(SectionOut):
    warnings: list[str] = Field(default_factory=list)


class SiteSettingUpdateRequest(BaseModel):
    value: Any = None


# Content resources


class FaqItemCreateRequest(BaseModel):
    question: str = Field(min_length=1, max_length=500)
    answer: str = ""
    position: int | None = Field(default=None, ge=0)


class FaqItemUpdateRequest(BaseModel):
    question: str | None = Field(default=None, min_length=1, max_length=500)
    answer: str | None = None
    position: int | None = Field(default=None, ge=0)


class FaqItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question: str
    answer: str
    position: int
    created_at: datetime
    updated_at: datetime


class TestimonialCreateRequest(BaseModel):
    author_name: str = Field(min_length=1, max_length=255)
    author_role: str | None = None
    company_name: str | None = None
    headline: str | None = None
    quote: str = ""
    avatar_url: str | None = None
    rating: int | None = Field(default=None, ge=1, le=5)
    position: int | None = Field(default=None, ge=0)


class TestimonialUpdateRequest(BaseModel):
    author_name: str | None = Field(default=None, min_length=1, max_length=255)
    author_role: str | None = None
    company_name: str | None = None
    headline: str | None = None
    quote: str | None = None
    avatar_url: str | None = None
    rating: int | None = Field(default=None, ge=1, le=5)
    position: int | None = Field(default=None, ge=0)
    remove_avatar: bool = False


class TestimonialOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_name: str
    author_role: str | None = None
    company_name: str | None = None
    headline: str | None = None
    quote: str
    avatar_url: str | None = None
    rating: int | None = None
    position: int
    created_at: datetime
    updated_at: datetime

    @field_validator("avatar_url", mode="before")
    @classmethod
    def normalize_avatar(cls, value: str | None) -> str | None:
        return normalize_avatar_url(value)


class OfferFeatureCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    subtitle: str | None = None
    description: str | None = None
    icon: str | None = None
    position: int | None = Field(default=None, ge=0)


class OfferFeatureUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    subtitle: str | None = None
    description: str | None = None
    icon: str | None = None
    position: int | None = Field(default=None, ge=0)


class OfferFeatureOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    subtitle: str | None = None
    description: str | None = None
    icon: str | None = None
    position: int
    created_at: datetime
    updated_at: datetime


class CtaButtonCreateRequest(BaseModel):
    label: str = Field(min_length=1, max_length=255)
    url: str = ""
    style: str | None = None
    icon: str | None = None
    position: int | None = Field(default=None, ge=0)


class CtaButtonUpdateRequest(BaseModel):
    label: str | None = Field(default=None, min_length=1, max_length=255)
    url: str | None = None
    style: str | None = None
    icon: str | None = None
    position: int | None = Field(default=None, ge=0)


class CtaButtonOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    label: str
    url: str
    style: str | None = None
    icon: str | None = None
    position: int
    created_at: datetime
    updated_at: datetime


class TimelineItemCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    subtitle: str | None = None
    description: str | None = None
    icon: str | None = None
    position: int | None = Field(default=None, ge=0)


class TimelineItemUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    subtitle: str | None = None
    description: str | None = None
    icon: str | None = None
    position: int | None = Field(default=None, ge=0)


class TimelineItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    subtitle: str | None = None
    description: str | None = None
    icon: str | None = None
    position: int
    created_at: datetime
    updated_at: datetime


class MediaCreateRequest(BaseModel):
    source_type: MediaSourceType
    url: str | None = None
    embed_id: str | None = None
    name: str | None = None
    alt_text: str | None = None
    thumbnail_url: str | None = None
    position: int | None = Field(default=None, ge=0)


class MediaUpdateRequest(BaseModel):
    url: str | None = None
    embed_id: str | None = None
    name: str | None = None
    alt_text: str | None = None
    thumbnail_url: str | None = None
    position: int | None = Field(default=None, ge=0)


class MediaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: MediaType
    source_type: MediaSourceType
    url: str
    embed_id: str | None = None
    name: str | None = None
    alt_text: str | None = None
    thumbnail_url: str | None = None
    position: int
    created_at: datetime
    updated_at: datetime


class UploadOut(BaseModel):
    url: str
    path: str
    content_type: str
    size: int


class ResearchSubjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    subject_type_id: int | None = None
    geography: str | None = None
    category: str | None = None
    description: str | None = None
    status: ContentStatus = ContentStatus.draft
    position: int | None = Field(default=None, ge=0)


class ResearchSubjectUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    subject_type_id: int | None = None
    geography: str | None = None
    category: str | None = None
    description: str | None = None
    status: ContentStatus | None = None
    position: int | None = Field(default=None, ge=0)


class ResearchSubjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    subject_type_id: int | None = None
    geography: str | None = None
    category: str | None = None
    description: str | None = None
    status: ContentStatus
    position: int
    created_at: datetime
    updated_at: datetime


# Analytics


class AnalyticsEventCreateRequest(BaseModel):
    event_type: str | None = None
    entity_type: str | None = None
    entity_id: str | int | None = None
    session_id: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    metadata: dict[str, Any] | None = None


class AnalyticsEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: str
    entity_type: str
    entity_id: str
    session_id: str | None = None
    country: str | None = None
    city: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="event_metadata")
    created_at: datetime


# RAG: knowledge bases, documents, projects


class KnowledgeBaseCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    type: Literal["shared", "project"] = "shared"
    is_active: bool = True


class KnowledgeBaseUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None


class KnowledgeBaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    type: str
    is_active: bool
    document_count: int = 0
    created_at: datetime
    updated_at: datetime


class DocumentTextCreateRequest(BaseModel):
    knowledge_base_id: int
    title: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1)
    should_chunk: bool = True


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    knowledge_base_id: int
    knowledge_base_name: str | None = None
    run_id: int | None = None
    title: str
    source_type: str
    storage_path: str | None = None
    file_url: str | None = None
    file_type: str | None = None
    mime_type: str | None = None
    file_size: int | None = None
    status: DocumentStatus
    should_chunk: bool
    chunk_count: int
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class DocumentRemoveOut(BaseModel):
    success: bool = True
    id: int
    already_deleted: bool = False
    chunks_deleted: int = 0


class ChunkIn(BaseModel):
    chunk_index: int | None = Field(default=None, ge=0)
    content: str = Field(min_length=1)
    embedding: list[float] | None = None


class ChunkReplaceRequest(BaseModel):
    chunks: list[ChunkIn]


class ProjectTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    label: str
    description: str | None = None
    enabled: bool


class ProjectTypeUpdateRequest(BaseModel):
    label: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    enabled: bool | None = None


class ProjectCreateRequest(BaseModel):
    type: Literal["client", "niche"]
    name: str | None = Field(default=None, max_length=255)
    client_name: str | None = Field(default=None, max_length=255)
    status: str = "active"
    description: str | None = None
    geography: str | None = None
    category: str | None = None


class ProjectUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    client_name: str | None = Field(default=None, min_length=1, max_length=255)
    status: str | None = None
    description: str | None = None
    geography: str | None = None
    category: str | None = None
    kb_id: int | None = None


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    name: str
    slug: str
    client_name: str | None = None
    status: str
    description: str | None = None
    geography: str | None = None
    category: str | None = None
    kb_id: int
    knowledge_base_name: str | None = None
    document_count: int = 0
    archived_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ProjectDocumentLinkRequest(BaseModel):
    document_id: int


class SubjectTypeCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    label: str = Field(min_length=1, max_length=255)
    description: str | None = None
    icon: str | None = None
    enabled: bool = True


class SubjectTypeUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    label: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    icon: str | None = None
    enabled: bool | None = None


class SubjectTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    label: str
    description: str | None = None
    icon: str | None = None
    enabled: bool
    created_at: datetime


# Workflows and runs


class WorkflowCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    label: str | None = None
    description: str | None = None
    icon: str | None = None
    estimated_cost: float | None = Field(default=None, ge=0)
    estimated_time_minutes: int | None = Field(default=None, ge=0)
    input_schema: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    knowledge_base_target: Literal["project", "knowledgebase"] = "project"
    target_knowledge_base_id: int | None = None
    automation_name: str | None = None
    subject_type_id: int | None = None
    project_type_id: int | None = None


class WorkflowUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    label: str | None = None
    description: str | None = None
    icon: str | None = None
    estimated_cost: float | None = Field(default=None, ge=0)
    estimated_time_minutes: int | None = Field(default=None, ge=0)
    input_schema: dict[str, Any] | None = None
    enabled: bool | None = None
    knowledge_base_target: Literal["project", "knowledgebase"] | None = None
    target_knowledge_base_id: int | None = None
    automation_name: str | None = None
    subject_type_id: int | None = None
    project_type_id: int | None = None


class WorkflowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    label: str | None = None
    description: str | None = None
    icon: str | None = None
    estimated_cost: float | None = None
    estimated_time_minutes: int | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict)
    enabled: bool
    knowledge_base_target: str
    target_knowledge_base_id: int | None = None
    automation_name: str | None = None
    subject_type_id: int | None = None
    project_type_id: int | None = None
    has_secret: bool = False
    created_at: datetime
    updated_at: datetime


class WorkflowSecretRequest(BaseModel):
    webhook_url: str = Field(min_length=1, max_length=1024)
    api_key: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, value: str) -> str:
        value = value.strip()
        if not URL_PATTERN.match(value):
            raise ValueError("webhook_url must be a valid http(s) URL")
        return value


class WorkflowSecretStatusOut(BaseModel):
    workflow_id: int
    configured: bool
    updated_at: datetime | None = None


class WorkflowExecuteRequest(BaseModel):
    project_id: int | None = None
    research_subject_id: int | None = None
    input: dict[str, Any] = Field(default_factory=dict)


class WorkflowExecuteOut(BaseModel):
    success: bool
    message: str
    run_id: int
    data: Any = None


class RunOut(BaseModel):
    id: int
    workflow_id: int | None = None
    workflow_name: str | None = None
    workflow_label: str | None = None
    project_id: int | None = None
    project_name: str | None = None
    research_subject_id: int | None = None
    knowledge_base_id: int | None = None
    knowledge_base_name: str | None = None
    status: RunStatus
    input: dict[str, Any] = Field(default_factory=dict)
    fit_score: float | None = None
    verdict: str | None = None
    error_message: str | None = None
    output_id: int | None = None
    created_at: datetime
    updated_at: datetime


class RunOutputRequest(BaseModel):
    status: Literal["completed", "failed"] = "completed"
    output_json: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    document_ids: list[int] = Field(default_factory=list)


class ReportOut(BaseModel):
    id: int
    run_id: int
    automation_name: str | None = None
    workflow_name: str | None = None
    project_name: str | None = None
    output_json: dict[str, Any]
    created_at: datetime


# Chat


class ContextRef(BaseModel):
    context_type: ContextType
    context_id: int


class ConversationCreateRequest(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    contexts: list[ContextRef] = Field(default_factory=list)


class ConversationUpdateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)


class ContextOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    context_type: ContextType
    context_id: int
    created_at: datetime


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    content: str
    citations: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="message_metadata")
    created_at: datetime


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str | None = None
    message_count: int = 0
    created_at: datetime
    updated_at: datetime


class ConversationDetailOut(ConversationOut):
    contexts: list[ContextOut] = Field(default_factory=list)
    messages: list[MessageOut] = Field(default_factory=list)


class MessageCreateRequest(BaseModel):
    content: str | None = None
