import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from funnel_cms import models
from funnel_cms.core.config import settings
from funnel_cms.core.security import get_password_hash
from funnel_cms.core.db_read_write import WriteSessionLocal, write_engine
from funnel_cms.db import Base
from funnel_cms.routers import (
    ai_presets,
    analytics,
    auth,
    chat,
    cta_buttons,
    documents,
    faq_items,
    knowledge_bases,
    media,
    offer_features,
    pages,
    projects,
    public,
    research_subjects,
    runs,
    sections,
    site_settings,
    subject_types,
    testimonials,
    timeline,
    uploads,
    workflows,
)


app = FastAPI(title="Funnel CMS", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth")

app.include_router(pages.router, prefix="/api/admin/pages")
app.include_router(sections.router, prefix="/api/admin/sections")
app.include_router(faq_items.router, prefix="/api/admin/faq-items")
app.include_router(testimonials.router, prefix="/api/admin/testimonials")
app.include_router(offer_features.router, prefix="/api/admin/offer-features")
app.include_router(cta_buttons.router, prefix="/api/admin/cta-buttons")
app.include_router(timeline.router, prefix="/api/admin/timeline")
app.include_router(media.router, prefix="/api/admin/media")
app.include_router(research_subjects.router, prefix="/api/admin/research-subjects")
app.include_router(uploads.router, prefix="/api/admin/upload")
app.include_router(site_settings.router, prefix="/api/admin/site-settings")
app.include_router(analytics.router, prefix="/api/admin/analytics")
app.include_router(ai_presets.router, prefix="/api/admin/ai")

app.include_router(public.router, prefix="/api/public")

app.include_router(knowledge_bases.router, prefix="/api/intel/knowledge-bases")
app.include_router(documents.router, prefix="/api/intel/documents")
app.include_router(documents.kb_documents_router, prefix="/api/intel/knowledge-base/documents")
app.include_router(projects.project_types_router, prefix="/api/intel/project-types")
app.include_router(projects.router, prefix="/api/intel/projects")
app.include_router(subject_types.router, prefix="/api/intel/subject-types")
app.include_router(workflows.router, prefix="/api/intel/workflows")
app.include_router(runs.router, prefix="/api/intel/runs")
app.include_router(runs.reports_router, prefix="/api/intel/reports")

app.include_router(chat.router, prefix="/api/chat")


logger = logging.getLogger(__name__)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return JSONResponse(status_code=400, content={"error": message})


def seed_defaults(db) -> None:
    admin_email = settings.ADMIN_EMAIL.strip().lower()
    admin = db.query(models.User).filter(models.User.email == admin_email).first()
    if admin is None:
        db.add(
            models.User(
                email=admin_email,
                hashed_password=get_password_hash(settings.ADMIN_PASSWORD),
                role=models.UserRole.admin,
            )
        )
        db.commit()
        logger.info("admin user created: email=%s", admin_email)

    projects.ensure_default_project_types(db)
    subject_types.ensure_default_subject_types(db)
    workflows.ensure_default_workflows(db)


@app.on_event("startup")
def startup_event():
    Base.metadata.create_all(bind=write_engine)

    db = WriteSessionLocal()
    try:
        seed_defaults(db)
    finally:
        db.close()


@app.get("/api/health")
def health():
    return {"status": "ok"}
