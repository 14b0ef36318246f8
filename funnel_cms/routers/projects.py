import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import documents
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_admin, get_current_user, get_db_read, get_db_write


router = APIRouter(tags=["projects"])
project_types_router = APIRouter(tags=["project-types"])
logger = logging.getLogger(__name__)

DEFAULT_PROJECT_TYPES = [
    ("client", "Client", "Work for a named client"),
    ("niche", "Niche Research", "Market research on a niche and geography"),
]


def ensure_default_project_types(db: Session) -> None:
    for name, label, description in DEFAULT_PROJECT_TYPES:
        exists = db.query(models.ProjectType).filter(models.ProjectType.name == name).first()
        if exists:
            continue
        db.add(models.ProjectType(name=name, label=label, description=description, enabled=True))
    db.commit()


def normalize_workflow_type(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "_")


def _project_or_404(db: Session, project_id: int) -> models.Project:
    project = db.query(models.Project).filter(models.Project.id == project_id).first()
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def _project_type_by_name(db: Session, name: str) -> models.ProjectType:
    project_type = db.query(models.ProjectType).filter(models.ProjectType.name == name).first()
    if project_type is None or not project_type.enabled:
        raise HTTPException(status_code=400, detail=f"Project type '{name}' is not available")
    return project_type


def _linked_document_counts(db: Session, projects: list[models.Project]) -> dict[int, int]:
    if not projects:
        return {}
    counts: dict[int, int] = {}
    kb_ids = {project.kb_id for project in projects}
    kb_rows = (
        db.query(models.Document.knowledge_base_id, func.count(models.Document.id))
        .filter(models.Document.knowledge_base_id.in_(kb_ids), models.Document.deleted_at.is_(None))
        .group_by(models.Document.knowledge_base_id)
        .all()
    )
    kb_counts = {kb_id: int(count) for kb_id, count in kb_rows}
    link_rows = (
        db.query(models.ProjectDocument.project_id, func.count(models.ProjectDocument.id))
        .join(models.Document, models.Document.id == models.ProjectDocument.document_id)
        .filter(
            models.ProjectDocument.project_id.in_([project.id for project in projects]),
            models.Document.deleted_at.is_(None),
        )
        .group_by(models.ProjectDocument.project_id)
        .all()
    )
    link_counts = {project_id: int(count) for project_id, count in link_rows}
    for project in projects:
        counts[project.id] = kb_counts.get(project.kb_id, 0) + link_counts.get(project.id, 0)
    return counts


def to_project_out(project: models.Project, document_count: int = 0) -> schemas.ProjectOut:
    return schemas.ProjectOut(
        id=project.id,
        type=project.project_type.name if project.project_type else "",
        name=project.name,
        slug=project.slug,
        client_name=project.client_name,
        status=project.status,
        description=project.description,
        geography=project.geography,
        category=project.category,
        kb_id=project.kb_id,
        knowledge_base_name=project.knowledge_base.name if project.knowledge_base else None,
        document_count=document_count,
        archived_at=project.archived_at,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


@project_types_router.get("", response_model=list[schemas.ProjectTypeOut])
def list_project_types(
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return db.query(models.ProjectType).order_by(models.ProjectType.id.asc()).all()


@project_types_router.put("/{project_type_id}", response_model=schemas.ProjectTypeOut)
def update_project_type(
    project_type_id: int,
    payload: schemas.ProjectTypeUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_admin),
):
    project_type = db.query(models.ProjectType).filter(models.ProjectType.id == project_type_id).first()
    if project_type is None:
        raise HTTPException(status_code=404, detail="Project type not found")
    if payload.label is not None:
        project_type.label = payload.label.strip()
    if payload.description is not None:
        project_type.description = payload.description
    if payload.enabled is not None:
        project_type.enabled = payload.enabled
    db.add(project_type)
    commit_or_400(db, "Update project type")
    db.refresh(project_type)
    return project_type


@router.get("", response_model=list[schemas.ProjectOut])
def list_projects(
    search: str | None = Query(default=None),
    project_type: str | None = Query(default=None, alias="type"),
    include_archived: bool = Query(default=False),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    query = db.query(models.Project)
    keyword = (search or "").strip()
    if keyword:
        pattern = f"%{keyword}%"
        query = query.filter(or_(models.Project.name.ilike(pattern), models.Project.client_name.ilike(pattern)))
    if project_type:
        query = query.join(models.ProjectType, models.ProjectType.id == models.Project.project_type_id).filter(
            models.ProjectType.name == project_type
        )
    if not include_archived:
        query = query.filter(models.Project.archived_at.is_(None))
    rows = query.order_by(models.Project.created_at.desc(), models.Project.id.desc()).all()
    counts = _linked_document_counts(db, rows)
    return [to_project_out(row, counts.get(row.id, 0)) for row in rows]


@router.post("", response_model=schemas.ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: schemas.ProjectCreateRequest,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    project_type = _project_type_by_name(db, payload.type)
    if payload.type == "client":
        client_name = (payload.client_name or "").strip()
        if not client_name:
            raise HTTPException(status_code=400, detail="client_name is required for client projects")
        name = client_name
    else:
        name = (payload.name or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="name is required for niche projects")
        client_name = name

    slug = schemas.normalize_slug(name) or "project"
    kb = models.KnowledgeBase(
        name=f"{name} Workspace",
        description=f"Workspace knowledge base for {name}",
        type="project",
        is_active=True,
        created_by=current_user.id,
    )
    db.add(kb)
    db.flush()

    project = models.Project(
        project_type_id=project_type.id,
        name=name,
        slug=slug,
        client_name=client_name,
        status=payload.status,
        description=payload.description,
        geography=(payload.geography or None) if payload.type == "niche" else None,
        category=(payload.category or None) if payload.type == "niche" else None,
        kb_id=kb.id,
        created_by=current_user.id,
    )
    db.add(project)
    commit_or_400(db, "Create project")
    db.refresh(project)
    logger.info("project created: id=%s type=%s kb=%s", project.id, payload.type, kb.id)
    return to_project_out(project)


@router.get("/{project_id}", response_model=schemas.ProjectOut)
def get_project(
    project_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    project = _project_or_404(db, project_id)
    return to_project_out(project, _linked_document_counts(db, [project]).get(project.id, 0))


@router.put("/{project_id}", response_model=schemas.ProjectOut)
def update_project(
    project_id: int,
    payload: schemas.ProjectUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    project = _project_or_404(db, project_id)
    if payload.kb_id is not None and payload.kb_id != project.kb_id:
        raise HTTPException(status_code=400, detail="kb_id cannot be changed")

    type_name = project.project_type.name if project.project_type else None
    if type_name == "client":
        if payload.client_name is not None:
            project.client_name = payload.client_name.strip()
            project.name = project.client_name
    elif type_name == "niche":
        if payload.name is not None:
            project.name = payload.name.strip()
            project.client_name = project.name
        if payload.geography is not None:
            project.geography = payload.geography or None
        if payload.category is not None:
            project.category = payload.category or None
    if payload.status is not None:
        project.status = payload.status
    if payload.description is not None:
        project.description = payload.description or None

    db.add(project)
    commit_or_400(db, "Update project")
    db.refresh(project)
    return to_project_out(project, _linked_document_counts(db, [project]).get(project.id, 0))


@router.delete("/{project_id}", response_model=schemas.DeleteResult)
def delete_project(
    project_id: int,
    archive: bool = Query(default=False),
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    project = _project_or_404(db, project_id)
    if archive:
        project.archived_at = documents.utc_now()
        project.status = "archived"
        db.add(project)
        commit_or_400(db, "Archive project")
        return schemas.DeleteResult(id=project_id)

    db.query(models.ProjectDocument).filter(models.ProjectDocument.project_id == project_id).delete(
        synchronize_session=False
    )
    db.query(models.Run).filter(models.Run.project_id == project_id).update(
        {models.Run.project_id: None},
        synchronize_session=False,
    )
    db.delete(project)
    commit_or_400(db, "Delete project")
    logger.info("project deleted: id=%s", project_id)
    return schemas.DeleteResult(id=project_id)


@router.get("/{project_id}/documents", response_model=list[schemas.DocumentOut])
def list_project_documents(
    project_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    project = _project_or_404(db, project_id)
    rows = (
        documents.live_documents(db)
        .join(models.ProjectDocument, models.ProjectDocument.document_id == models.Document.id)
        .filter(models.ProjectDocument.project_id == project.id)
        .order_by(models.ProjectDocument.created_at.desc(), models.ProjectDocument.id.desc())
        .all()
    )
    return [documents.to_document_out(row) for row in rows]


@router.post("/{project_id}/documents", response_model=list[schemas.DocumentOut], status_code=status.HTTP_201_CREATED)
def link_project_document(
    project_id: int,
    payload: schemas.ProjectDocumentLinkRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    project = _project_or_404(db, project_id)
    document = documents.live_documents(db).filter(models.Document.id == payload.document_id).first()
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")

    exists = (
        db.query(models.ProjectDocument)
        .filter(
            models.ProjectDocument.project_id == project.id,
            models.ProjectDocument.document_id == document.id,
        )
        .first()
    )
    if exists:
        raise HTTPException(status_code=400, detail="Document already linked to this project")

    db.add(models.ProjectDocument(project_id=project.id, document_id=document.id))
    commit_or_400(db, "Link document")
    return list_project_documents(project_id, db, _)


@router.delete("/{project_id}/documents/{document_id}", response_model=schemas.DeleteResult)
def unlink_project_document(
    project_id: int,
    document_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    _project_or_404(db, project_id)
    deleted = (
        db.query(models.ProjectDocument)
        .filter(
            models.ProjectDocument.project_id == project_id,
            models.ProjectDocument.document_id == document_id,
        )
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise HTTPException(status_code=404, detail="Document link not found")
    commit_or_400(db, "Unlink document")
    return schemas.DeleteResult(id=document_id)


@router.get("/{project_id}/documents-by-workflow", response_model=list[schemas.DocumentOut])
def list_documents_by_workflow(
    project_id: int,
    workflow_type: str | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    if not workflow_type or not workflow_type.strip():
        raise HTTPException(status_code=400, detail="workflow_type is required")
    project = _project_or_404(db, project_id)

    slug = normalize_workflow_type(workflow_type)
    workflow = (
        db.query(models.Workflow)
        .filter(or_(models.Workflow.slug == slug, models.Workflow.name == workflow_type.strip()))
        .first()
    )
    if workflow is None:
        return []

    run_ids = [
        row[0]
        for row in db.query(models.Run.id).filter(
            models.Run.workflow_id == workflow.id,
            models.Run.project_id == project.id,
        )
    ]
    if not run_ids:
        return []
    rows = (
        documents.live_documents(db)
        .filter(models.Document.run_id.in_(run_ids))
        .order_by(models.Document.created_at.desc(), models.Document.id.desc())
        .all()
    )
    return [documents.to_document_out(row) for row in rows]
