import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import content_resources, reports, webhooks
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_admin, get_current_user, get_db_read, get_db_write
from funnel_cms.routers.projects import normalize_workflow_type


router = APIRouter(tags=["workflows"])
logger = logging.getLogger(__name__)

KNOWLEDGE_BASE_TARGET = "knowledgebase"


def ensure_default_workflows(db: Session) -> None:
    for automation in reports.AUTOMATIONS:
        exists = db.query(models.Workflow).filter(models.Workflow.name == automation.name).first()
        if exists:
            continue
        db.add(
            models.Workflow(
                name=automation.name,
                slug=normalize_workflow_type(automation.name),
                label=automation.header.report_type_label,
                description=automation.header.subtitle,
                automation_name=automation.name,
                knowledge_base_target="project",
                enabled=True,
                input_schema={},
            )
        )
    db.commit()


def _workflow_or_404(db: Session, workflow_id: int) -> models.Workflow:
    workflow = db.query(models.Workflow).filter(models.Workflow.id == workflow_id).first()
    if workflow is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow


def _ensure_name_free(db: Session, name: str, exclude_id: int | None = None) -> None:
    query = db.query(models.Workflow.id).filter(models.Workflow.name == name)
    if exclude_id is not None:
        query = query.filter(models.Workflow.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=400, detail="Workflow name already exists")


def _ensure_target_knowledge_base(db: Session, kb_id: int | None) -> None:
    if kb_id is None:
        return
    if not db.query(models.KnowledgeBase.id).filter(models.KnowledgeBase.id == kb_id).first():
        raise HTTPException(status_code=400, detail="Invalid target_knowledge_base_id")


def to_workflow_out(workflow: models.Workflow) -> schemas.WorkflowOut:
    out = schemas.WorkflowOut.model_validate(workflow)
    out.has_secret = workflow.secret is not None
    return out


@router.get("", response_model=list[schemas.WorkflowOut])
def list_workflows(
    enabled: bool | None = Query(default=None),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    query = db.query(models.Workflow)
    if enabled is not None:
        query = query.filter(models.Workflow.enabled.is_(enabled))
    rows = query.order_by(models.Workflow.name.asc(), models.Workflow.id.asc()).all()
    return [to_workflow_out(row) for row in rows]


@router.post("", response_model=schemas.WorkflowOut, status_code=status.HTTP_201_CREATED)
def create_workflow(
    payload: schemas.WorkflowCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    name = payload.name.strip()
    _ensure_name_free(db, name)
    _ensure_target_knowledge_base(db, payload.target_knowledge_base_id)
    values = payload.model_dump()
    values["name"] = name
    workflow = models.Workflow(slug=normalize_workflow_type(name), **values)
    db.add(workflow)
    commit_or_400(db, "Create workflow")
    db.refresh(workflow)
    return to_workflow_out(workflow)


@router.get("/{workflow_id}", response_model=schemas.WorkflowOut)
def get_workflow(
    workflow_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return to_workflow_out(_workflow_or_404(db, workflow_id))


@router.put("/{workflow_id}", response_model=schemas.WorkflowOut)
def update_workflow(
    workflow_id: int,
    payload: schemas.WorkflowUpdateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    workflow = _workflow_or_404(db, workflow_id)
    values = payload.model_dump(exclude_unset=True)
    name = values.pop("name", None)
    if name is not None:
        name = name.strip()
        _ensure_name_free(db, name, exclude_id=workflow.id)
        workflow.name = name
        workflow.slug = normalize_workflow_type(name)
    if "target_knowledge_base_id" in values:
        _ensure_target_knowledge_base(db, values["target_knowledge_base_id"])
        workflow.target_knowledge_base_id = values.pop("target_knowledge_base_id")
    content_resources.apply_updates(workflow, values)
    db.add(workflow)
    commit_or_400(db, "Update workflow")
    db.refresh(workflow)
    return to_workflow_out(workflow)


@router.delete("/{workflow_id}", response_model=schemas.DeleteResult)
def delete_workflow(
    workflow_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    workflow = _workflow_or_404(db, workflow_id)
    db.query(models.Run).filter(models.Run.workflow_id == workflow.id).update(
        {models.Run.workflow_id: None},
        synchronize_session=False,
    )
    db.delete(workflow)
    commit_or_400(db, "Delete workflow")
    return schemas.DeleteResult(id=workflow_id)


@router.get("/{workflow_id}/secrets", response_model=schemas.WorkflowSecretStatusOut)
def get_workflow_secret_status(
    workflow_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    workflow = _workflow_or_404(db, workflow_id)
    secret = workflow.secret
    return schemas.WorkflowSecretStatusOut(
        workflow_id=workflow.id,
        configured=secret is not None,
        updated_at=secret.updated_at if secret else None,
    )


@router.put("/{workflow_id}/secrets", response_model=schemas.WorkflowSecretStatusOut)
def put_workflow_secret(
    workflow_id: int,
    payload: schemas.WorkflowSecretRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_admin),
):
    workflow = _workflow_or_404(db, workflow_id)
    secret = workflow.secret
    if secret is None:
        secret = models.WorkflowSecret(workflow_id=workflow.id)
    secret.webhook_url = payload.webhook_url
    secret.api_key = payload.api_key or None
    secret.config = payload.config
    db.add(secret)
    commit_or_400(db, "Save workflow secret")
    db.refresh(secret)
    logger.info("workflow secret saved: workflow_id=%s", workflow.id)
    return schemas.WorkflowSecretStatusOut(workflow_id=workflow.id, configured=True, updated_at=secret.updated_at)


@router.delete("/{workflow_id}/secrets", response_model=schemas.DeleteResult)
def delete_workflow_secret(
    workflow_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_admin),
):
    workflow = _workflow_or_404(db, workflow_id)
    if workflow.secret is None:
        raise HTTPException(status_code=404, detail="Webhook URL not configured for this workflow")
    db.delete(workflow.secret)
    commit_or_400(db, "Delete workflow secret")
    return schemas.DeleteResult(id=workflow_id)


def _execution_target(
    db: Session,
    payload: schemas.WorkflowExecuteRequest,
) -> tuple[models.Project | None, models.ResearchSubject | None]:
    project = None
    subject = None
    if payload.project_id is not None:
        project = db.query(models.Project).filter(models.Project.id == payload.project_id).first()
        if project is None:
            raise HTTPException(status_code=404, detail="Project not found")
    if payload.research_subject_id is not None:
        subject = (
            db.query(models.ResearchSubject)
            .filter(models.ResearchSubject.id == payload.research_subject_id)
            .first()
        )
        if subject is None:
            raise HTTPException(status_code=404, detail="Research subject not found")
    if project is None and subject is None:
        raise HTTPException(status_code=400, detail="project_id or research_subject_id is required")
    return project, subject


def _resolve_knowledge_base_id(workflow: models.Workflow, project: models.Project | None) -> int:
    if workflow.knowledge_base_target == KNOWLEDGE_BASE_TARGET:
        if workflow.target_knowledge_base_id is None:
            raise HTTPException(status_code=400, detail="Workflow target_knowledge_base_id is not configured")
        return workflow.target_knowledge_base_id
    if project is None or project.kb_id is None:
        raise HTTPException(status_code=400, detail="Project kb_id is not configured")
    return project.kb_id


def build_webhook_payload(
    run: models.Run,
    workflow: models.Workflow,
    user: models.User,
    project: models.Project | None,
    subject: models.ResearchSubject | None,
    extra_input: dict,
) -> dict:
    source = project or subject
    return {
        "Name": source.name or "",
        "Geography": source.geography or "",
        "Category": source.category or "",
        "Description": source.description or "",
        "UserId": user.id,
        "WorkflowId": workflow.id,
        "ProjectId": project.id if project else None,
        "ResearchSubjectId": subject.id if subject else None,
        "RunId": run.id,
        "KnowledgeBaseId": run.knowledge_base_id,
        "Input": extra_input,
    }


@router.post("/{workflow_id}/execute", response_model=schemas.WorkflowExecuteOut)
def execute_workflow(
    workflow_id: int,
    payload: schemas.WorkflowExecuteRequest,
    db: Session = Depends(get_db_write),
    current_user: models.User = Depends(get_current_user),
):
    workflow = _workflow_or_404(db, workflow_id)
    secret = workflow.secret
    if secret is None or not secret.webhook_url:
        raise HTTPException(status_code=404, detail="Webhook URL not configured for this workflow")
    if not workflow.enabled:
        raise HTTPException(status_code=400, detail="Workflow is disabled")

    project, subject = _execution_target(db, payload)
    kb_id = _resolve_knowledge_base_id(workflow, project)

    run = models.Run(
        workflow_id=workflow.id,
        project_id=project.id if project else None,
        research_subject_id=subject.id if subject else None,
        knowledge_base_id=kb_id,
        status=models.RunStatus.processing,
        input=payload.input,
        created_by=current_user.id,
    )
    db.add(run)
    commit_or_400(db, "Create run")
    db.refresh(run)

    body = build_webhook_payload(run, workflow, current_user, project, subject, payload.input)
    try:
        data = webhooks.post_json(secret.webhook_url, body, api_key=secret.api_key)
    except webhooks.WebhookError as error:
        run.status = models.RunStatus.failed
        run.error_message = str(error)
        db.add(run)
        commit_or_400(db, "Mark run failed")
        logger.warning("workflow execution failed: workflow_id=%s run_id=%s", workflow.id, run.id, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to call webhook: {error}") from error

    logger.info("workflow executed: workflow_id=%s run_id=%s", workflow.id, run.id)
    return schemas.WorkflowExecuteOut(
        success=True,
        message="Workflow executed successfully",
        run_id=run.id,
        data=data if data is not None else {"message": "Workflow executed successfully"},
    )
