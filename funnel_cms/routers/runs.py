import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core import reports
from funnel_cms.core.content_resources import commit_or_400
from funnel_cms.deps import get_current_user, get_db_read, get_db_write, require_automation_secret


router = APIRouter(tags=["runs"])
reports_router = APIRouter(tags=["reports"])
logger = logging.getLogger(__name__)


def _run_or_404(db: Session, run_id: int) -> models.Run:
    run = db.query(models.Run).filter(models.Run.id == run_id).first()
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


def _latest_output(run: models.Run) -> models.RunOutput | None:
    if not run.outputs:
        return None
    return max(run.outputs, key=lambda output: output.id)


def to_run_out(run: models.Run) -> schemas.RunOut:
    output = _latest_output(run)
    return schemas.RunOut(
        id=run.id,
        workflow_id=run.workflow_id,
        workflow_name=run.workflow.name if run.workflow else None,
        workflow_label=run.workflow.label if run.workflow else None,
        project_id=run.project_id,
        project_name=run.project.name if run.project else None,
        research_subject_id=run.research_subject_id,
        knowledge_base_id=run.knowledge_base_id,
        knowledge_base_name=run.knowledge_base.name if run.knowledge_base else None,
        status=run.status,
        input=run.input or {},
        fit_score=run.fit_score,
        verdict=run.verdict,
        error_message=run.error_message,
        output_id=output.id if output else None,
        created_at=run.created_at,
        updated_at=run.updated_at,
    )


@router.get("", response_model=list[schemas.RunOut])
def list_runs(
    project_id: int | None = Query(default=None),
    workflow_id: int | None = Query(default=None),
    status_filter: models.RunStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    query = db.query(models.Run)
    if project_id is not None:
        query = query.filter(models.Run.project_id == project_id)
    if workflow_id is not None:
        query = query.filter(models.Run.workflow_id == workflow_id)
    if status_filter is not None:
        query = query.filter(models.Run.status == status_filter)
    rows = query.order_by(models.Run.created_at.desc(), models.Run.id.desc()).limit(limit).all()
    return [to_run_out(row) for row in rows]


@router.get("/{run_id}", response_model=schemas.RunOut)
def get_run(
    run_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    return to_run_out(_run_or_404(db, run_id))


@router.delete("/{run_id}", response_model=schemas.DeleteResult)
def delete_run(
    run_id: int,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_user),
):
    run = _run_or_404(db, run_id)
    db.query(models.Document).filter(models.Document.run_id == run.id).update(
        {models.Document.run_id: None},
        synchronize_session=False,
    )
    db.delete(run)
    commit_or_400(db, "Delete run")
    return schemas.DeleteResult(id=run_id)


@router.post("/{run_id}/output", response_model=schemas.RunOut)
def save_run_output(
    run_id: int,
    payload: schemas.RunOutputRequest,
    db: Session = Depends(get_db_write),
    _: None = Depends(require_automation_secret),
):
    run = _run_or_404(db, run_id)
    if payload.output_json:
        db.add(models.RunOutput(run_id=run.id, output_json=payload.output_json))

    if payload.status == "failed":
        run.status = models.RunStatus.failed
        run.error_message = payload.error_message or "Automation reported a failure"
    else:
        run.status = models.RunStatus.completed
        run.error_message = None
        fit_score, verdict = reports.evaluation_summary(payload.output_json)
        if fit_score is not None or verdict:
            run.fit_score, run.verdict = fit_score, verdict

    if payload.document_ids:
        db.query(models.Document).filter(
            models.Document.id.in_(payload.document_ids),
            models.Document.deleted_at.is_(None),
        ).update({models.Document.run_id: run.id}, synchronize_session=False)

    db.add(run)
    commit_or_400(db, "Save run output")
    db.refresh(run)
    logger.info("run output stored: run_id=%s status=%s", run.id, run.status.value)
    return to_run_out(run)


def _find_output(db: Session, report_id: int) -> models.RunOutput:
    output = db.query(models.RunOutput).filter(models.RunOutput.id == report_id).first()
    if output is None:
        output = (
            db.query(models.RunOutput)
            .filter(models.RunOutput.run_id == report_id)
            .order_by(models.RunOutput.id.desc())
            .first()
        )
    if output is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return output


def _automation_name(run: models.Run) -> str | None:
    workflow = run.workflow
    if workflow is None:
        return None
    return workflow.automation_name or workflow.name


@reports_router.get("/{report_id}", response_model=schemas.ReportOut)
def get_report(
    report_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    output = _find_output(db, report_id)
    run = output.run
    return schemas.ReportOut(
        id=output.id,
        run_id=run.id,
        automation_name=_automation_name(run),
        workflow_name=run.workflow.name if run.workflow else None,
        project_name=run.project.name if run.project else None,
        output_json=output.output_json or {},
        created_at=output.created_at,
    )


@reports_router.get("/{report_id}/view")
def get_report_view(
    report_id: int,
    db: Session = Depends(get_db_read),
    _: models.User = Depends(get_current_user),
):
    output = _find_output(db, report_id)
    run = output.run
    view = reports.build_report_view(_automation_name(run), output.output_json)
    view["report"] = {
        "id": output.id,
        "run_id": run.id,
        "project_name": run.project.name if run.project else None,
        "created_at": output.created_at.isoformat() if output.created_at else None,
    }
    return view
