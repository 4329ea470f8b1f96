"""Job endpoints: the minimum needed to put a job in front of the escrow flow."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from tradiepay.db import get_db
from tradiepay.models import ApiKey, ApiScope, Job, JobStatus, User, UserRole
from tradiepay.schemas.job import JobAssign, JobCreate, JobRead
from tradiepay.security import require_api_key
from tradiepay.services.escrow_payments import active_payment_for_job
from tradiepay.utils.audit import actor_from_api_key, log_audit
from tradiepay.utils.errors import ForbiddenActor, JobNotFound, UserNotFound, error_response

router = APIRouter(prefix="/jobs", tags=["jobs"])

_ASSIGNABLE = (JobStatus.OPEN, JobStatus.ASSIGNED)


def _ensure_owner(api_key: ApiKey, tradie_id: int) -> None:
    if api_key.scope in (ApiScope.admin, ApiScope.support):
        return
    if api_key.user_id is not None and api_key.user_id == tradie_id:
        return
    raise ForbiddenActor(details={"tradie_id": tradie_id})


def _get_job_or_404(db: Session, job_id: int) -> Job:
    job = db.get(Job, job_id)
    if job is None:
        raise JobNotFound(details={"job_id": job_id})
    return job


@router.post("", response_model=JobRead, status_code=status.HTTP_201_CREATED)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_api_key),
) -> Job:
    _ensure_owner(api_key, payload.tradie_id)
    if db.get(User, payload.tradie_id) is None:
        raise UserNotFound(details={"user_id": payload.tradie_id})

    job = Job(title=payload.title, tradie_id=payload.tradie_id, status=JobStatus.OPEN)
    db.add(job)
    db.flush()
    log_audit(
        db,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
        action="CREATE_JOB",
        entity="Job",
        entity_id=job.id,
        data={"tradie_id": job.tradie_id},
    )
    db.commit()
    db.refresh(job)
    return job


@router.get("/{job_id}", response_model=JobRead)
def get_job(
    job_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_api_key),
) -> Job:
    job = _get_job_or_404(db, job_id)
    if api_key.user_id is not None and api_key.user_id == job.assigned_helper_id:
        return job
    _ensure_owner(api_key, job.tradie_id)
    return job


@router.post("/{job_id}/assign", response_model=JobRead)
def assign_job(
    job_id: int,
    payload: JobAssign,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_api_key),
) -> Job:
    """Assign a helper; only open or not-yet-funded assigned jobs can change hands."""

    job = _get_job_or_404(db, job_id)
    _ensure_owner(api_key, job.tradie_id)
    if job.status not in _ASSIGNABLE or active_payment_for_job(db, job.id) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response(
                "JOB_NOT_ASSIGNABLE",
                "Job can no longer be assigned.",
                {"job_id": job.id, "job_status": job.status.value},
            ),
        )

    helper = db.get(User, payload.helper_id)
    if helper is None or helper.role != UserRole.HELPER:
        raise UserNotFound("Helper not found.", details={"user_id": payload.helper_id})

    job.assigned_helper_id = helper.id
    job.status = JobStatus.ASSIGNED
    log_audit(
        db,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
        action="ASSIGN_JOB",
        entity="Job",
        entity_id=job.id,
        data={"helper_id": helper.id},
    )
    db.commit()
    db.refresh(job)
    return job
