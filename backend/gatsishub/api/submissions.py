import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter
from pydantic import BaseModel
from sqlmodel import select

from gatsishub.api.common import get_or_404
from gatsishub.db.session import get_session
from gatsishub.exceptions import InvalidTransition, ValidationFailed
from gatsishub.models import Employee, Order, ProductionSubmission, Quota, Team
from gatsishub.models.common import utcnow
from gatsishub.models.staff import SUBMISSION_PENDING, SUBMISSION_REJECTED, SUBMISSION_VERIFIED
from gatsishub.services.validation import require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class SubmissionIn(BaseModel):
    quota_id: Optional[int] = None
    order_id: Optional[str] = None
    employee_id: Optional[int] = None
    team_id: Optional[int] = None
    reported_completed: Optional[int] = None
    submission_notes: Optional[str] = None
    priority: Optional[str] = None


class SubmissionReview(BaseModel):
    verified_by: Optional[int] = None
    approved: Optional[bool] = None
    verification_notes: Optional[str] = None


def _check_units(value) -> None:
    if value is not None and value <= 0:
        raise ValidationFailed(
            "Reported completed units must be a positive number",
            details={"reported_completed": "Must be greater than zero"},
        )


def _pending(submission: ProductionSubmission, message: str) -> None:
    if submission.status != SUBMISSION_PENDING:
        raise InvalidTransition(message, current_status=submission.status)


def _person(session, employee_id) -> Optional[Dict[str, Any]]:
    if employee_id is None:
        return None
    employee = session.get(Employee, employee_id)
    return {"id": employee.id, "name": employee.name} if employee else None


def _enriched(session, s: ProductionSubmission) -> Dict[str, Any]:
    data = s.model_dump(mode="json")
    quota = session.get(Quota, s.quota_id)
    order = session.get(Order, s.order_id)
    team = session.get(Team, s.team_id) if s.team_id is not None else None
    data["quota"] = quota and {
        "id": quota.id, "name": quota.name,
        "target_quota": quota.target_quota, "finished_quota": quota.finished_quota,
    }
    data["order"] = order and {
        "id": order.id, "hanger_type": order.hanger_type,
        "quantity": order.quantity, "deadline": order.deadline and order.deadline.isoformat(),
    }
    data["employee"] = _person(session, s.employee_id)
    data["team"] = team and {"id": team.id, "name": team.name}
    data["verifier"] = _person(session, s.verified_by)
    return data


@router.get("")
def list_submissions(
    status: Optional[str] = None,
    employee_id: Optional[int] = None,
    team_id: Optional[int] = None,
    quota_id: Optional[int] = None,
):
    session = get_session()
    try:
        stmt = select(ProductionSubmission)
        if status:
            stmt = stmt.where(ProductionSubmission.status == status)
        if employee_id is not None:
            stmt = stmt.where(ProductionSubmission.employee_id == employee_id)
        if team_id is not None:
            stmt = stmt.where(ProductionSubmission.team_id == team_id)
        if quota_id is not None:
            stmt = stmt.where(ProductionSubmission.quota_id == quota_id)
        stmt = stmt.order_by(ProductionSubmission.submitted_at.desc(), ProductionSubmission.id.desc())
        return {"submissions": [_enriched(session, s) for s in session.exec(stmt).all()]}
    finally:
        session.close()


@router.get("/stats/{employee_id}")
def employee_stats(employee_id: int):
    session = get_session()
    try:
        rows = session.exec(
            select(ProductionSubmission).where(ProductionSubmission.employee_id == employee_id)
        ).all()
        verified = [s for s in rows if s.status == SUBMISSION_VERIFIED]
        return {
            "total": len(rows),
            "pending": sum(1 for s in rows if s.status == SUBMISSION_PENDING),
            "verified": len(verified),
            "rejected": sum(1 for s in rows if s.status == SUBMISSION_REJECTED),
            "total_produced": sum(s.reported_completed for s in verified),
        }
    finally:
        session.close()


@router.post("", status_code=201)
@router.post("/create", status_code=201)
def create_submission(body: SubmissionIn):
    require_fields(body.model_dump(), {
        "quota_id": "Quota is required",
        "order_id": "Order is required",
        "employee_id": "Employee is required",
        "reported_completed": "Reported completed units are required",
    })
    _check_units(body.reported_completed)

    session = get_session()
    try:
        get_or_404(session, Quota, body.quota_id, "Quota")
        get_or_404(session, Order, body.order_id, "Order")
        get_or_404(session, Employee, body.employee_id, "Employee")
        if body.team_id is not None:
            get_or_404(session, Team, body.team_id, "Team")

        submission = ProductionSubmission(**body.model_dump(exclude_none=True))
        session.add(submission)
        session.commit()
        session.refresh(submission)
        logger.info(
            "Submission %s: employee %s reported %s units on quota %s",
            submission.id, submission.employee_id, submission.reported_completed, submission.quota_id,
        )
        return {"message": "Submission created successfully", "submission": submission}
    finally:
        session.close()


@router.get("/{submission_id}")
def get_submission(submission_id: int):
    session = get_session()
    try:
        submission = get_or_404(session, ProductionSubmission, submission_id, "Submission")
        return {"submission": _enriched(session, submission)}
    finally:
        session.close()


@router.patch("/{submission_id}/verify")
def verify_submission(submission_id: int, body: SubmissionReview):
    """Approve or reject a pending submission.

    Approval adds the reported units to the quota's finished count in the
    same commit.
    """
    require_fields(body.model_dump(), {
        "verified_by": "Verifier is required",
        "approved": "Approval decision is required",
    })
    session = get_session()
    try:
        submission = get_or_404(session, ProductionSubmission, submission_id, "Submission")
        _pending(submission, "Submission has already been processed")

        now = utcnow()
        submission.status = SUBMISSION_VERIFIED if body.approved else SUBMISSION_REJECTED
        submission.verified_by = body.verified_by
        submission.verified_at = now
        submission.verification_notes = body.verification_notes
        submission.updated_at = now
        session.add(submission)

        if body.approved:
            quota = session.get(Quota, submission.quota_id)
            if quota is None:
                logger.warning("Submission %s approved but quota %s no longer exists", submission.id, submission.quota_id)
            else:
                quota.finished_quota = (quota.finished_quota or 0) + submission.reported_completed
                quota.updated_at = now
                session.add(quota)

        session.commit()
        session.refresh(submission)
        logger.info("Submission %s %s by employee %s", submission.id, submission.status, body.verified_by)
        verb = "verified" if body.approved else "rejected"
        return {"message": f"Submission {verb} successfully", "submission": submission}
    finally:
        session.close()


@router.patch("/{submission_id}")
def update_submission(submission_id: int, body: SubmissionIn):
    changes = body.model_dump(exclude_unset=True)
    editable = {k: v for k, v in changes.items() if k in ("reported_completed", "submission_notes", "priority")}
    session = get_session()
    try:
        submission = get_or_404(session, ProductionSubmission, submission_id, "Submission")
        _pending(submission, "Cannot edit a submission that has been verified or rejected")
        if "reported_completed" in editable:
            require_fields(editable, {"reported_completed": "Reported completed units are required"})
            _check_units(editable["reported_completed"])
        for field, value in editable.items():
            setattr(submission, field, value)
        submission.updated_at = utcnow()
        session.add(submission)
        session.commit()
        session.refresh(submission)
        return {"message": "Submission updated successfully", "submission": submission}
    finally:
        session.close()


@router.delete("/{submission_id}")
def delete_submission(submission_id: int):
    session = get_session()
    try:
        submission = get_or_404(session, ProductionSubmission, submission_id, "Submission")
        _pending(submission, "Cannot delete a submission that has been verified or rejected")
        session.delete(submission)
        session.commit()
        logger.info("Deleted submission id=%s", submission_id)
        return {"message": "Submission deleted successfully"}
    finally:
        session.close()
