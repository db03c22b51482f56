import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlmodel import select

from gatsishub.api.common import get_or_404
from gatsishub.db.session import get_session
from gatsishub.exceptions import ValidationFailed
from gatsishub.models import Order, Quota, Team
from gatsishub.models.common import utcnow
from gatsishub.models.staff import QUOTA_STATUSES
from gatsishub.services.validation import require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class QuotaIn(BaseModel):
    name: Optional[str] = None
    finished_quota: Optional[int] = Field(default=None, ge=0)
    team_ids: Optional[List[int]] = None
    assigned_orders: Optional[List[str]] = None
    material_count: Optional[Dict[str, float]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = None


def target_for(session, order_ids: List[str]) -> int:
    """Sum of quantities of the given orders; unknown ids count as zero."""
    if not order_ids:
        return 0
    rows = session.exec(select(Order).where(Order.id.in_(order_ids))).all()
    return sum(o.quantity or 0 for o in rows)


def _teams(session, team_ids) -> List[Team]:
    if not team_ids:
        return []
    return session.exec(select(Team).where(Team.id.in_(list(team_ids)))).all()


def _with_teams(session, quota: Quota) -> Dict[str, Any]:
    data = quota.model_dump(mode="json")
    data["teams"] = [
        {"id": t.id, "name": t.name, "members": t.members, "description": t.description}
        for t in _teams(session, quota.team_ids)
    ]
    return data


def _check_status(status: Optional[str]) -> None:
    if status is not None and status not in QUOTA_STATUSES:
        raise ValidationFailed(
            "Invalid quota status",
            details={"status": f"Must be one of {', '.join(QUOTA_STATUSES)}"},
        )


@router.get("")
def list_quotas(status: Optional[str] = None, team_id: Optional[int] = None):
    session = get_session()
    try:
        stmt = select(Quota)
        if status:
            stmt = stmt.where(Quota.status == status)
        rows = session.exec(stmt.order_by(Quota.created_at.desc(), Quota.id.desc())).all()
        if team_id is not None:
            rows = [q for q in rows if team_id in (q.team_ids or [])]
        return {"quotas": [_with_teams(session, q) for q in rows]}
    finally:
        session.close()


@router.post("", status_code=201)
@router.post("/create", status_code=201)
def create_quota(body: QuotaIn):
    require_fields(body.model_dump(), {"name": "Quota name is required"})
    if not body.assigned_orders:
        raise ValidationFailed(
            "At least one order must be assigned to calculate target quota",
            details={"assigned_orders": "At least one order is required"},
        )
    _check_status(body.status)

    session = get_session()
    try:
        quota = Quota(
            name=body.name.strip(),
            target_quota=target_for(session, body.assigned_orders),
            finished_quota=body.finished_quota or 0,
            team_ids=body.team_ids or [],
            assigned_orders=body.assigned_orders,
            material_count=body.material_count or {},
            start_date=body.start_date,
            end_date=body.end_date,
            status=body.status or "Active",
        )
        session.add(quota)
        session.flush()
        for team in _teams(session, quota.team_ids):
            team.linked_quota_id = quota.id
            team.quota = quota.target_quota
            session.add(team)
        session.commit()
        session.refresh(quota)
        logger.info("Created quota id=%s target=%s teams=%s", quota.id, quota.target_quota, quota.team_ids)
        return {"quota": _with_teams(session, quota)}
    finally:
        session.close()


@router.get("/{quota_id}")
def get_quota(quota_id: int):
    session = get_session()
    try:
        quota = get_or_404(session, Quota, quota_id, "Quota")
        return {"quota": _with_teams(session, quota)}
    finally:
        session.close()


@router.patch("/{quota_id}")
def update_quota(quota_id: int, body: QuotaIn):
    changes = body.model_dump(exclude_unset=True)
    _check_status(changes.get("status"))
    session = get_session()
    try:
        quota = get_or_404(session, Quota, quota_id, "Quota")
        old_team_ids = set(quota.team_ids or [])

        if "name" in changes:
            require_fields(changes, {"name": "Quota name is required"})
            changes["name"] = changes["name"].strip()
        for field, empty in (("team_ids", []), ("assigned_orders", []), ("material_count", {})):
            if field in changes and changes[field] is None:
                changes[field] = empty
        for field, value in changes.items():
            setattr(quota, field, value)

        target_changed = False
        if "assigned_orders" in changes:
            target = target_for(session, quota.assigned_orders)
            target_changed = target != quota.target_quota
            quota.target_quota = target
        quota.updated_at = utcnow()
        session.add(quota)

        if "team_ids" in changes or target_changed:
            new_team_ids = set(quota.team_ids or [])
            for team in _teams(session, old_team_ids - new_team_ids):
                if team.linked_quota_id == quota.id:
                    team.linked_quota_id = None
                    session.add(team)
            for team in _teams(session, new_team_ids):
                if team.id not in old_team_ids or target_changed:
                    team.linked_quota_id = quota.id
                    team.quota = quota.target_quota
                    session.add(team)

        session.commit()
        session.refresh(quota)
        logger.info("Updated quota id=%s fields=%s", quota.id, sorted(changes))
        return {"quota": _with_teams(session, quota)}
    finally:
        session.close()


@router.delete("/{quota_id}")
def delete_quota(quota_id: int):
    session = get_session()
    try:
        quota = get_or_404(session, Quota, quota_id, "Quota")
        for team in session.exec(select(Team).where(Team.linked_quota_id == quota.id)).all():
            team.linked_quota_id = None
            session.add(team)
        session.delete(quota)
        session.commit()
        logger.info("Deleted quota id=%s", quota_id)
        return {"message": "Quota deleted successfully"}
    finally:
        session.close()


@router.get("/{quota_id}/progress")
def quota_progress(quota_id: int):
    session = get_session()
    try:
        quota = get_or_404(session, Quota, quota_id, "Quota")
        target = quota.target_quota or 0
        finished = quota.finished_quota or 0
        return {
            "name": quota.name,
            "target_quota": target,
            "finished_quota": finished,
            "remaining": max(target - finished, 0),
            "percentage": round(finished / target * 100) if target else 0,
            "status": quota.status,
        }
    finally:
        session.close()
