import logging
from typing import Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel
from sqlmodel import select

from gatsishub.api.common import get_or_404
from gatsishub.db.session import get_session
from gatsishub.exceptions import Conflict, ValidationFailed
from gatsishub.models import Employee, Team
from gatsishub.services.validation import require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class TeamIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    members: Optional[List[int]] = None
    quota: Optional[int] = None
    daily_quota: Optional[int] = None
    assigned_orders: Optional[List[str]] = None


def _check_name(session, name: str, exclude_id: Optional[int] = None) -> None:
    existing = session.exec(select(Team).where(Team.name == name)).first()
    if existing is not None and existing.id != exclude_id:
        raise Conflict("Team name already exists", details={"name": name}, status_code=409)


@router.get("")
def list_teams():
    session = get_session()
    try:
        rows = session.exec(select(Team).order_by(Team.created_at.desc(), Team.id.desc())).all()
        return {"teams": rows}
    finally:
        session.close()


@router.post("", status_code=201)
@router.post("/create", status_code=201)
def create_team(body: TeamIn):
    require_fields(body.model_dump(), {"name": "Team name is required"})
    name = body.name.strip()
    session = get_session()
    try:
        _check_name(session, name)
        team = Team(
            name=name,
            description=body.description.strip() if body.description else None,
            members=body.members or [],
            quota=body.quota,
            daily_quota=body.daily_quota,
            assigned_orders=body.assigned_orders or [],
        )
        session.add(team)
        session.commit()
        session.refresh(team)
        logger.info("Created team id=%s name=%s members=%s", team.id, team.name, len(team.members))
        return {"message": "Team created successfully", "team": team}
    finally:
        session.close()


@router.get("/employee/{employee_id}")
def teams_for_employee(employee_id: int):
    session = get_session()
    try:
        rows = session.exec(select(Team).order_by(Team.name)).all()
        return {"teams": [t for t in rows if employee_id in (t.members or [])]}
    finally:
        session.close()


@router.get("/{team_id}")
def get_team(team_id: int):
    session = get_session()
    try:
        return {"team": get_or_404(session, Team, team_id, "Team")}
    finally:
        session.close()


@router.get("/{team_id}/stats")
def team_stats(team_id: int):
    session = get_session()
    try:
        team = get_or_404(session, Team, team_id, "Team")
        member_ids = list(team.members or [])
        members = session.exec(select(Employee).where(Employee.id.in_(member_ids))).all() if member_ids else []

        departments: Dict[str, int] = {}
        for m in members:
            dept = m.department or "Unassigned"
            departments[dept] = departments.get(dept, 0) + 1

        present = sum(1 for m in members if m.is_present)
        stats = {
            "total_members": len(member_ids),
            "present_members": present,
            "absent_members": len(members) - present,
            "assigned_orders": len(team.assigned_orders or []),
            "quota": team.quota,
            "department_breakdown": departments,
        }
        return {"team": team, "members": members, "stats": stats}
    finally:
        session.close()


@router.patch("/{team_id}")
def update_team(team_id: int, body: TeamIn):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationFailed("No fields provided for update")
    session = get_session()
    try:
        team = get_or_404(session, Team, team_id, "Team")
        if "name" in changes:
            require_fields(changes, {"name": "Team name is required"})
            changes["name"] = changes["name"].strip()
            if changes["name"] != team.name:
                _check_name(session, changes["name"], exclude_id=team.id)
        if "description" in changes:
            changes["description"] = changes["description"].strip() if changes["description"] else None
        for field in ("members", "assigned_orders"):
            if field in changes and changes[field] is None:
                changes[field] = []
        for field, value in changes.items():
            setattr(team, field, value)
        session.add(team)
        session.commit()
        session.refresh(team)
        logger.info("Updated team id=%s fields=%s", team.id, sorted(changes))
        return {"message": "Team updated successfully", "team": team}
    finally:
        session.close()


@router.delete("/{team_id}")
def delete_team(team_id: int):
    session = get_session()
    try:
        team = get_or_404(session, Team, team_id, "Team")
        name = team.name
        session.delete(team)
        session.commit()
        logger.info("Deleted team id=%s name=%s", team_id, name)
        return {"message": "Team deleted successfully", "deleted_team": {"id": team_id, "name": name}}
    finally:
        session.close()
