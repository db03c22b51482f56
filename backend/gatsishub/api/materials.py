import logging
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlmodel import select

from gatsishub.api.common import get_or_404
from gatsishub.db.session import get_session
from gatsishub.exceptions import Conflict
from gatsishub.models import Material
from gatsishub.models.common import utcnow
from gatsishub.services.validation import require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class MaterialIn(BaseModel):
    name: Optional[str] = None
    features: Optional[List[str]] = None
    price_per_kg: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


@router.get("")
def list_materials(is_active: Optional[bool] = None):
    session = get_session()
    try:
        stmt = select(Material)
        if is_active is not None:
            stmt = stmt.where(Material.is_active == is_active)
        return {"materials": session.exec(stmt.order_by(Material.name)).all()}
    finally:
        session.close()


@router.post("", status_code=201)
def create_material(body: MaterialIn):
    require_fields(body.model_dump(), {"name": "Material name is required"})
    session = get_session()
    try:
        name = body.name.strip()
        if session.exec(select(Material).where(Material.name == name)).first() is not None:
            raise Conflict("Material name already exists", details={"name": name})
        data = body.model_dump(exclude_unset=True, exclude_none=True)
        data["name"] = name
        material = Material(**data)
        session.add(material)
        session.commit()
        session.refresh(material)
        logger.info("Created material id=%s name=%s price_per_kg=%s", material.id, material.name, material.price_per_kg)
        return {"material": material}
    finally:
        session.close()


@router.get("/{material_id}")
def get_material(material_id: int):
    session = get_session()
    try:
        return {"material": get_or_404(session, Material, material_id, "Material")}
    finally:
        session.close()


@router.patch("/{material_id}")
def update_material(material_id: int, body: MaterialIn):
    changes = body.model_dump(exclude_unset=True)
    session = get_session()
    try:
        material = get_or_404(session, Material, material_id, "Material")
        if "name" in changes:
            require_fields(changes, {"name": "Material name is required"})
            changes["name"] = changes["name"].strip()
            existing = session.exec(select(Material).where(Material.name == changes["name"])).first()
            if existing is not None and existing.id != material.id:
                raise Conflict("Material name already exists", details={"name": changes["name"]})
        if "features" in changes and changes["features"] is None:
            changes["features"] = []
        for field, value in changes.items():
            setattr(material, field, value)
        material.updated_at = utcnow()
        session.add(material)
        session.commit()
        session.refresh(material)
        logger.info("Updated material id=%s fields=%s", material.id, sorted(changes))
        return {"material": material}
    finally:
        session.close()


@router.delete("/{material_id}")
def delete_material(material_id: int):
    session = get_session()
    try:
        material = get_or_404(session, Material, material_id, "Material")
        session.delete(material)
        session.commit()
        logger.info("Deleted material id=%s", material_id)
        return {"message": "Material deleted successfully"}
    finally:
        session.close()
