import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlmodel import select

from gatsishub.api.common import get_or_404
from gatsishub.db.session import get_session
from gatsishub.exceptions import Conflict
from gatsishub.models import Product
from gatsishub.models.common import utcnow
from gatsishub.services.validation import require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class ProductIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    model_url: Optional[str] = None
    weight: Optional[float] = Field(default=None, gt=0)
    is_active: Optional[bool] = None


def _check_unique(session, name: str, exclude_id: Optional[int] = None) -> None:
    stmt = select(Product).where(Product.name == name)
    existing = session.exec(stmt).first()
    if existing is not None and existing.id != exclude_id:
        raise Conflict("Product name already exists", details={"name": name})


@router.get("")
def list_products(is_active: Optional[bool] = None):
    session = get_session()
    try:
        stmt = select(Product)
        if is_active is not None:
            stmt = stmt.where(Product.is_active == is_active)
        return {"products": session.exec(stmt.order_by(Product.name)).all()}
    finally:
        session.close()


@router.post("", status_code=201)
def create_product(body: ProductIn):
    require_fields(body.model_dump(), {"name": "Product name is required"})
    name = body.name.strip()
    session = get_session()
    try:
        _check_unique(session, name)
        data = body.model_dump(exclude_unset=True, exclude_none=True)
        data["name"] = name
        product = Product(**data)
        session.add(product)
        session.commit()
        session.refresh(product)
        logger.info("Created product id=%s name=%s", product.id, product.name)
        return {"product": product}
    finally:
        session.close()


@router.get("/{product_id}")
def get_product(product_id: int):
    session = get_session()
    try:
        return {"product": get_or_404(session, Product, product_id, "Product")}
    finally:
        session.close()


@router.patch("/{product_id}")
def update_product(product_id: int, body: ProductIn):
    changes = body.model_dump(exclude_unset=True)
    session = get_session()
    try:
        product = get_or_404(session, Product, product_id, "Product")
        if "name" in changes:
            require_fields(changes, {"name": "Product name is required"})
            changes["name"] = changes["name"].strip()
            _check_unique(session, changes["name"], exclude_id=product.id)
        for field, value in changes.items():
            setattr(product, field, value)
        product.updated_at = utcnow()
        session.add(product)
        session.commit()
        session.refresh(product)
        logger.info("Updated product id=%s fields=%s", product.id, sorted(changes))
        return {"product": product}
    finally:
        session.close()


@router.delete("/{product_id}")
def delete_product(product_id: int):
    session = get_session()
    try:
        product = get_or_404(session, Product, product_id, "Product")
        session.delete(product)
        session.commit()
        logger.info("Deleted product id=%s", product_id)
        return {"message": "Product deleted successfully"}
    finally:
        session.close()
