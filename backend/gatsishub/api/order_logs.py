import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from sqlmodel import select

from gatsishub import config
from gatsishub.db.session import get_session
from gatsishub.models import OrderLog

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
def list_logs(start: Optional[datetime] = None, end: Optional[datetime] = None, limit: int = 100):
    session = get_session()
    try:
        stmt = select(OrderLog)
        if start is not None:
            stmt = stmt.where(OrderLog.timestamp >= start)
        if end is not None:
            stmt = stmt.where(OrderLog.timestamp <= end)
        limit = min(max(limit, 1), config.MAX_PAGE_SIZE * 10)
        rows = session.exec(stmt.order_by(OrderLog.timestamp.desc(), OrderLog.id.desc()).limit(limit)).all()
        return {"logs": rows}
    finally:
        session.close()


@router.get("/{order_id}")
def order_logs(order_id: str):
    session = get_session()
    try:
        stmt = (
            select(OrderLog)
            .where(OrderLog.order_id == order_id)
            .order_by(OrderLog.timestamp.desc(), OrderLog.id.desc())
        )
        return {"logs": session.exec(stmt).all()}
    finally:
        session.close()
