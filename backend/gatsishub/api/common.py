import math
from typing import Any, Dict, Optional, Tuple

from sqlmodel import func, select

from gatsishub import config
from gatsishub.exceptions import NotFound
from gatsishub.models import Payment


def page_params(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    page = max(int(page or 1), 1)
    limit = int(limit or config.DEFAULT_PAGE_SIZE)
    limit = min(max(limit, 1), config.MAX_PAGE_SIZE)
    return page, limit


def pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_more": page < total_pages,
    }


def paginate(session, statement, page: int, limit: int):
    """Run ``statement`` for one page; returns (rows, total)."""
    count_stmt = select(func.count()).select_from(statement.order_by(None).subquery())
    total = session.exec(count_stmt).one()
    if isinstance(total, tuple):
        total = total[0]
    rows = session.exec(statement.offset((page - 1) * limit).limit(limit)).all()
    return rows, int(total or 0)


def get_or_404(session, model, ident, label: str):
    obj = session.get(model, ident)
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj


def latest_payment(session, order_id: str):
    stmt = (
        select(Payment)
        .where(Payment.order_id == order_id)
        .order_by(Payment.submitted_at.desc(), Payment.id.desc())
    )
    return session.exec(stmt).first()


def latest_payments(session, order_ids) -> Dict[str, Any]:
    if not order_ids:
        return {}
    stmt = (
        select(Payment)
        .where(Payment.order_id.in_(list(order_ids)))
        .order_by(Payment.submitted_at.desc(), Payment.id.desc())
    )
    latest: Dict[str, Any] = {}
    for p in session.exec(stmt).all():
        latest.setdefault(p.order_id, p)
    return latest
