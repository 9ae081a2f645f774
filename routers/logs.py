from fastapi import APIRouter
from sqlmodel import col, or_, select

from db import SessionDep
from models import Log
from pagination import PageDep, page_meta, paginate
from schemas import LogRead, Page
from .auth import AdminDep

router = APIRouter(tags=["logs"])


@router.get("", response_model=Page[LogRead])
def list_logs(
    session: SessionDep,
    admin: AdminDep,
    params: PageDep,
    search: str = "",
):
    """
    Browse the audit trail, oldest first.
    `search` matches the action text, or a user id when it is a number.
    """
    query = select(Log)
    if search:
        conditions = [col(Log.action).ilike(f"%{search}%")]
        if search.isdigit():
            conditions.append(Log.user_id == int(search))
        query = query.where(or_(*conditions))
    query = query.order_by(col(Log.id).asc())

    logs, total = paginate(session, query, params)
    return {
        "data": [
            LogRead(
                id=entry.id,
                user_id=entry.user_id,
                action=entry.action,
                created_at=entry.created_at,
            )
            for entry in logs
        ],
        "meta": page_meta(total, params),
    }
