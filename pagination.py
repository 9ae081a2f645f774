import math
from typing import Annotated, Any, List, Tuple

from fastapi import Depends, Query
from sqlalchemy import func
from sqlmodel import Session, select

MAX_LIMIT = 100


class PageParams:
    def __init__(
        self,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=MAX_LIMIT),
    ):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


PageDep = Annotated[PageParams, Depends()]


def paginate(session: Session, statement, params: PageParams) -> Tuple[List[Any], int]:
    """Run ``statement`` for one page and count every matching row."""
    total = session.exec(
        select(func.count()).select_from(statement.order_by(None).subquery())
    ).one()
    rows = session.exec(statement.offset(params.offset).limit(params.limit)).all()
    return list(rows), total


def page_meta(total: int, params: PageParams) -> dict:
    return {
        "total_items": total,
        "current_page": params.page,
        "total_pages": math.ceil(total / params.limit),
        "limit": params.limit,
    }
