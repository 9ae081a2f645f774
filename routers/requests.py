from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response
from sqlmodel import col, select

from audit import record_action
from db import SessionDep
from geo import point_wkt, resolve_search_origin, within_radius
from models import Category, Request as RequestModel, RequestStatus, Role, User, utcnow
from pagination import PageDep, page_meta, paginate
from schemas import RequestCreate, RequestRead, RequestUpdate, SearchPage, UserSummary
from .auth import CurrentUserDep
from .messages import detach_messages

router = APIRouter(tags=["requests"])


def request_read(req: RequestModel, owner: Optional[User] = None) -> RequestRead:
    return RequestRead(
        id=req.id,
        user_id=req.user_id,
        title=req.title,
        description=req.description,
        category=req.category,
        quantity=req.quantity,
        status=req.status,
        location=point_wkt(req.longitude, req.latitude),
        created_at=req.created_at,
        updated_at=req.updated_at,
        user=UserSummary.model_validate(owner) if owner is not None else None,
    )


def _get_owned_request(session: SessionDep, request_id: int, user: User, verb: str) -> RequestModel:
    req = session.get(RequestModel, request_id)
    if req is None:
        raise HTTPException(status_code=404, detail="Request not found")
    if user.role != Role.ADMIN and req.user_id != user.id:
        raise HTTPException(
            status_code=403, detail=f"Unauthorized to {verb} this request"
        )
    return req


@router.post("", status_code=201, response_model=RequestRead)
def create_request(request_in: RequestCreate, session: SessionDep, current: CurrentUserDep):
    if current.role != Role.ACCEPTOR:
        raise HTTPException(status_code=403, detail="Only acceptors can create requests")

    longitude, latitude = request_in.longitude, request_in.latitude
    if longitude is None:
        longitude, latitude = current.longitude, current.latitude

    new_request = RequestModel(
        user_id=current.id,
        title=request_in.title,
        description=request_in.description,
        category=request_in.category,
        quantity=request_in.quantity,
        longitude=longitude,
        latitude=latitude,
        status=RequestStatus.OPEN,
    )
    session.add(new_request)
    record_action(session, current.id, f"Created request: {new_request.title}")
    session.commit()
    session.refresh(new_request)
    return request_read(new_request, current)


@router.get("", response_model=SearchPage[RequestRead])
def list_requests(
    session: SessionDep,
    current: CurrentUserDep,
    params: PageDep,
    latitude: Optional[float] = Query(default=None, ge=-90, le=90),
    longitude: Optional[float] = Query(default=None, ge=-180, le=180),
    radius: Optional[float] = Query(default=None, ge=0),
    category: Optional[Category] = None,
    user_id: Optional[int] = Query(default=None, alias="userId", gt=0),
):
    """
    List open requests, newest first. A radius without coordinates searches
    around the caller's profile location.
    """
    query = select(RequestModel, User).join(User, col(RequestModel.user_id) == col(User.id))

    if user_id is not None:
        query = query.where(RequestModel.user_id == user_id)
    else:
        query = query.where(RequestModel.status == RequestStatus.OPEN)

    if category is not None:
        query = query.where(RequestModel.category == category)

    origin = resolve_search_origin(latitude, longitude, radius, current)
    if origin is not None:
        query = query.where(
            within_radius(RequestModel, origin.longitude, origin.latitude, origin.radius)
        )

    query = query.order_by(col(RequestModel.created_at).desc(), col(RequestModel.id).desc())
    rows, total = paginate(session, query, params)

    meta = page_meta(total, params)
    meta["using_user_location"] = bool(origin and origin.using_user_location)
    if origin is not None:
        meta.update(
            search_latitude=origin.latitude,
            search_longitude=origin.longitude,
            radius=origin.radius,
        )

    return {"data": [request_read(req, owner) for req, owner in rows], "meta": meta}


@router.get("/{request_id}", response_model=RequestRead)
def get_request(request_id: int, session: SessionDep):
    req = session.get(RequestModel, request_id)
    if req is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return request_read(req, session.get(User, req.user_id))


@router.put("/{request_id}", response_model=RequestRead)
def update_request(
    request_id: int,
    update: RequestUpdate,
    session: SessionDep,
    current: CurrentUserDep,
):
    db_request = _get_owned_request(session, request_id, current, "update")

    for field in ("title", "category", "quantity", "status"):
        value = getattr(update, field)
        if value is not None:
            setattr(db_request, field, value)
    if "description" in update.model_fields_set:
        db_request.description = update.description

    if update.longitude is not None and update.latitude is not None:
        db_request.longitude = update.longitude
        db_request.latitude = update.latitude

    db_request.updated_at = utcnow()
    session.add(db_request)
    record_action(session, current.id, f"Updated request: {db_request.title}")
    session.commit()
    session.refresh(db_request)
    owner = current if db_request.user_id == current.id else session.get(User, db_request.user_id)
    return request_read(db_request, owner)


@router.delete("/{request_id}", status_code=204)
def delete_request(request_id: int, session: SessionDep, current: CurrentUserDep):
    req = _get_owned_request(session, request_id, current, "delete")

    detach_messages(session, request_id=req.id)
    session.delete(req)
    record_action(session, current.id, f"Deleted request: {req.title}")
    session.commit()
    return Response(status_code=204)
