from typing import Dict, Iterable, Optional

from fastapi import APIRouter, HTTPException, Query
from sqlmodel import Session, col, or_, select

from audit import record_action
from db import SessionDep
from models import Listing, Message, Request as RequestModel, User
from pagination import PageDep, page_meta, paginate
from schemas import MessageCreate, MessageRead, Page, Participant
from .auth import CurrentUserDep

router = APIRouter(tags=["messages"])


def detach_messages(
    session: Session,
    listing_id: Optional[int] = None,
    request_id: Optional[int] = None,
) -> None:
    """Clear message references to a listing or request about to be deleted."""
    if listing_id is not None:
        for msg in session.exec(select(Message).where(Message.listing_id == listing_id)).all():
            msg.listing_id = None
            session.add(msg)
    if request_id is not None:
        for msg in session.exec(select(Message).where(Message.request_id == request_id)).all():
            msg.request_id = None
            session.add(msg)
    session.flush()


def _context_suffix(listing_id: Optional[int], request_id: Optional[int]) -> str:
    suffix = ""
    if listing_id:
        suffix += f" for listing {listing_id}"
    if request_id:
        suffix += f" for request {request_id}"
    return suffix


def _load_users(session: Session, ids: Iterable[int]) -> Dict[int, User]:
    ids = set(ids)
    if not ids:
        return {}
    users = session.exec(select(User).where(col(User.id).in_(ids))).all()
    return {u.id: u for u in users}


def message_read(msg: Message, users: Dict[int, User]) -> MessageRead:
    return MessageRead(
        id=msg.id,
        sender_id=msg.sender_id,
        receiver_id=msg.receiver_id,
        content=msg.content,
        listing_id=msg.listing_id,
        request_id=msg.request_id,
        created_at=msg.created_at,
        sender=Participant.model_validate(users[msg.sender_id]),
        receiver=Participant.model_validate(users[msg.receiver_id]),
    )


@router.post("", status_code=201, response_model=MessageRead)
def send_message(message_in: MessageCreate, session: SessionDep, current: CurrentUserDep):
    """
    Send a direct message, optionally about a listing or a request.
    """
    if message_in.receiver_id == current.id:
        raise HTTPException(status_code=400, detail="Cannot send message to yourself")

    receiver = session.get(User, message_in.receiver_id)
    if receiver is None:
        raise HTTPException(status_code=404, detail="Receiver not found")

    if message_in.listing_id is not None and session.get(Listing, message_in.listing_id) is None:
        raise HTTPException(status_code=404, detail="Listing not found")

    if message_in.request_id is not None and session.get(RequestModel, message_in.request_id) is None:
        raise HTTPException(status_code=404, detail="Request not found")

    msg = Message(
        sender_id=current.id,
        receiver_id=receiver.id,
        content=message_in.content,
        listing_id=message_in.listing_id,
        request_id=message_in.request_id,
    )
    session.add(msg)
    record_action(
        session,
        current.id,
        f"Sent message to user {receiver.id}"
        + _context_suffix(message_in.listing_id, message_in.request_id),
    )
    session.commit()
    session.refresh(msg)

    return message_read(msg, {current.id: current, receiver.id: receiver})


@router.get("", response_model=Page[MessageRead])
def list_messages(
    session: SessionDep,
    current: CurrentUserDep,
    params: PageDep,
    listing_id: Optional[int] = Query(default=None, alias="listingId", gt=0),
    request_id: Optional[int] = Query(default=None, alias="requestId", gt=0),
):
    """
    Messages the caller sent or received, newest first.
    """
    query = select(Message).where(
        or_(Message.sender_id == current.id, Message.receiver_id == current.id)
    )
    if listing_id is not None:
        query = query.where(Message.listing_id == listing_id)
    if request_id is not None:
        query = query.where(Message.request_id == request_id)
    query = query.order_by(col(Message.created_at).desc(), col(Message.id).desc())

    messages, total = paginate(session, query, params)
    users = _load_users(
        session, [m.sender_id for m in messages] + [m.receiver_id for m in messages]
    )
    data = [message_read(m, users) for m in messages]

    record_action(
        session, current.id, "Viewed messages" + _context_suffix(listing_id, request_id)
    )
    session.commit()

    return {"data": data, "meta": page_meta(total, params)}
