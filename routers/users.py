# routers/users.py
from fastapi import APIRouter, HTTPException
from sqlmodel import col, or_, select

from audit import record_action
from db import SessionDep
from mailer import generate_otp, otp_expiry, otp_matches, send_otp_email
from models import Listing, Message, Request, User
from pagination import PageDep, page_meta, paginate
from schemas import (
    LocationUpdate,
    MessageResponse,
    Page,
    PasswordChange,
    Point,
    UserRead,
    UserUpdate,
)
from .auth import AdminDep, CurrentUserDep, hash_password, verify_password
from .messages import detach_messages

router = APIRouter(tags=["users"])


def user_read(user: User) -> UserRead:
    location = None
    if user.longitude is not None and user.latitude is not None:
        location = Point(longitude=user.longitude, latitude=user.latitude)
    return UserRead(
        id=user.id,
        fname=user.fname,
        lname=user.lname,
        email=user.email,
        address=user.address,
        role=user.role,
        is_verified=user.is_verified,
        org_documents=user.org_documents,
        created_at=user.created_at,
        location=location,
    )


@router.get("", response_model=Page[UserRead])
def list_users(
    session: SessionDep,
    admin: AdminDep,
    params: PageDep,
    search: str = "",
):
    """
    List users for the admin dashboard.
    `search` matches first name, last name or email, case-insensitively.
    """
    query = select(User)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                col(User.fname).ilike(pattern),
                col(User.lname).ilike(pattern),
                col(User.email).ilike(pattern),
            )
        )
    query = query.order_by(col(User.id).asc())

    users, total = paginate(session, query, params)

    record_action(session, admin.id, "Users list viewed")
    session.commit()

    return {"data": [user_read(u) for u in users], "meta": page_meta(total, params)}


@router.get("/me", response_model=UserRead)
def read_me(current: CurrentUserDep):
    """Profile of the logged-in user, including their stored location."""
    return user_read(current)


@router.put("/me", response_model=UserRead)
def update_me(update: UserUpdate, session: SessionDep, current: CurrentUserDep):
    if update.email is not None and update.email != current.email:
        taken = session.exec(
            select(User).where(User.email == update.email, User.id != current.id)
        ).first()
        if taken:
            raise HTTPException(status_code=400, detail="Email already in use")

    for field, value in update.model_dump(exclude_none=True).items():
        setattr(current, field, value)

    session.add(current)
    record_action(session, current.id, "Updated profile")
    session.commit()
    session.refresh(current)
    return user_read(current)


@router.put("/me/location", response_model=MessageResponse)
def update_my_location(
    location: LocationUpdate,
    session: SessionDep,
    current: CurrentUserDep,
):
    current.longitude = location.longitude
    current.latitude = location.latitude
    session.add(current)
    record_action(
        session,
        current.id,
        f"Updated location to ({location.longitude}, {location.latitude})",
    )
    session.commit()
    return MessageResponse(message="Location updated")


@router.post("/me/change-password", response_model=MessageResponse)
def change_password(
    payload: PasswordChange,
    session: SessionDep,
    current: CurrentUserDep,
):
    """
    Two-step password change.

    Without `otpCode`: checks the current password and emails an OTP.
    With `otpCode`: checks password and OTP again, then stores the new password.
    """
    if not verify_password(payload.current_password, current.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    if payload.otp_code is None:
        otp = generate_otp()
        current.otp = otp
        current.otp_expires_at = otp_expiry()
        session.add(current)
        record_action(session, current.id, "Requested password change")
        session.commit()

        send_otp_email(current.email, otp)
        return MessageResponse(message="OTP sent to your email", user_id=current.id)

    if not otp_matches(current.otp, current.otp_expires_at, payload.otp_code):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")

    current.password = hash_password(payload.new_password)
    current.otp = None
    current.otp_expires_at = None
    session.add(current)
    record_action(session, current.id, "Changed password")
    session.commit()
    return MessageResponse(message="Password changed successfully", user_id=current.id)


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(user_id: int, session: SessionDep, admin: AdminDep):
    """
    Remove a user together with their messages, listings and requests.
    Their audit rows stay, with the user reference cleared.
    """
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    if user.id == admin.id:
        raise HTTPException(status_code=400, detail="Admins cannot delete themselves")

    # 1) Messages sent or received by this user
    messages = session.exec(
        select(Message).where(
            or_(Message.sender_id == user_id, Message.receiver_id == user_id)
        )
    ).all()
    for msg in messages:
        session.delete(msg)

    # 2) Listings and requests they own; messages from others about them
    #    keep their row with the reference cleared
    for listing in session.exec(select(Listing).where(Listing.user_id == user_id)).all():
        detach_messages(session, listing_id=listing.id)
        session.delete(listing)
    for req in session.exec(select(Request).where(Request.user_id == user_id)).all():
        detach_messages(session, request_id=req.id)
        session.delete(req)
    session.flush()

    # 3) Finally, the user record itself
    session.delete(user)
    record_action(session, admin.id, f"User {user_id} deleted")
    session.commit()

    return MessageResponse(message="User deleted")
