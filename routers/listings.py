from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response
from sqlmodel import col, select

from audit import record_action
from db import SessionDep
from geo import point_wkt, resolve_search_origin, within_radius
from models import Category, Listing, ListingStatus, Role, User, utcnow
from pagination import PageDep, page_meta, paginate
from schemas import ListingCreate, ListingRead, ListingUpdate, SearchPage, UserSummary
from .auth import CurrentUserDep, OptionalUserDep
from .messages import detach_messages

router = APIRouter(tags=["listings"])


def listing_read(listing: Listing, owner: Optional[User] = None) -> ListingRead:
    return ListingRead(
        id=listing.id,
        user_id=listing.user_id,
        title=listing.title,
        description=listing.description,
        category=listing.category,
        status=listing.status,
        location=point_wkt(listing.longitude, listing.latitude),
        created_at=listing.created_at,
        updated_at=listing.updated_at,
        user=UserSummary.model_validate(owner) if owner is not None else None,
    )


def _get_owned_listing(session: SessionDep, listing_id: int, user: User, verb: str) -> Listing:
    listing = session.get(Listing, listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    if user.role != Role.ADMIN and listing.user_id != user.id:
        raise HTTPException(
            status_code=403, detail=f"Unauthorized to {verb} this listing"
        )
    return listing


@router.post("", status_code=201, response_model=ListingRead)
def create_listing(listing_in: ListingCreate, session: SessionDep, current: CurrentUserDep):
    """
    Create a listing for the logged-in donor or acceptor.
    Without coordinates the listing is placed at the owner's profile location.
    """
    if current.role == Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admins cannot create listings")

    longitude, latitude = listing_in.longitude, listing_in.latitude
    if longitude is None:
        longitude, latitude = current.longitude, current.latitude

    listing = Listing(
        user_id=current.id,
        title=listing_in.title,
        description=listing_in.description,
        category=listing_in.category,
        longitude=longitude,
        latitude=latitude,
        status=ListingStatus.ACTIVE,
    )
    session.add(listing)
    record_action(session, current.id, f"Created listing: {listing.title}")
    session.commit()
    session.refresh(listing)
    return listing_read(listing, current)


@router.get("", response_model=SearchPage[ListingRead])
def list_listings(
    session: SessionDep,
    current: OptionalUserDep,
    params: PageDep,
    latitude: Optional[float] = Query(default=None, ge=-90, le=90),
    longitude: Optional[float] = Query(default=None, ge=-180, le=180),
    radius: Optional[float] = Query(default=None, ge=0),
    category: Optional[Category] = None,
    user_id: Optional[int] = Query(default=None, alias="userId", gt=0),
):
    """
    List active listings, newest first, optionally filtered by category
    and by distance. Passing `userId` lists that owner's listings in any status.
    """
    query = select(Listing, User).join(User, col(Listing.user_id) == col(User.id))

    if user_id is not None:
        query = query.where(Listing.user_id == user_id)
    else:
        query = query.where(Listing.status == ListingStatus.ACTIVE)

    if category is not None:
        query = query.where(Listing.category == category)

    origin = resolve_search_origin(latitude, longitude, radius, current)
    if origin is not None:
        query = query.where(
            within_radius(Listing, origin.longitude, origin.latitude, origin.radius)
        )

    query = query.order_by(col(Listing.created_at).desc(), col(Listing.id).desc())
    rows, total = paginate(session, query, params)

    meta = page_meta(total, params)
    meta["using_user_location"] = bool(origin and origin.using_user_location)
    if origin is not None:
        meta.update(
            search_latitude=origin.latitude,
            search_longitude=origin.longitude,
            radius=origin.radius,
        )

    return {"data": [listing_read(listing, owner) for listing, owner in rows], "meta": meta}


@router.get("/{listing_id}", response_model=ListingRead)
def get_listing(listing_id: int, session: SessionDep):
    """
    Get a single listing by ID.
    """
    listing = session.get(Listing, listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing_read(listing, session.get(User, listing.user_id))


@router.put("/{listing_id}", response_model=ListingRead)
def update_listing(
    listing_id: int,
    update: ListingUpdate,
    session: SessionDep,
    current: CurrentUserDep,
):
    listing = _get_owned_listing(session, listing_id, current, "update")

    for field in ("title", "category", "status"):
        value = getattr(update, field)
        if value is not None:
            setattr(listing, field, value)
    # description is nullable, so an explicit null clears it
    if "description" in update.model_fields_set:
        listing.description = update.description

    if update.longitude is not None and update.latitude is not None:
        listing.longitude = update.longitude
        listing.latitude = update.latitude

    listing.updated_at = utcnow()
    session.add(listing)
    record_action(session, current.id, f"Updated listing: {listing.title}")
    session.commit()
    session.refresh(listing)
    owner = current if listing.user_id == current.id else session.get(User, listing.user_id)
    return listing_read(listing, owner)


@router.delete("/{listing_id}", status_code=204)
def delete_listing(listing_id: int, session: SessionDep, current: CurrentUserDep):
    listing = _get_owned_listing(session, listing_id, current, "delete")

    detach_messages(session, listing_id=listing.id)
    session.delete(listing)
    record_action(session, current.id, f"Deleted listing: {listing.title}")
    session.commit()
    return Response(status_code=204)
