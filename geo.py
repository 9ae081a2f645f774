"""Proximity search on top of the PostGIS distance predicate.

Points are kept as plain longitude/latitude columns and turned into
``geography`` values inside the query, so ``ST_DWithin`` measures in
metres. db.create_db_and_tables indexes that same expression.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func

from models import User

SRID = 4326
DEFAULT_RADIUS_M = 10_000.0


def geography_point(longitude, latitude):
    return func.geography(
        func.ST_SetSRID(func.ST_MakePoint(longitude, latitude), SRID)
    )


def within_radius(model, longitude: float, latitude: float, radius: float):
    """WHERE clause: rows of ``model`` whose point lies within ``radius`` metres."""
    return func.ST_DWithin(
        geography_point(model.longitude, model.latitude),
        geography_point(longitude, latitude),
        radius,
    )


def point_wkt(longitude: Optional[float], latitude: Optional[float]) -> Optional[str]:
    """Render a point the way ST_AsText does, or None when unset."""
    if longitude is None or latitude is None:
        return None
    return f"POINT({longitude:.15g} {latitude:.15g})"


@dataclass
class SearchOrigin:
    longitude: float
    latitude: float
    radius: float
    using_user_location: bool = False


def resolve_search_origin(
    latitude: Optional[float],
    longitude: Optional[float],
    radius: Optional[float],
    user: Optional[User],
) -> Optional[SearchOrigin]:
    """Decide where a proximity search is centred, if anywhere.

    Explicit coordinates win. A bare radius falls back to the caller's
    profile location. No coordinates and no radius means no spatial filter.
    """
    if (latitude is None) != (longitude is None):
        raise HTTPException(
            status_code=400,
            detail="Either provide both latitude and longitude, or neither "
            "(to use your profile location)",
        )

    if latitude is not None and longitude is not None:
        return SearchOrigin(
            longitude=longitude,
            latitude=latitude,
            radius=radius if radius is not None else DEFAULT_RADIUS_M,
        )

    if radius is None:
        return None

    if user is None or user.longitude is None or user.latitude is None:
        raise HTTPException(
            status_code=400,
            detail="Radius provided but no location coordinates available. "
            "Either provide latitude/longitude parameters or set your "
            "profile location.",
        )

    return SearchOrigin(
        longitude=user.longitude,
        latitude=user.latitude,
        radius=radius,
        using_user_location=True,
    )
