from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read back from backends without tz support (SQLite)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Role(str, Enum):
    DONOR = "DONOR"
    ACCEPTOR = "ACCEPTOR"
    ADMIN = "ADMIN"


class Category(str, Enum):
    CLOTHING = "CLOTHING"
    ELECTRONICS = "ELECTRONICS"
    FOOD = "FOOD"
    FURNITURE = "FURNITURE"
    BOOKS = "BOOKS"
    HOUSEHOLD = "HOUSEHOLD"
    SPECIAL_REQUEST = "SPECIAL_REQUEST"


class ListingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLAIMED = "CLAIMED"
    COMPLETED = "COMPLETED"


class RequestStatus(str, Enum):
    OPEN = "OPEN"
    FULFILLED = "FULFILLED"
    CLOSED = "CLOSED"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    fname: str
    lname: str
    email: str = Field(unique=True, index=True)
    password: str
    role: Role
    address: str

    longitude: Optional[float] = None
    latitude: Optional[float] = None

    org_documents: Optional[str] = None
    is_verified: bool = False
    otp: Optional[str] = None
    otp_expires_at: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    @property
    def full_name(self) -> str:
        return f"{self.fname} {self.lname}"


class Listing(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    title: str
    description: Optional[str] = None
    category: Category = Field(index=True)
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    status: ListingStatus = ListingStatus.ACTIVE

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Request(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    title: str
    description: Optional[str] = None
    category: Category = Field(index=True)
    quantity: Optional[int] = None
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    status: RequestStatus = RequestStatus.OPEN

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    sender_id: int = Field(foreign_key="user.id", index=True)
    receiver_id: int = Field(foreign_key="user.id", index=True)
    listing_id: Optional[int] = Field(
        default=None, foreign_key="listing.id", ondelete="SET NULL"
    )
    request_id: Optional[int] = Field(
        default=None, foreign_key="request.id", ondelete="SET NULL"
    )

    content: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Log(SQLModel, table=True):
    """Append-only audit trail. Rows are never updated or deleted."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(
        default=None, foreign_key="user.id", ondelete="SET NULL"
    )
    action: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
