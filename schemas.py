from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models import Category, ListingStatus, RequestStatus, Role

T = TypeVar("T")


class APIModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class CoordinatesMixin(APIModel):
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)

    @model_validator(mode="after")
    def check_coordinate_pair(self):
        if (self.longitude is None) != (self.latitude is None):
            raise ValueError("Provide both longitude and latitude, or neither")
        return self


# ---- auth ----

class RegisterData(APIModel):
    fname: str = Field(min_length=1)
    lname: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    address: str = Field(min_length=1)
    role: Role
    org_documents: Optional[str] = None

    @field_validator("role")
    @classmethod
    def check_role(cls, value: Role) -> Role:
        if value == Role.ADMIN:
            raise ValueError("Role must be DONOR or ACCEPTOR")
        return value


class OtpVerify(APIModel):
    user_id: int = Field(gt=0)
    otp_code: str = Field(min_length=6, max_length=6)


class OtpResend(APIModel):
    user_id: Optional[int] = Field(default=None, gt=0)
    email: Optional[EmailStr] = None

    @model_validator(mode="after")
    def check_identifier(self):
        if self.user_id is None and self.email is None:
            raise ValueError("Provide userId or email")
        return self


class LoginData(APIModel):
    email: EmailStr
    password: str = Field(min_length=1)


class AuthUser(APIModel):
    id: int
    name: str
    email: str
    role: Role


class LoginResponse(APIModel):
    token: str
    user: AuthUser


class VerifyResponse(LoginResponse):
    message: str


class RegisterResponse(APIModel):
    message: str
    user_id: int


# ---- users ----

class Point(APIModel):
    longitude: float
    latitude: float


class UserRead(APIModel):
    id: int
    fname: str
    lname: str
    email: str
    address: str
    role: Role
    is_verified: bool
    org_documents: Optional[str] = None
    created_at: datetime
    location: Optional[Point] = None


class UserUpdate(APIModel):
    fname: Optional[str] = Field(default=None, min_length=1)
    lname: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(default=None, min_length=1)


class LocationUpdate(APIModel):
    longitude: float = Field(ge=-180, le=180)
    latitude: float = Field(ge=-90, le=90)


class PasswordChange(APIModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)
    otp_code: Optional[str] = Field(default=None, min_length=6, max_length=6)


class MessageResponse(APIModel):
    message: str
    user_id: Optional[int] = None


class UserSummary(APIModel):
    fname: str
    lname: str
    email: str


class Participant(UserSummary):
    id: int


# ---- listings ----

class ListingCreate(CoordinatesMixin):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: Category


class ListingUpdate(CoordinatesMixin):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[Category] = None
    status: Optional[ListingStatus] = None


class ListingRead(APIModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    category: Category
    status: ListingStatus
    location: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None


# ---- requests ----

class RequestCreate(CoordinatesMixin):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: Category
    quantity: Optional[int] = Field(default=None, ge=1)


class RequestUpdate(CoordinatesMixin):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[Category] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    status: Optional[RequestStatus] = None


class RequestRead(APIModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    category: Category
    quantity: Optional[int] = None
    status: RequestStatus
    location: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None


# ---- messages ----

class MessageCreate(APIModel):
    receiver_id: int = Field(gt=0)
    content: str = Field(min_length=1)
    listing_id: Optional[int] = Field(default=None, gt=0)
    request_id: Optional[int] = Field(default=None, gt=0)


class MessageRead(APIModel):
    id: int
    sender_id: int
    receiver_id: int
    content: str
    listing_id: Optional[int] = None
    request_id: Optional[int] = None
    created_at: datetime
    sender: Participant
    receiver: Participant


# ---- logs ----

class LogRead(APIModel):
    id: int
    user_id: Optional[int] = None
    action: str
    created_at: datetime


# ---- pagination ----

class PageMeta(APIModel):
    total_items: int
    current_page: int
    total_pages: int
    limit: int


class SearchMeta(PageMeta):
    using_user_location: bool = False
    search_latitude: Optional[float] = None
    search_longitude: Optional[float] = None
    radius: Optional[float] = None


class Page(APIModel, Generic[T]):
    data: List[T]
    meta: PageMeta


class SearchPage(APIModel, Generic[T]):
    data: List[T]
    meta: SearchMeta
