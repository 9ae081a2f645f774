import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlmodel import select

from audit import record_action
from config import get_settings
from db import SessionDep
from mailer import generate_otp, otp_expiry, otp_matches, send_otp_email
from models import Role, User
from schemas import (
    AuthUser,
    LoginData,
    LoginResponse,
    MessageResponse,
    OtpResend,
    OtpVerify,
    RegisterData,
    RegisterResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

bearer_scheme = HTTPBearer(auto_error=False)


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: User) -> str:
    """
    Sign a JWT carrying the user id and role.
    Example claims:
        {"id": 3, "role": "DONOR", "exp": 1700000000}
    """
    settings = get_settings()
    expires = datetime.now(timezone.utc) + timedelta(
        minutes=settings.jwt_expires_minutes
    )
    claims = {"id": user.id, "role": user.role.value, "exp": expires}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    """
    Returns the claims dict if the token is valid,
    or None if it is malformed, tampered with or expired.
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return None


def _user_from_token(session: SessionDep, token: str) -> Optional[User]:
    claims = decode_access_token(token)
    if not claims or "id" not in claims:
        return None
    return session.get(User, claims["id"])


def get_current_user(
    session: SessionDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """
    Reads the bearer token, verifies it and loads the user.
    Raises 401 if the header is missing, the token is bad or the user is gone.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = _user_from_token(session, credentials.credentials)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


def get_optional_user(
    session: SessionDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[User]:
    """Like get_current_user, but returns None for anonymous callers."""
    if credentials is None:
        return None
    return _user_from_token(session, credentials.credentials)


OptionalUserDep = Annotated[Optional[User], Depends(get_optional_user)]


def require_admin(user: CurrentUserDep) -> User:
    if user.role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


AdminDep = Annotated[User, Depends(require_admin)]


def auth_user(user: User) -> AuthUser:
    return AuthUser(id=user.id, name=user.full_name, email=user.email, role=user.role)


@router.post("/register", status_code=201, response_model=RegisterResponse)
def register(user_in: RegisterData, session: SessionDep):
    """
    Register a new user with a hashed password and email them an OTP.
    The account stays unverified until /verify-otp succeeds.
    """
    existing = session.exec(
        select(User).where(User.email == user_in.email)
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already exists")

    otp = generate_otp()
    user = User(
        fname=user_in.fname,
        lname=user_in.lname,
        email=user_in.email,
        password=hash_password(user_in.password),
        role=user_in.role,
        address=user_in.address,
        org_documents=user_in.org_documents,
        otp=otp,
        otp_expires_at=otp_expiry(),
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    record_action(session, user.id, f"User registered: {user.email}")
    session.commit()

    send_otp_email(user.email, otp)
    return RegisterResponse(message="User registered, OTP sent", user_id=user.id)


@router.post("/verify-otp", response_model=VerifyResponse)
def verify_otp(payload: OtpVerify, session: SessionDep):
    """Confirm the registration OTP, then log the user straight in."""
    user = session.get(User, payload.user_id)
    if user is None or user.is_verified:
        raise HTTPException(
            status_code=400, detail="User not found or already verified"
        )

    if not otp_matches(user.otp, user.otp_expires_at, payload.otp_code):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")

    user.is_verified = True
    user.otp = None
    user.otp_expires_at = None
    session.add(user)
    record_action(session, user.id, "Verified account")
    session.commit()
    session.refresh(user)

    return VerifyResponse(
        message="OTP verified, registration complete",
        token=create_access_token(user),
        user=auth_user(user),
    )


@router.post("/resend-otp", response_model=MessageResponse)
def resend_otp(payload: OtpResend, session: SessionDep):
    if payload.user_id is not None:
        user = session.get(User, payload.user_id)
    else:
        user = session.exec(
            select(User).where(User.email == payload.email)
        ).first()

    if user is None or user.is_verified:
        raise HTTPException(
            status_code=400, detail="User not found or already verified"
        )

    otp = generate_otp()
    user.otp = otp
    user.otp_expires_at = otp_expiry()
    session.add(user)
    session.commit()

    send_otp_email(user.email, otp)
    return MessageResponse(message="OTP resent", user_id=user.id)


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginData, session: SessionDep):
    """Check email + password and issue a bearer token."""
    user = session.exec(
        select(User).where(User.email == payload.email)
    ).first()
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.is_verified:
        raise HTTPException(status_code=403, detail="Account not verified")

    if not verify_password(payload.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    record_action(session, user.id, "User logged in")
    session.commit()

    logger.info("User %s logged in", user.id)
    return LoginResponse(token=create_access_token(user), user=auth_user(user))
