"""Populate the database with demo users, listings, a request and a message.

Safe to run repeatedly: existing rows are detected and left alone.

    python seed.py
"""
import logging

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from db import create_db_and_tables, engine
from logging_config import configure_logging
from models import Category, Listing, Message, Request, RequestStatus, Role, User
from routers.auth import hash_password

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {
        "fname": "Admin",
        "lname": "User",
        "email": "user@admin.com",
        "password": "adminUser123!",
        "role": Role.ADMIN,
        "address": "124 Admin St, Nyabihu, Rwanda",
        "longitude": 29.4577,
        "latitude": -1.6868,
    },
    {
        "fname": "Sheja",
        "lname": "User",
        "email": "user@donor.com",
        "password": "donorSheja123!",
        "role": Role.DONOR,
        "address": "124 Admin St, Nyabihu, Rwanda",
        "longitude": 29.4577,
        "latitude": -1.6868,
    },
    {
        "fname": "Akuzwe",
        "lname": "Org",
        "email": "user@acceptor.com",
        "password": "acceptorAkuzwe123!",
        "role": Role.ACCEPTOR,
        "address": "121 Admin St, Nyabihu, Rwanda",
        "longitude": 29.4600,
        "latitude": -1.6890,
        "org_documents": "/uploads/community_center_docs.pdf",
    },
]

DEMO_LISTINGS = [
    {
        "title": "Gently Used Dining Chairs",
        "description": "Set of 4 wooden chairs, good condition, pickup only.",
        "category": Category.FURNITURE,
        "longitude": 29.4577,
        "latitude": -1.6868,
    },
    {
        "title": "Children's Books",
        "description": "Collection of 10 children's storybooks, ages 3-8.",
        "category": Category.BOOKS,
        "longitude": 29.4580,
        "latitude": -1.6870,
    },
]


def ensure_user(session: Session, data: dict) -> User:
    existing = session.exec(select(User).where(User.email == data["email"])).first()
    if existing:
        logger.info("%s already exists", data["email"])
        return existing

    fields = dict(data)
    user = User(
        password=hash_password(fields.pop("password")),
        is_verified=True,
        **fields,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Created %s user %s", user.role.value, user.email)
    return user


def _count(session: Session, statement) -> int:
    return session.exec(select(func.count()).select_from(statement.subquery())).one()


def seed(bind: Engine = engine) -> None:
    create_db_and_tables(bind)

    with Session(bind) as session:
        users = [ensure_user(session, data) for data in DEMO_USERS]
        donor = next(u for u in users if u.role == Role.DONOR)
        acceptor = next(u for u in users if u.role == Role.ACCEPTOR)

        if _count(session, select(Listing).where(Listing.user_id == donor.id)) == 0:
            for data in DEMO_LISTINGS:
                session.add(Listing(user_id=donor.id, **data))
            session.commit()
            logger.info("Sample listings created")

        if _count(session, select(Request).where(Request.user_id == acceptor.id)) == 0:
            session.add(
                Request(
                    user_id=acceptor.id,
                    title="Children's Clothes Needed",
                    description="Looking for clothes for 15 kids, sizes 4-10.",
                    category=Category.CLOTHING,
                    quantity=15,
                    status=RequestStatus.OPEN,
                    longitude=acceptor.longitude,
                    latitude=acceptor.latitude,
                )
            )
            session.commit()
            logger.info("Sample request created")

        if _count(session, select(Message).where(Message.sender_id == donor.id)) == 0:
            listing = session.exec(
                select(Listing).where(Listing.user_id == donor.id)
            ).first()
            if listing:
                session.add(
                    Message(
                        sender_id=donor.id,
                        receiver_id=acceptor.id,
                        listing_id=listing.id,
                        content="Hi, saw your request for clothes. "
                        "I have some that might work!",
                    )
                )
                session.commit()
                logger.info("Sample message created")

    logger.info("Database initialized successfully")


if __name__ == "__main__":
    configure_logging()
    seed()
