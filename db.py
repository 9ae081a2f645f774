import logging
from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

engine = create_engine(
    settings.database_url,
    echo=settings.sql_echo,
)

# Tables that carry a longitude/latitude point.
SPATIAL_TABLES = ("user", "listing", "request")


def _create_spatial_indexes(bind: Engine) -> None:
    """Enable PostGIS and index each point as a geography expression.

    The expression matches the one built in geo.within_radius, so
    ST_DWithin radius searches can use the GiST index.
    """
    with bind.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
        for table in SPATIAL_TABLES:
            conn.execute(
                text(
                    f'CREATE INDEX IF NOT EXISTS "ix_{table}_geog" ON "{table}" '
                    "USING GIST ((geography(ST_SetSRID("
                    "ST_MakePoint(longitude, latitude), 4326))))"
                )
            )


def create_db_and_tables(bind: Engine = engine) -> None:
    """Create all tables in the database if they don't exist."""
    SQLModel.metadata.create_all(bind)
    if bind.dialect.name == "postgresql":
        _create_spatial_indexes(bind)
        logger.info("PostGIS extension and spatial indexes ready")


def get_session() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]
