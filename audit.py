import logging
from typing import Optional

from sqlmodel import Session

from models import Log

logger = logging.getLogger(__name__)


def record_action(session: Session, user_id: Optional[int], action: str) -> Log:
    """Append an audit row. The caller commits it with the change it describes."""
    entry = Log(user_id=user_id, action=action)
    session.add(entry)
    logger.info("audit user=%s action=%s", user_id, action)
    return entry
