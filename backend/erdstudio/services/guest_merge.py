import logging
from typing import Optional

from sqlalchemy.orm import Session

from .. import config, crud, models

logger = logging.getLogger(__name__)


def merge_guest_diagrams(db: Session, aid: Optional[str], user: models.User) -> int:
    """Move the guest's diagrams to ``user``; returns how many moved.

    Free-plan users already at the diagram limit keep their account as is and
    the guest diagrams stay with the cookie.
    """
    if not aid:
        return 0
    if (user.plan or "free") == "free":
        owned = crud.count_user_diagrams(db, user.id)
        if owned >= config.FREE_PLAN_DIAGRAM_LIMIT:
            logger.info("Skipping guest merge for user %s: %s diagrams already owned", user.id, owned)
            return 0

    merged = crud.reassign_guest_diagrams(db, aid, user.id)
    if merged:
        logger.info("Merged %s guest diagrams into user %s", merged, user.id)
    return merged
