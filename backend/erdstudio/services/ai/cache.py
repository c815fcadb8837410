import hashlib
import json
import logging
import re
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import crud

logger = logging.getLogger(__name__)


def make_cache_key(model: str, prompt: str) -> str:
    normalized = re.sub(r"\s+", " ", prompt.strip())
    return f"{model}::" + hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class SqlAICache:
    """Replay store for provider answers, keyed by ``model::sha256(prompt)``.

    Stored payloads are raw provider output; callers must normalize them again.
    A broken cache never fails a generation, it just misses.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            entry = crud.get_cached_response(self.db, key)
        except SQLAlchemyError:
            logger.warning("AI cache lookup failed for %s", key, exc_info=True)
            self.db.rollback()
            return None
        if entry is None or not isinstance(entry.payload, dict):
            return None
        return entry.payload

    def put(self, key: str, payload: Dict[str, Any]) -> None:
        try:
            crud.save_cached_response(self.db, key, json.dumps(payload, ensure_ascii=True), payload)
        except SQLAlchemyError:
            logger.warning("AI cache write failed for %s", key, exc_info=True)
            self.db.rollback()
