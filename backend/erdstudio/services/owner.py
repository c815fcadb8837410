"""Who owns a request: a signed-in user or a guest identified by the ``aid`` cookie."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import Cookie, Depends, Header
from sqlalchemy.orm import Session

from .. import crud, models
from ..database import get_db
from ..errors import MissingOwnerError

GUEST_COOKIE = "aid"


@dataclass(frozen=True)
class Owner:
    user_id: Optional[int] = None
    anon_id: Optional[str] = None
    plan: str = "free"

    def __post_init__(self) -> None:
        if (self.user_id is None) == (self.anon_id is None):
            raise ValueError("exactly one of user_id or anon_id must be set")

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    def clauses(self) -> List[Any]:
        if self.user_id is not None:
            return [models.Diagram.user_id == self.user_id]
        return [models.Diagram.owner_anon_id == self.anon_id]

    def as_values(self) -> Dict[str, Any]:
        if self.user_id is not None:
            return {"user_id": self.user_id, "owner_anon_id": None}
        return {"user_id": None, "owner_anon_id": self.anon_id}


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        return token or None
    return None


def resolve_owner(db: Session, authorization: Optional[str], aid: Optional[str]) -> Owner:
    token = bearer_token(authorization)
    if token:
        user = crud.get_user_by_token(db, token)
        if user:
            return Owner(user_id=user.id, plan=user.plan or "free")

    if aid and aid.strip():
        return Owner(anon_id=aid.strip())

    raise MissingOwnerError("Missing anon id")


def get_owner(
    authorization: Optional[str] = Header(default=None),
    aid: Optional[str] = Cookie(default=None, alias=GUEST_COOKIE),
    db: Session = Depends(get_db),
) -> Owner:
    return resolve_owner(db, authorization, aid)
