from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models


def list_diagrams(db: Session, owner, *, offset: int = 0, limit: int = 20) -> Tuple[List[models.Diagram], int]:
    query = db.query(models.Diagram).filter(*owner.clauses())
    total = query.count()
    items = (
        query.order_by(models.Diagram.updated_at.desc(), models.Diagram.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def get_diagram(db: Session, diagram_id: int, owner) -> Optional[models.Diagram]:
    return (
        db.query(models.Diagram)
        .filter(models.Diagram.id == diagram_id, *owner.clauses())
        .first()
    )


def create_diagram(db: Session, owner, *, title: str, type: str, model: str) -> models.Diagram:
    diagram = models.Diagram(
        **owner.as_values(),
        title=title,
        type=type,
        model=model,
        prompt="",
        nodes=[],
        edges=[],
        chat=[],
        version=0,
    )
    db.add(diagram)
    db.commit()
    db.refresh(diagram)
    return diagram


def conditional_update(
    db: Session,
    diagram_id: int,
    expected_version: int,
    values: Dict[str, Any],
) -> Optional[models.Diagram]:
    """Write ``values`` and bump the version only if nobody wrote since ``expected_version``.

    Returns ``None`` on a version mismatch; nothing is written in that case.
    """
    stmt = (
        update(models.Diagram)
        .where(
            models.Diagram.id == diagram_id,
            models.Diagram.version == expected_version,
        )
        .values(
            **values,
            version=models.Diagram.version + 1,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        db.rollback()
        return None
    db.commit()

    diagram = db.get(models.Diagram, diagram_id)
    if diagram is not None:
        db.refresh(diagram)
    return diagram


def delete_diagram(db: Session, diagram_id: int, owner) -> int:
    deleted = (
        db.query(models.Diagram)
        .filter(models.Diagram.id == diagram_id, *owner.clauses())
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def count_user_diagrams(db: Session, user_id: int) -> int:
    return db.scalar(
        select(func.count()).select_from(models.Diagram).where(models.Diagram.user_id == user_id)
    ) or 0


def reassign_guest_diagrams(db: Session, anon_id: str, user_id: int) -> int:
    try:
        result = db.execute(
            update(models.Diagram)
            .where(models.Diagram.owner_anon_id == anon_id)
            .values(user_id=user_id, owner_anon_id=None)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result.rowcount or 0


def get_user_by_token(db: Session, token: str) -> Optional[models.User]:
    token_row = db.query(models.UserToken).filter(models.UserToken.token == token).first()
    return token_row.user if token_row else None


def get_cached_response(db: Session, key: str) -> Optional[models.AICacheEntry]:
    return db.query(models.AICacheEntry).filter(models.AICacheEntry.key == key).first()


def save_cached_response(db: Session, key: str, raw: str, payload: Dict[str, Any]) -> None:
    db.add(models.AICacheEntry(key=key, raw=raw, payload=payload))
    try:
        db.commit()
    except IntegrityError:
        # another request cached the same key first
        db.rollback()
