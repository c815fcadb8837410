import json

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .database import Base


class JSONText(TypeDecorator):
    """JSON documents in a TEXT column, so one schema serves Postgres, MySQL and SQLite."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(value, ensure_ascii=True)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return value


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(120), nullable=False, unique=True, index=True)
    plan = Column(String(16), nullable=False, default="free", server_default="free")
    created_at = Column(TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    tokens = relationship(
        "UserToken",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    diagrams = relationship("Diagram", back_populates="user")


class UserToken(Base):
    __tablename__ = "user_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(255), nullable=False, unique=True, index=True)
    created_at = Column(TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    user = relationship("User", back_populates="tokens")


class Diagram(Base):
    __tablename__ = "diagrams"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL AND owner_anon_id IS NOT NULL) OR "
            "(user_id IS NOT NULL AND owner_anon_id IS NULL)",
            name="ck_diagrams_single_owner",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    owner_anon_id = Column(String(64), nullable=True, index=True)
    title = Column(String(120), nullable=False, default="Untitled Diagram")
    type = Column(String(32), nullable=False, index=True)
    prompt = Column(Text, nullable=False, default="")
    model = Column(String(64), nullable=False)
    nodes = Column(JSONText, nullable=False, default=list)  # strict React Flow nodes
    edges = Column(JSONText, nullable=False, default=list)
    chat = Column(JSONText, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="diagrams")


class AICacheEntry(Base):
    __tablename__ = "ai_cache"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(160), nullable=False, unique=True, index=True)
    raw = Column(Text, nullable=False)
    payload = Column(JSONText, nullable=False)
    created_at = Column(TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
