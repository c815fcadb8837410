import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator

from . import config
from .erd.ops import to_canonical_key

TYPE_SLUG = re.compile(r"^[a-z][a-z0-9_-]*$")


def _canonical_model(value: str) -> str:
    if value not in config.CANONICAL_MODELS:
        raise ValueError(f"model must be one of {', '.join(config.CANONICAL_MODELS)}")
    return value


def _type_slug(value: str) -> str:
    value = value.lower()
    if not TYPE_SLUG.match(value):
        raise ValueError("type must start with a letter and contain only letters, digits, '_' or '-'")
    return value


DiagramType = Annotated[str, Field(min_length=1, max_length=32), AfterValidator(_type_slug)]
ModelId = Annotated[str, AfterValidator(_canonical_model)]
FieldKeyIn = Annotated[str, AfterValidator(to_canonical_key)]


class RequestModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


class DiagramCreate(RequestModel):
    name: str = Field(min_length=1, max_length=120)
    type: DiagramType
    model: Optional[ModelId] = None


class DiagramUpdate(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    type: Optional[DiagramType] = None
    nodes: Optional[List[Any]] = None
    edges: Optional[List[Any]] = None
    prompt: Optional[str] = Field(default=None, min_length=5, max_length=2000)
    model: Optional[ModelId] = None
    version: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def at_least_one_change(self) -> "DiagramUpdate":
        if not self.model_fields_set - {"version"}:
            raise ValueError("At least one field must be provided")
        return self


class DiagramRead(BaseModel):
    id: int
    title: str
    type: str
    prompt: str
    model: str
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    chat: List[Dict[str, Any]]
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DiagramPage(BaseModel):
    items: List[DiagramRead]
    total: int
    page: int
    limit: int


class FieldCreate(RequestModel):
    id: Optional[str] = Field(default=None, min_length=1)
    title: str = Field(min_length=1)
    type: str = Field(default="VARCHAR(255)", min_length=1)
    key: FieldKeyIn = "NONE"
    nullable: bool = True
    default: Optional[str] = None
    note: Optional[str] = None
    version: Optional[int] = Field(default=None, ge=0)

    def as_field(self, node_id: str) -> Dict[str, Any]:
        field = self.model_dump(exclude={"version"})
        field["id"] = self.id or f"{node_id}-{self.title}"
        return field


class FieldUpdate(RequestModel):
    id: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = Field(default=None, min_length=1)
    key: Optional[FieldKeyIn] = None
    nullable: Optional[bool] = None
    default: Optional[str] = None
    note: Optional[str] = None
    version: Optional[int] = Field(default=None, ge=0)

    @field_validator("id", "title", "type", "nullable")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"version"})


class ReorderRequest(RequestModel):
    order: List[str] = Field(min_length=1)
    version: Optional[int] = Field(default=None, ge=0)


class LabelUpdate(RequestModel):
    label: str = Field(min_length=1, max_length=120)
    version: Optional[int] = Field(default=None, ge=0)


class ToSqlRequest(RequestModel):
    nodes: List[Any] = Field(default_factory=list)
    edges: List[Any] = Field(default_factory=list)
    dialect: Optional[str] = None
    db_schema: Optional[str] = Field(default=None, alias="schema")


class SqlResponse(BaseModel):
    sql: str


class ClaimResponse(BaseModel):
    merged: int
