from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Header, Query, Request, Response, status
from sqlalchemy.orm import Session

from .. import config, crud, models, schemas
from ..database import get_db
from ..erd.normalize import normalize_erd
from ..errors import MissingOwnerError, NotFoundError
from ..services import diagrams as diagram_service
from ..services.ai.cache import SqlAICache
from ..services.ai.orchestrator import AIOrchestrator
from ..services.ai.providers import ProviderRegistry
from ..services.guest_merge import merge_guest_diagrams
from ..services.owner import GUEST_COOKIE, Owner, bearer_token, get_owner
from ..utils.dialects import pick_dialect
from ..utils.er_to_sql import to_sql
from ..utils.files import content_disposition, sanitize_filename

router = APIRouter(prefix="/diagrams", tags=["diagrams"])


def get_providers(request: Request) -> ProviderRegistry:
    return request.app.state.providers


def get_orchestrator(
    providers: ProviderRegistry = Depends(get_providers),
    db: Session = Depends(get_db),
) -> AIOrchestrator:
    return AIOrchestrator(providers, SqlAICache(db) if config.AI_CACHE_ENABLED else None)


def owned_diagram(db: Session, diagram_id: int, owner: Owner) -> models.Diagram:
    diagram = crud.get_diagram(db, diagram_id, owner)
    if not diagram:
        raise NotFoundError("Diagram not found")
    return diagram


def present(diagram: models.Diagram) -> schemas.DiagramRead:
    """Serialize a diagram, upgrading legacy graphs to the strict shape."""
    graph = diagram_service.load_graph(diagram).to_dict()
    return schemas.DiagramRead(
        id=diagram.id,
        title=diagram.title,
        type=diagram.type,
        prompt=diagram.prompt or "",
        model=diagram.model,
        nodes=graph["nodes"],
        edges=graph["edges"],
        chat=diagram.chat or [],
        version=diagram.version,
        created_at=diagram.created_at,
        updated_at=diagram.updated_at,
    )


@router.get("", response_model=schemas.DiagramPage)
def list_diagrams(
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    items, total = crud.list_diagrams(db, owner, offset=(page - 1) * limit, limit=limit)
    return schemas.DiagramPage(items=[present(d) for d in items], total=total, page=page, limit=limit)


@router.post("", response_model=schemas.DiagramRead, status_code=status.HTTP_201_CREATED)
def create_diagram(
    payload: schemas.DiagramCreate,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    diagram = crud.create_diagram(
        db,
        owner,
        title=payload.name,
        type=payload.type,
        model=payload.model or config.DEFAULT_AI_MODEL,
    )
    return present(diagram)


@router.post("/to-sql", response_model=schemas.SqlResponse)
def export_sql(payload: schemas.ToSqlRequest):
    graph = normalize_erd({"nodes": payload.nodes, "edges": payload.edges})
    return {"sql": to_sql(graph, pick_dialect(payload.dialect), schema=payload.db_schema or "")}


@router.post("/claim", response_model=schemas.ClaimResponse)
def claim_guest_diagrams(
    authorization: Optional[str] = Header(default=None),
    aid: Optional[str] = Cookie(default=None, alias=GUEST_COOKIE),
    db: Session = Depends(get_db),
):
    token = bearer_token(authorization)
    user = crud.get_user_by_token(db, token) if token else None
    if user is None:
        raise MissingOwnerError("Sign in to claim guest diagrams", code="UNAUTHORIZED")
    return {"merged": merge_guest_diagrams(db, aid, user)}


@router.get("/{diagram_id}", response_model=schemas.DiagramRead)
def read_diagram(diagram_id: int, owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    return present(owned_diagram(db, diagram_id, owner))


@router.patch("/{diagram_id}", response_model=schemas.DiagramRead)
async def update_diagram(
    diagram_id: int,
    payload: schemas.DiagramUpdate,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    diagram = owned_diagram(db, diagram_id, owner)
    updated = await diagram_service.apply_update(db, diagram, payload, orchestrator)
    return present(updated)


@router.delete("/{diagram_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_diagram(diagram_id: int, owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    removed = crud.delete_diagram(db, diagram_id, owner)
    if not removed:
        raise NotFoundError("Diagram not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{diagram_id}/export.sql")
def export_diagram_sql(
    diagram_id: int,
    dialect: Optional[str] = None,
    schema: Optional[str] = None,
    filename: Optional[str] = None,
    x_sql_dialect: Optional[str] = Header(default=None),
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    diagram = owned_diagram(db, diagram_id, owner)
    renderer = pick_dialect(dialect, x_sql_dialect)
    sql = to_sql(diagram_service.load_graph(diagram), renderer, schema=(schema or "").strip())
    name = sanitize_filename(filename or diagram.title)
    headers = {
        "Content-Disposition": content_disposition(f"{name}.sql"),
        "X-SQL-Dialect": renderer.id,
    }
    return Response(content=sql, media_type="text/plain; charset=utf-8", headers=headers)
