from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import diagrams as diagram_service
from ..services.owner import Owner, get_owner
from .diagrams import owned_diagram, present

router = APIRouter(prefix="/diagrams/{diagram_id}/nodes/{node_id}", tags=["nodes"])


@router.patch("/label", response_model=schemas.DiagramRead)
def update_node_label(
    diagram_id: int,
    node_id: str,
    payload: schemas.LabelUpdate,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    diagram = owned_diagram(db, diagram_id, owner)
    return present(diagram_service.rename_node_label(db, diagram, node_id, payload.label, payload.version))


# must stay above the /schema/{field_id} routes
@router.patch("/schema/reorder", response_model=schemas.DiagramRead)
def reorder_node_fields(
    diagram_id: int,
    node_id: str,
    payload: schemas.ReorderRequest,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    diagram = owned_diagram(db, diagram_id, owner)
    return present(diagram_service.reorder_node_fields(db, diagram, node_id, payload.order, payload.version))


@router.post("/schema", response_model=schemas.DiagramRead)
def add_node_field(
    diagram_id: int,
    node_id: str,
    payload: schemas.FieldCreate,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    diagram = owned_diagram(db, diagram_id, owner)
    field = payload.as_field(node_id)
    return present(diagram_service.add_node_field(db, diagram, node_id, field, payload.version))


@router.patch("/schema/{field_id}", response_model=schemas.DiagramRead)
def update_node_field(
    diagram_id: int,
    node_id: str,
    field_id: str,
    payload: schemas.FieldUpdate,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    diagram = owned_diagram(db, diagram_id, owner)
    return present(
        diagram_service.update_node_field(db, diagram, node_id, field_id, payload.changes(), payload.version)
    )


@router.delete("/schema/{field_id}", response_model=schemas.DiagramRead)
def delete_node_field(
    diagram_id: int,
    node_id: str,
    field_id: str,
    version: int | None = None,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    diagram = owned_diagram(db, diagram_id, owner)
    return present(diagram_service.delete_node_field(db, diagram, node_id, field_id, version))
