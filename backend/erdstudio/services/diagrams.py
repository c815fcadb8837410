"""Read-modify-write of diagram documents under the version check.

Every write goes through ``crud.conditional_update``; a ``None`` from it means
someone else wrote first and the caller gets a ``ConflictError``.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import anyio
from sqlalchemy.orm import Session

from .. import config, crud, models
from ..erd import ops
from ..erd.graph import ChatMessage, Erd
from ..erd.normalize import load_strict, normalize_erd
from ..errors import (
    AIFailedError,
    AIQuotaExceededError,
    AITimeoutError,
    AppError,
    ConflictError,
    NotFoundError,
    ValidationFailed,
)
from .ai.orchestrator import AIOrchestrator

logger = logging.getLogger(__name__)

AI_ERRORS = (AIQuotaExceededError, AIFailedError, AITimeoutError)
NOT_FOUND_CODES = {"TABLE_NOT_FOUND", "FIELD_NOT_FOUND"}


def now_ms() -> int:
    return int(time.time() * 1000)


def chat_message(role: str, content: str) -> Dict[str, Any]:
    return ChatMessage(role=role, content=content, ts=now_ms()).model_dump()


def append_chat(
    chat: Optional[Iterable[Mapping[str, Any]]],
    *messages: Mapping[str, Any],
    limit: int = config.CHAT_HISTORY_LIMIT,
) -> List[Dict[str, Any]]:
    history = [dict(m) for m in chat or [] if isinstance(m, Mapping)]
    history.extend(dict(m) for m in messages)
    return history[-limit:] if limit > 0 else []


def load_graph(diagram: models.Diagram) -> Erd:
    return load_strict(diagram.nodes, diagram.edges)


def translate_ops_error(exc: ops.OpsError) -> AppError:
    if exc.code in NOT_FOUND_CODES:
        return NotFoundError(exc.message, code=exc.code)
    return ValidationFailed(exc.message, code=exc.code)


def commit(
    db: Session,
    diagram: models.Diagram,
    values: Dict[str, Any],
    version: Optional[int] = None,
) -> models.Diagram:
    expected = diagram.version if version is None else version
    updated = crud.conditional_update(db, diagram.id, expected, values)
    if updated is None:
        raise ConflictError()
    return updated


def commit_graph(
    db: Session,
    diagram: models.Diagram,
    graph: Erd,
    version: Optional[int] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> models.Diagram:
    data = graph.to_dict()
    return commit(db, diagram, {**(extra or {}), "nodes": data["nodes"], "edges": data["edges"]}, version)


def edit_graph(
    db: Session,
    diagram: models.Diagram,
    edit: Callable[[Dict[str, Any]], Dict[str, Any]],
    version: Optional[int] = None,
) -> models.Diagram:
    """Run a single-field edit on the stored graph, normalize and commit it."""
    try:
        edited = edit(load_graph(diagram).to_dict())
    except ops.OpsError as exc:
        raise translate_ops_error(exc) from exc
    return commit_graph(db, diagram, normalize_erd(edited), version)


def record_ai_error(
    db: Session,
    diagram_id: int,
    expected_version: int,
    chat: List[Dict[str, Any]],
    error: AppError,
) -> bool:
    """Best-effort chat note about a failed AI turn; a conflict just drops it."""
    note = chat_message("assistant", f"There was an error: {error.message}")
    try:
        written = crud.conditional_update(db, diagram_id, expected_version, {"chat": append_chat(chat, note)})
    except Exception:
        logger.warning("Could not record AI error for diagram %s", diagram_id, exc_info=True)
        db.rollback()
        return False
    if written is None:
        logger.info("Dropped AI error report for diagram %s: version conflict", diagram_id)
        return False
    return True


def metadata_values(update) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    title = update.title or update.name
    if title:
        values["title"] = title
    if update.type:
        values["type"] = update.type
    if update.model:
        values["model"] = update.model
    return values


async def apply_update(
    db: Session,
    diagram: models.Diagram,
    update,
    orchestrator: Optional[AIOrchestrator] = None,
) -> models.Diagram:
    """PATCH semantics: nodes/edges win over prompt; metadata rides along either way."""
    values = metadata_values(update)
    expected = diagram.version if update.version is None else update.version

    if update.nodes is not None or update.edges is not None:
        current = load_graph(diagram).to_dict()
        graph = normalize_erd(
            {
                "nodes": update.nodes if update.nodes is not None else current["nodes"],
                "edges": update.edges if update.edges is not None else current["edges"],
            }
        )
        return await anyio.to_thread.run_sync(commit_graph, db, diagram, graph, expected, values)

    if update.prompt:
        if orchestrator is None:
            raise AIFailedError("AI generation is not available")
        return await generate_into(db, diagram, update.prompt, expected, values, orchestrator)

    if not values:
        raise ValidationFailed("Nothing to update")
    return await anyio.to_thread.run_sync(commit, db, diagram, values, expected)


async def generate_into(
    db: Session,
    diagram: models.Diagram,
    prompt: str,
    expected: int,
    values: Dict[str, Any],
    orchestrator: AIOrchestrator,
) -> models.Diagram:
    model = values.get("model") or diagram.model or config.DEFAULT_AI_MODEL
    history = list(diagram.chat or [])
    chat = append_chat(history, chat_message("user", prompt))

    try:
        result = await orchestrator.generate(load_graph(diagram), prompt, history, model)
    except AI_ERRORS as exc:
        await anyio.to_thread.run_sync(record_ai_error, db, diagram.id, expected, chat, exc)
        raise

    chat = append_chat(chat, chat_message("assistant", result.message))
    return await anyio.to_thread.run_sync(
        commit_graph,
        db,
        diagram,
        result.graph,
        expected,
        {**values, "prompt": prompt, "model": model, "chat": chat},
    )


# Field-level edits behind the node routes.


def rename_node_label(db: Session, diagram: models.Diagram, node_id: str, label: str, version=None):
    return edit_graph(db, diagram, lambda g: ops.rename_label(g, node_id, label), version)


def add_node_field(db: Session, diagram: models.Diagram, node_id: str, field: Dict[str, Any], version=None):
    return edit_graph(db, diagram, lambda g: ops.add_field(g, node_id, field), version)


def update_node_field(
    db: Session,
    diagram: models.Diagram,
    node_id: str,
    field_id: str,
    changes: Dict[str, Any],
    version=None,
):
    return edit_graph(db, diagram, lambda g: ops.update_field(g, node_id, field_id, changes), version)


def delete_node_field(db: Session, diagram: models.Diagram, node_id: str, field_id: str, version=None):
    return edit_graph(db, diagram, lambda g: ops.delete_field(g, node_id, field_id), version)


def reorder_node_fields(db: Session, diagram: models.Diagram, node_id: str, order: List[str], version=None):
    return edit_graph(db, diagram, lambda g: ops.reorder_fields(g, node_id, order), version)
