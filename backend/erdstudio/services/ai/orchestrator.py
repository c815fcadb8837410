"""Bridge between diagram state, the user's request and an LLM provider.

The provider answer is either a full replacement graph or a list of edit
operations; both end up in ``normalize_erd`` before anyone persists them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

import anyio
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ... import config
from ...erd.graph import Erd
from ...erd.normalize import normalize_erd
from ...erd.ops import OpsError, apply_ops, parse_ops
from ...errors import AIFailedError, AIQuotaExceededError, AITimeoutError, AppError
from .cache import make_cache_key
from .prompt import compose_prompt, tail_for_prompt
from .providers import ProviderRegistry, upstream_status

logger = logging.getLogger(__name__)

SUMMARY_TABLE_LIMIT = 5
QUOTA_MARKERS = ("quota", "resource_exhausted", "rate limit")


class AICache(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def put(self, key: str, payload: Dict[str, Any]) -> None: ...


@dataclass
class FullGraphResponse:
    nodes: List[Any]
    edges: List[Any]
    message: Optional[str] = None


@dataclass
class OpsResponse:
    ops: List[Any]
    message: Optional[str] = None


ProviderResponse = Union[FullGraphResponse, OpsResponse]


@dataclass
class GenerationResult:
    graph: Erd
    message: str
    cached: bool = False


def is_retriable(exc: BaseException) -> bool:
    status = upstream_status(exc)
    return status == 429 or (status is not None and 500 <= status < 600)


def classify_failure(exc: BaseException) -> AppError:
    status = upstream_status(exc)
    text = str(exc)
    if status == 429 or any(marker in text.lower() for marker in QUOTA_MARKERS):
        return AIQuotaExceededError(f"AI provider quota exceeded: {text}" if text else None)
    return AIFailedError(f"AI generation failed: {text}" if text else None, upstream_status=status)


def parse_provider_response(payload: Any) -> ProviderResponse:
    """Tell an operations answer from a full-graph answer by the presence of ``ops``."""
    if not isinstance(payload, Mapping):
        raise AIFailedError("AI returned an unexpected response shape")

    message = payload.get("message")
    message = message.strip() if isinstance(message, str) and message.strip() else None

    if isinstance(payload.get("ops"), list):
        try:
            ops = parse_ops(payload["ops"])
        except ValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            where = ".".join(str(part) for part in first.get("loc", ()))
            raise AIFailedError(f"AI returned invalid operations: {where} {first.get('msg', '')}".strip()) from exc
        return OpsResponse(ops=ops, message=message)

    nodes, edges = payload.get("nodes"), payload.get("edges")
    if not isinstance(nodes, list) and not isinstance(edges, list):
        raise AIFailedError("AI response contained neither a diagram nor operations")
    return FullGraphResponse(
        nodes=nodes if isinstance(nodes, list) else [],
        edges=edges if isinstance(edges, list) else [],
        message=message,
    )


def resolve_response(current: Mapping[str, Any], response: ProviderResponse) -> Erd:
    if isinstance(response, OpsResponse):
        try:
            applied = apply_ops(current, response.ops)
        except OpsError as exc:
            raise AIFailedError(f"AI returned operations that could not be applied: {exc.message}") from exc
        return normalize_erd(applied)
    if isinstance(response, FullGraphResponse):
        return normalize_erd({"nodes": response.nodes, "edges": response.edges})
    raise TypeError(f"unsupported provider response {type(response).__name__}")


def summarize_graph(graph: Erd, limit: int = SUMMARY_TABLE_LIMIT) -> str:
    tables = len(graph.nodes)
    relationships = len(graph.edges)
    head = (
        f"Diagram updated: {tables} table{'s' if tables != 1 else ''}, "
        f"{relationships} relationship{'s' if relationships != 1 else ''}."
    )
    parts = []
    for node in graph.nodes[:limit]:
        fields = node.data.fields
        pks = sum(1 for f in fields if f.key == "PK")
        fks = sum(1 for f in fields if f.key == "FK")
        parts.append(f"{node.data.label} ({len(fields)} fields, {pks} PK, {fks} FK)")
    if not parts:
        return head
    more = tables - limit
    tail = f"; and {more} more" if more > 0 else ""
    return f"{head} {'; '.join(parts)}{tail}."


class AIOrchestrator:
    def __init__(
        self,
        registry: ProviderRegistry,
        cache: Optional[AICache] = None,
        *,
        timeout: float = config.AI_TIMEOUT_SECONDS,
        attempts: int = config.AI_RETRY_ATTEMPTS,
        base_delay: float = config.AI_RETRY_BASE_DELAY,
        chat_tail: int = config.AI_CHAT_TAIL,
    ):
        self.registry = registry
        self.cache = cache
        self.timeout = timeout
        self.attempts = attempts
        self.base_delay = base_delay
        self.chat_tail = chat_tail

    async def call_provider(self, prompt: str, model: str) -> Dict[str, Any]:
        """Provider call with retry on 429/5xx inside one hard deadline."""
        provider = self.registry.for_model(model)
        result: Dict[str, Any] = {}
        try:
            with anyio.fail_after(self.timeout):
                async for attempt in AsyncRetrying(
                    retry=retry_if_exception(is_retriable),
                    stop=stop_after_attempt(self.attempts),
                    wait=wait_exponential(multiplier=self.base_delay) + wait_random(0, self.base_delay / 4),
                    before_sleep=before_sleep_log(logger, logging.WARNING),
                    reraise=True,
                ):
                    with attempt:
                        result = await provider.generate(prompt, model)
        except TimeoutError as exc:
            raise AITimeoutError(f"AI request timed out after {self.timeout:g}s") from exc
        except AppError:
            raise
        except Exception as exc:
            logger.warning("AI provider %s failed for %s: %s", provider.name, model, exc)
            raise classify_failure(exc) from exc
        return result

    async def generate(
        self,
        graph: Erd,
        user_prompt: str,
        chat: Sequence[Mapping[str, Any]] | None,
        model: str,
    ) -> GenerationResult:
        current = graph.to_dict()
        prompt = compose_prompt(current, user_prompt, tail_for_prompt(chat, self.chat_tail))
        key = make_cache_key(model, prompt)

        payload = None
        if self.cache is not None:
            payload = await anyio.to_thread.run_sync(self.cache.get, key)
        cached = payload is not None
        if payload is None:
            payload = await self.call_provider(prompt, model)

        response = parse_provider_response(payload)
        result = resolve_response(current, response)

        if self.cache is not None and not cached:
            await anyio.to_thread.run_sync(self.cache.put, key, payload)

        return GenerationResult(
            graph=result,
            message=response.message or summarize_graph(result),
            cached=cached,
        )
