"""Memoized composition of the relationship explorer pipeline."""

from __future__ import annotations

import hashlib
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel, to_snake

from backend.app.canonicalization import GraphCanonicalizer
from backend.app.config import AppConfig, LayoutMode, LayoutType, load_config
from backend.app.contracts import CanonicalEdge, CanonicalNode, RawGraphPayload
from backend.app.filtering import FilterChain, FilterSettings
from backend.app.grouping import GroupingInferencer
from backend.app.layout import layout_graph, layout_graph_async

LOGGER = logging.getLogger(__name__)

_PAYLOAD_KEYS = ("center", "nodes", "edges")

FilterInput = Union[FilterSettings, Mapping[str, Any], None]


class LayoutSettings(BaseModel):
    """Requested layout strategy; unset fields fall back to configuration."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    layout_type: Optional[LayoutType] = None
    mode: Optional[LayoutMode] = None
    options: Dict[str, Any] = Field(default_factory=dict)


LayoutInput = Union[LayoutSettings, Mapping[str, Any], None]


@dataclass(frozen=True)
class ExplorerError:
    """Structured failure surfaced to the presentation layer."""

    stage: str
    message: str
    error_type: str

    def to_payload(self) -> Dict[str, str]:
        return {"stage": self.stage, "message": self.message, "errorType": self.error_type}


@dataclass(frozen=True)
class ExplorerResult:
    """Positioned nodes and edges returned atomically by the explorer."""

    nodes: Tuple[CanonicalNode, ...]
    edges: Tuple[CanonicalEdge, ...]
    error: Optional[ExplorerError] = None
    diagnostics: Tuple[str, ...] = field(default_factory=tuple)
    layout_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> Dict[str, Any]:
        """Render the result with camelCase keys for JSON clients."""

        return {
            "nodes": [node.model_dump(mode="json", by_alias=True) for node in self.nodes],
            "edges": [edge.model_dump(mode="json", by_alias=True) for edge in self.edges],
            "error": self.error.to_payload() if self.error is not None else None,
            "diagnostics": list(self.diagnostics),
            "layoutType": self.layout_type,
        }


@dataclass(frozen=True)
class _Request:
    """Resolved inputs for one pipeline run."""

    key: str
    payload: Any
    focal_id: Optional[str]
    filters: FilterSettings
    layout_type: str
    layout_options: Dict[str, Any]


@dataclass(frozen=True)
class _Prepared:
    """Output of the synchronous stages, ready for layout."""

    nodes: Tuple[CanonicalNode, ...]
    edges: Tuple[CanonicalEdge, ...]
    diagnostics: Tuple[str, ...]


class _StageFailure(Exception):
    """Wraps an exception with the name of the stage that raised it."""

    def __init__(self, stage: str, cause: Exception, diagnostics: Sequence[str]) -> None:
        super().__init__(str(cause))
        self.stage = stage
        self.cause = cause
        self.diagnostics = tuple(diagnostics)


def _graph_contract(payload: Any) -> Any:
    """Return only the ``{center, nodes, edges}`` part of ``payload``."""

    if isinstance(payload, RawGraphPayload):
        return payload.model_dump(mode="json")
    if isinstance(payload, Mapping):
        return {key: payload.get(key) for key in _PAYLOAD_KEYS}
    return payload


def _structural_key(parts: Mapping[str, Any]) -> str:
    """Return a SHA-256 digest of the canonical JSON encoding of ``parts``."""

    encoded = json.dumps(parts, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class GraphExplorer:
    """Run canonicalization, grouping, filtering and layout with memoization.

    Results are cached per instance in a bounded LRU keyed on the structural
    hash of the inputs, so callers may rebuild equal filter objects on every
    request without forcing a recomputation.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        canonicalizer: Optional[GraphCanonicalizer] = None,
        inferencer: Optional[GroupingInferencer] = None,
    ) -> None:
        self._config = config or load_config()
        self._canonicalizer = canonicalizer or GraphCanonicalizer(self._config.canonicalization)
        self._inferencer = inferencer or GroupingInferencer()
        self._cache: "OrderedDict[str, ExplorerResult]" = OrderedDict()
        self._cache_size = self._config.explorer.cache_size
        self._lock = RLock()
        self._generation = 0
        self._latest: Optional[ExplorerResult] = None
        self._latest_generation = 0

    @property
    def config(self) -> AppConfig:
        return self._config

    def explore(
        self,
        payload: Any,
        focal_id: Optional[str],
        filters: FilterInput = None,
        layout: LayoutInput = None,
    ) -> ExplorerResult:
        """Run the full pipeline, returning a cached result when inputs repeat.

        Args:
            payload: Raw ``{center, nodes, edges}`` graph.
            focal_id: Identifier of the focal entity.
            filters: Filter settings or a mapping overriding configured defaults.
            layout: Layout settings or a mapping with ``layoutType``, ``mode``
                and ``options``.

        Returns:
            ExplorerResult: Positioned graph, or an empty graph with ``error``
            set when a stage fails. Never raises for pipeline failures.
        """

        generation = self._next_generation()
        request, failure = self._resolve(payload, focal_id, filters, layout)
        if failure is not None:
            return self._publish(failure, generation)
        cached = self._cached(request.key)
        if cached is not None:
            return self._publish(cached, generation)
        try:
            prepared = self._prepare(request)
            nodes = self._run_layout(request, prepared)
        except _StageFailure as failed:
            return self._publish(self._failure(failed), generation)
        return self._complete(request, prepared, nodes, generation)

    async def explore_async(
        self,
        payload: Any,
        focal_id: Optional[str],
        filters: FilterInput = None,
        layout: LayoutInput = None,
    ) -> ExplorerResult:
        """Async variant of :meth:`explore` that awaits the force relaxation.

        A run that finishes after a newer request has completed still returns
        its own result but does not replace :meth:`latest`.
        """

        generation = self._next_generation()
        request, failure = self._resolve(payload, focal_id, filters, layout)
        if failure is not None:
            return self._publish(failure, generation)
        cached = self._cached(request.key)
        if cached is not None:
            return self._publish(cached, generation)
        try:
            prepared = self._prepare(request)
            try:
                nodes = await layout_graph_async(
                    prepared.nodes, prepared.edges, request.layout_type, request.layout_options
                )
            except Exception as exc:  # noqa: BLE001 - surfaced as an ExplorerError
                raise _StageFailure("layout", exc, prepared.diagnostics) from exc
        except _StageFailure as failed:
            return self._publish(self._failure(failed), generation)
        return self._complete(request, prepared, nodes, generation)

    def latest(self) -> Optional[ExplorerResult]:
        """Return the result of the most recent request to complete."""

        with self._lock:
            return self._latest

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def resolve_filters(self, filters: FilterInput, focal_id: Optional[str]) -> FilterSettings:
        """Merge ``filters`` over configured defaults and pin the centre id."""

        if isinstance(filters, FilterSettings):
            settings = filters
        else:
            settings = FilterSettings.from_defaults(self._config.filters, filters)
        if settings.center_id is None and focal_id is not None:
            settings = settings.model_copy(update={"center_id": focal_id})
        return settings

    def resolve_layout(self, layout: LayoutInput) -> Tuple[str, Dict[str, Any]]:
        """Return the layout type and preset options merged with overrides."""

        if isinstance(layout, LayoutSettings):
            settings = layout
        else:
            settings = LayoutSettings.model_validate(dict(layout or {}))
        layout_type = settings.layout_type or self._config.layout.default_type
        options = self._config.layout.preset(layout_type, settings.mode)
        options.update({to_snake(key): value for key, value in settings.options.items()})
        return layout_type, options

    def _resolve(
        self,
        payload: Any,
        focal_id: Optional[str],
        filters: FilterInput,
        layout: LayoutInput,
    ) -> Tuple[Optional[_Request], Optional[ExplorerResult]]:
        try:
            settings = self.resolve_filters(filters, focal_id)
            layout_type, options = self.resolve_layout(layout)
        except (ValidationError, ValueError) as exc:
            LOGGER.warning("Rejected explorer settings: %s", exc)
            error = ExplorerError(stage="settings", message=str(exc), error_type=type(exc).__name__)
            return None, ExplorerResult(nodes=(), edges=(), error=error)

        contract = _graph_contract(payload)
        key = _structural_key(
            {
                "payload": contract,
                "focal_id": focal_id,
                "filters": settings.model_dump(mode="json"),
                "layout_type": layout_type,
                "layout_options": options,
            }
        )
        request = _Request(
            key=key,
            payload=contract,
            focal_id=focal_id,
            filters=settings,
            layout_type=layout_type,
            layout_options=options,
        )
        return request, None

    def _prepare(self, request: _Request) -> _Prepared:
        diagnostics: List[str] = []
        stage = "canonicalize"
        try:
            graph = self._canonicalizer.canonicalize(request.payload, request.focal_id)
            diagnostics.extend(graph.diagnostics)
            stage = "grouping"
            grouped = self._inferencer.infer(graph.nodes, graph.edges)
            stage = "filter"
            filtered = FilterChain(request.filters).apply(grouped, list(graph.edges))
            diagnostics.extend(filtered.diagnostics)
        except Exception as exc:  # noqa: BLE001 - surfaced as an ExplorerError
            raise _StageFailure(stage, exc, diagnostics) from exc
        return _Prepared(nodes=filtered.nodes, edges=filtered.edges, diagnostics=tuple(diagnostics))

    @staticmethod
    def _run_layout(request: _Request, prepared: _Prepared) -> List[CanonicalNode]:
        try:
            return layout_graph(prepared.nodes, prepared.edges, request.layout_type, request.layout_options)
        except Exception as exc:  # noqa: BLE001 - surfaced as an ExplorerError
            raise _StageFailure("layout", exc, prepared.diagnostics) from exc

    def _complete(
        self,
        request: _Request,
        prepared: _Prepared,
        nodes: Sequence[CanonicalNode],
        generation: int,
    ) -> ExplorerResult:
        result = ExplorerResult(
            nodes=tuple(nodes),
            edges=prepared.edges,
            diagnostics=prepared.diagnostics,
            layout_type=request.layout_type,
        )
        with self._lock:
            self._cache[request.key] = result
            self._cache.move_to_end(request.key)
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
        LOGGER.debug(
            "Explorer produced %d nodes and %d edges with %s layout",
            len(result.nodes),
            len(result.edges),
            request.layout_type,
        )
        return self._publish(result, generation)

    @staticmethod
    def _failure(failed: _StageFailure) -> ExplorerResult:
        LOGGER.exception("Explorer stage %s failed", failed.stage, exc_info=failed.cause)
        error = ExplorerError(
            stage=failed.stage,
            message=str(failed.cause),
            error_type=type(failed.cause).__name__,
        )
        return ExplorerResult(nodes=(), edges=(), error=error, diagnostics=failed.diagnostics)

    def _cached(self, key: str) -> Optional[ExplorerResult]:
        with self._lock:
            result = self._cache.get(key)
            if result is not None:
                self._cache.move_to_end(key)
                LOGGER.debug("Explorer cache hit for %s", key[:12])
            return result

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _publish(self, result: ExplorerResult, generation: int) -> ExplorerResult:
        with self._lock:
            if generation >= self._latest_generation:
                self._latest = result
                self._latest_generation = generation
        return result


def explore(
    payload: Any,
    focal_id: Optional[str],
    filters: FilterInput = None,
    layout: LayoutInput = None,
    *,
    config: Optional[AppConfig] = None,
) -> ExplorerResult:
    """Run the pipeline once without keeping an explorer around."""

    return GraphExplorer(config).explore(payload, focal_id, filters, layout)
