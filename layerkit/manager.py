"""Layer lifecycle: decide reuse vs. rebuild and persist the result.

Per build invocation each layer moves through
``absent | fresh | stale -> resolved``:

- not cache-typed: always recreated
- no record (or a corrupt one): ``create``
- record present: the layer's ``existing_layer_strategy`` decides when defined,
  otherwise desired metadata is compared to the persisted metadata in JSON form
  (equal -> keep, different -> update if defined, else recreate)

Errors from ``create``/``update`` propagate unchanged. Records are written only
after the operation succeeds, and are invalidated before ``update`` runs, so a
failed layer is seen as absent by the next build.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from typing import Any

from .env import Env
from .errors import MetadataCorruptError
from .layer import (
    ALLOWED_STRATEGIES,
    CachedLayer,
    ExistingLayerStrategy,
    Layer,
    LayerContext,
    LayerData,
    LayerOutcome,
    LayerResult,
    LayerTypes,
)
from .names import validate_layer_name
from .store import LayerMetadataStore, persisted_form

module_logger = logging.getLogger(__name__)


class LayerManager:
    def __init__(
        self,
        layers_dir: str | os.PathLike[str],
        *,
        app_dir: str | os.PathLike[str] | None = None,
        store: LayerMetadataStore | None = None,
        logger: logging.Logger | None = None,
    ):
        self.store = store or LayerMetadataStore(layers_dir)
        self.layers_dir = self.store.layers_dir
        self.app_dir = os.path.abspath(os.fspath(app_dir)) if app_dir is not None else None
        self.logger = logger or module_logger

    def handle_layer(self, name: str, layer: Layer, env: Mapping[str, str]) -> LayerData:
        layer_name = validate_layer_name(name)
        types = layer.types()
        if not isinstance(types, LayerTypes):
            raise TypeError(
                f"Layer {layer_name} types() must return LayerTypes (type={type(types).__name__})"
            )

        snapshot = env if isinstance(env, Env) else Env(env)
        ctx = LayerContext(
            name=layer_name,
            path=self.store.layer_path(layer_name),
            env=snapshot,
            layers_dir=self.layers_dir,
            app_dir=self.app_dir,
            logger=self.logger,
        )

        if not types.cache:
            self.logger.debug("Layer %s is not cache-typed; recreating", layer_name)
            self.store.delete(layer_name)
            return self._create(ctx, layer, types, outcome="created")

        cached = self._load_cached(layer_name, layer)
        if cached is None:
            if self.store.has_directory(layer_name):
                self.logger.debug("Removing untrusted directory for layer %s", layer_name)
                self.store.delete(layer_name)
            return self._create(ctx, layer, types, outcome="created")

        strategy = self._existing_layer_strategy(ctx, layer, cached)
        if strategy == "update" and not _has_operation(layer, "update"):
            self.logger.debug(
                "Layer %s defines no update operation; recreating instead", layer_name
            )
            strategy = "recreate"

        if strategy == "keep":
            self.logger.info("Layer %s: reusing cached layer", layer_name)
            if cached.types != types:
                self.store.save(layer_name, types=types, metadata=cached.metadata, env=cached.env)
            return LayerData(
                name=layer_name,
                path=cached.path,
                types=types,
                metadata=cached.metadata,
                env=cached.env,
                outcome="kept",
            )

        if strategy == "update":
            self.logger.info("Layer %s: updating cached layer", layer_name)
            self.store.invalidate(layer_name)
            result = self._run_operation(
                ctx, "update", lambda: layer.update(ctx, cached)  # type: ignore[attr-defined]
            )
            return self._resolve(ctx, types, result, outcome="updated")

        self.logger.info("Layer %s: discarding cached layer and recreating", layer_name)
        self.store.delete(layer_name)
        return self._create(ctx, layer, types, outcome="recreated")

    def prune(self, keep_names: Iterable[str]) -> list[str]:
        """Delete managed layers whose names are not in `keep_names`."""

        keep = {validate_layer_name(name) for name in keep_names}
        removed: list[str] = []
        for name in self.store.names():
            if name in keep:
                continue
            self.logger.info("Pruning undeclared layer %s", name)
            self.store.delete(name)
            removed.append(name)
        return removed

    def _load_cached(self, layer_name: str, layer: Layer) -> CachedLayer | None:
        metadata_type = getattr(layer, "metadata_type", None)
        try:
            return self.store.load(layer_name, metadata_type)
        except MetadataCorruptError as exc:
            self.logger.warning("%s; treating layer as absent", exc)
            self.store.delete(layer_name)
            return None

    def _existing_layer_strategy(
        self, ctx: LayerContext, layer: Layer, cached: CachedLayer
    ) -> ExistingLayerStrategy:
        if _has_operation(layer, "existing_layer_strategy"):
            strategy = layer.existing_layer_strategy(ctx, cached)  # type: ignore[attr-defined]
            if strategy not in ALLOWED_STRATEGIES:
                raise ValueError(
                    f"Layer {ctx.name} returned invalid existing layer strategy: {strategy!r}"
                )
            return strategy

        if not _has_operation(layer, "desired_metadata"):
            raise TypeError(
                f"Cache-typed layer {ctx.name} must define desired_metadata() "
                "or existing_layer_strategy()"
            )
        desired = layer.desired_metadata(ctx)  # type: ignore[attr-defined]
        if persisted_form(desired) == persisted_form(cached.metadata):
            return "keep"
        self.logger.debug(
            "Layer %s metadata changed (cached=%r desired=%r)", ctx.name, cached.metadata, desired
        )
        return "update" if _has_operation(layer, "update") else "recreate"

    def _create(
        self, ctx: LayerContext, layer: Layer, types: LayerTypes, *, outcome: LayerOutcome
    ) -> LayerData:
        self.store.ensure_directory(ctx.name)
        result = self._run_operation(ctx, "create", lambda: layer.create(ctx))
        return self._resolve(ctx, types, result, outcome=outcome)

    def _run_operation(self, ctx: LayerContext, operation: str, call: Any) -> LayerResult:
        try:
            result = call()
        except Exception as exc:
            self.logger.error("Layer %s %s failed: %s", ctx.name, operation, exc)
            _attach_layer_error(exc, layer_name=ctx.name, operation=operation)
            raise
        if not isinstance(result, LayerResult):
            raise TypeError(
                f"Layer {ctx.name} {operation}() must return LayerResult (type={type(result).__name__})"
            )
        return result

    def _resolve(
        self,
        ctx: LayerContext,
        types: LayerTypes,
        result: LayerResult,
        *,
        outcome: LayerOutcome,
    ) -> LayerData:
        saved = self.store.save(ctx.name, types=types, metadata=result.metadata, env=result.env)
        self.logger.info(
            "Layer %s resolved (outcome=%s, modifications=%d)", ctx.name, outcome, len(result.env)
        )
        return LayerData(
            name=ctx.name,
            path=saved.path,
            types=types,
            metadata=result.metadata,
            env=result.env,
            outcome=outcome,
        )


def _has_operation(layer: Layer, name: str) -> bool:
    return callable(getattr(layer, name, None))


def _attach_layer_error(exc: Exception, *, layer_name: str, operation: str) -> None:
    for attr, value in (("layer_name", layer_name), ("layer_operation", operation)):
        if getattr(exc, attr, None) is not None:
            continue
        try:
            setattr(exc, attr, value)
        except AttributeError:
            pass
