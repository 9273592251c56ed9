"""Layer capability contract.

A layer is a strategy object. `types()` and `create()` are required;
`desired_metadata()`, `update()` and `existing_layer_strategy()` are optional
and detected by the manager with `getattr`.

A defined `existing_layer_strategy()` replaces the metadata comparison: the
manager then never calls `desired_metadata()` and the hook alone picks the
strategy from the cached records.

Without the hook, desired and cached metadata are compared in their persisted
JSON form, so tuple fields and untyped dataclass metadata still match after a
round trip through `layer.json`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, TypeAlias

from .env import Env, LayerEnv

ExistingLayerStrategy: TypeAlias = Literal["keep", "update", "recreate"]
ALLOWED_STRATEGIES: tuple[str, ...] = ("keep", "update", "recreate")

LayerOutcome: TypeAlias = Literal["created", "kept", "updated", "recreated"]


@dataclass(frozen=True)
class LayerTypes:
    build: bool = False
    launch: bool = False
    cache: bool = False

    def __post_init__(self) -> None:
        for name in ("build", "launch", "cache"):
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise TypeError(
                    f"LayerTypes.{name} must be a boolean (type={type(value).__name__})"
                )

    def to_record(self) -> dict[str, bool]:
        return {"build": self.build, "launch": self.launch, "cache": self.cache}


@dataclass(frozen=True)
class LayerContext:
    """Snapshot handed to every layer operation."""

    name: str
    path: str
    env: Env
    layers_dir: str
    app_dir: str | None
    logger: logging.Logger


@dataclass(frozen=True)
class CachedLayer:
    """Records persisted by a previous build for one layer."""

    name: str
    path: str
    types: LayerTypes
    metadata: Any
    env: LayerEnv = field(default_factory=LayerEnv)


@dataclass(frozen=True)
class LayerResult:
    metadata: Any
    env: LayerEnv = field(default_factory=LayerEnv)

    def __post_init__(self) -> None:
        if not isinstance(self.env, LayerEnv):
            raise TypeError(
                f"LayerResult.env must be a LayerEnv (type={type(self.env).__name__})"
            )


@dataclass(frozen=True)
class LayerData:
    """Resolved state of a layer after the manager handled it."""

    name: str
    path: str
    types: LayerTypes
    metadata: Any
    env: LayerEnv
    outcome: LayerOutcome


class Layer(Protocol):
    def types(self) -> LayerTypes:
        ...

    def create(self, ctx: LayerContext) -> LayerResult:
        ...


class CacheableLayer(Layer, Protocol):
    def desired_metadata(self, ctx: LayerContext) -> Any:
        ...


class UpdatableLayer(Layer, Protocol):
    def update(self, ctx: LayerContext, cached: CachedLayer) -> LayerResult:
        ...


class StrategyLayer(Layer, Protocol):
    def existing_layer_strategy(
        self, ctx: LayerContext, cached: CachedLayer
    ) -> ExistingLayerStrategy:
        ...
