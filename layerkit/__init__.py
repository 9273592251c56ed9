"""Reusable layer kernel (reuse decisions + scoped environment composition).

This package is intentionally independent of `buildpack.*`. Concrete layers,
configuration and command-line entry points live in the consuming application.
"""

from layerkit.env import (
    ALLOWED_BEHAVIORS,
    ALLOWED_SCOPES,
    Env,
    EnvModification,
    LayerEnv,
    ModificationBehavior,
    Scope,
    compose,
)
from layerkit.errors import (
    InvalidLayerNameError,
    LayerkitError,
    LayerOperationError,
    MetadataCorruptError,
)
from layerkit.launch import Launch, Process
from layerkit.layer import (
    ALLOWED_STRATEGIES,
    CachedLayer,
    ExistingLayerStrategy,
    Layer,
    LayerContext,
    LayerData,
    LayerResult,
    LayerTypes,
)
from layerkit.manager import LayerManager
from layerkit.names import validate_layer_name
from layerkit.session import BuildResult, BuildSession
from layerkit.store import LayerMetadataStore

__all__ = [
    "ALLOWED_BEHAVIORS",
    "ALLOWED_SCOPES",
    "ALLOWED_STRATEGIES",
    "BuildResult",
    "BuildSession",
    "CachedLayer",
    "Env",
    "EnvModification",
    "ExistingLayerStrategy",
    "InvalidLayerNameError",
    "Launch",
    "Layer",
    "LayerContext",
    "LayerData",
    "LayerEnv",
    "LayerManager",
    "LayerMetadataStore",
    "LayerOperationError",
    "LayerResult",
    "LayerTypes",
    "LayerkitError",
    "MetadataCorruptError",
    "ModificationBehavior",
    "Process",
    "Scope",
    "compose",
    "validate_layer_name",
]
