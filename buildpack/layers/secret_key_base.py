from __future__ import annotations

import secrets
from dataclasses import dataclass

from layerkit import (
    CachedLayer,
    ExistingLayerStrategy,
    LayerContext,
    LayerEnv,
    LayerResult,
    LayerTypes,
)


@dataclass(frozen=True)
class SecretKeyBaseLayerMetadata:
    secret: str


class SecretKeyBaseLayer:
    """Generate SECRET_KEY_BASE once and keep it stable across builds."""

    metadata_type = SecretKeyBaseLayerMetadata

    def __init__(self, *, key: str = "SECRET_KEY_BASE", nbytes: int = 64):
        self.key = key
        self.nbytes = nbytes

    def types(self) -> LayerTypes:
        return LayerTypes(build=True, launch=True, cache=True)

    def create(self, ctx: LayerContext) -> LayerResult:
        ctx.logger.info("---> Generating %s", self.key)
        metadata = SecretKeyBaseLayerMetadata(secret=secrets.token_hex(self.nbytes))
        return LayerResult(metadata=metadata, env=self._env(metadata))

    def existing_layer_strategy(
        self, ctx: LayerContext, cached: CachedLayer
    ) -> ExistingLayerStrategy:
        if cached.env != self._env(cached.metadata):
            return "recreate"
        return "keep"

    def _env(self, metadata: SecretKeyBaseLayerMetadata) -> LayerEnv:
        return LayerEnv().insert("all", "default", self.key, metadata.secret)
