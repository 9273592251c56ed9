from __future__ import annotations

import os
from dataclasses import dataclass

from layerkit import LayerContext, LayerEnv, LayerResult, LayerTypes


@dataclass(frozen=True)
class GemsPathLayerMetadata:
    ruby_version: str


class GemsPathLayer:
    """Create the directory gems get installed into.

    Installed gems are only valid for the Ruby they were built against, so a
    different Ruby version discards the whole layer (there is no update).
    """

    metadata_type = GemsPathLayerMetadata

    def __init__(self, ruby_version: str):
        if not isinstance(ruby_version, str) or not ruby_version.strip():
            raise ValueError("ruby_version must be a non-empty string")
        self.ruby_version = ruby_version.strip()

    def types(self) -> LayerTypes:
        return LayerTypes(build=True, launch=True, cache=True)

    def desired_metadata(self, ctx: LayerContext) -> GemsPathLayerMetadata:
        return GemsPathLayerMetadata(ruby_version=self.ruby_version)

    def create(self, ctx: LayerContext) -> LayerResult:
        ctx.logger.info("---> Creating gems directory for Ruby %s", self.ruby_version)
        os.makedirs(os.path.join(ctx.path, "bin"), exist_ok=True)

        layer_env = (
            LayerEnv()
            .insert("all", "override", "GEM_PATH", ctx.path)
            .insert("all", "override", "BUNDLE_PATH", ctx.path)
            .insert("all", "delimiter", "PATH", ":")
            .insert("all", "prepend", "PATH", os.path.join(ctx.path, "bin"))
        )
        return LayerResult(metadata=self.desired_metadata(ctx), env=layer_env)
