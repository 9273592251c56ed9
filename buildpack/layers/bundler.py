from __future__ import annotations

import os
from dataclasses import dataclass

from layerkit import (
    CachedLayer,
    ExistingLayerStrategy,
    LayerContext,
    LayerEnv,
    LayerOperationError,
    LayerResult,
    LayerTypes,
)

from buildpack.foundation.commands import CommandError, CommandRunner

DEFAULT_BUNDLER_VERSION = "2.3.7"


@dataclass(frozen=True)
class BundlerLayerMetadata:
    version: str


class BundlerLayer:
    """Install Bundler into GEM_PATH.

    A version change uninstalls the previously installed Bundler and installs
    the requested one. The uninstall happens first, so a failed install leaves
    no Bundler behind; the invalidated layer is recreated on the next build.
    """

    metadata_type = BundlerLayerMetadata

    def __init__(self, runner: CommandRunner, version: str | None = None):
        self.runner = runner
        self.version = (version or "").strip() or DEFAULT_BUNDLER_VERSION

    def types(self) -> LayerTypes:
        return LayerTypes(build=True, launch=True, cache=True)

    def desired_metadata(self, ctx: LayerContext) -> BundlerLayerMetadata:
        return BundlerLayerMetadata(version=self.version)

    def existing_layer_strategy(
        self, ctx: LayerContext, cached: CachedLayer
    ) -> ExistingLayerStrategy:
        if cached.metadata == self.desired_metadata(ctx):
            ctx.logger.info("---> Bundler %s already installed", self.version)
            return "keep"
        return "update"

    def update(self, ctx: LayerContext, cached: CachedLayer) -> LayerResult:
        old_version = cached.metadata.version
        ctx.logger.info(
            "---> New bundler version detected %s, uninstalling the old version %s",
            self.version,
            old_version,
        )
        self._gem(
            ctx,
            "uninstall",
            "bundler",
            "--force",
            "-v",
            old_version,
            "--install-dir",
            self._gem_path(ctx),
        )
        return self.create(ctx)

    def create(self, ctx: LayerContext) -> LayerResult:
        gemfile = self._gemfile(ctx)
        ctx.logger.info("---> Installing bundler %s", self.version)
        self._gem(
            ctx,
            "install",
            "bundler",
            "--force",
            "--no-document",
            "-v",
            self.version,
            "--install-dir",
            self._gem_path(ctx),
        )

        layer_env = (
            LayerEnv()
            .insert("build", "delimiter", "BUNDLE_WITHOUT", ":")
            .insert("all", "prepend", "BUNDLE_WITHOUT", "development:test")
            .insert("build", "override", "BUNDLE_GEMFILE", gemfile)
            .insert("all", "override", "BUNDLE_CLEAN", "1")
            .insert("all", "override", "BUNDLE_DEPLOYMENT", "1")
            .insert("all", "override", "BUNDLE_GLOBAL_PATH_APPENDS_RUBY_SCOPE", "1")
            .insert("all", "override", "NOKOGIRI_USE_SYSTEM_LIBRARIES", "1")
        )
        return LayerResult(metadata=self.desired_metadata(ctx), env=layer_env)

    def _gem_path(self, ctx: LayerContext) -> str:
        gem_path = ctx.env.get("GEM_PATH")
        if not gem_path:
            raise LayerOperationError(ctx.name, "GEM_PATH must be set before installing bundler")
        return gem_path

    def _gemfile(self, ctx: LayerContext) -> str:
        if not ctx.app_dir:
            raise LayerOperationError(ctx.name, "app_dir must be set to locate the Gemfile")
        return os.path.join(ctx.app_dir, "Gemfile")

    def _gem(self, ctx: LayerContext, *args: str) -> None:
        try:
            self.runner.run(["gem", *args], env=ctx.env)
        except CommandError as exc:
            raise LayerOperationError(ctx.name, str(exc)) from exc
