"""Cache a directory that lives inside the application directory.

Layers cannot live inside the app directory, so this layer holds a copy of an
app subdirectory (e.g. precompiled assets) between builds. `load_into_app`
restores the cached copy before the work that regenerates it; `save_from_app`
stores the result afterwards.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass

from layerkit import CachedLayer, ExistingLayerStrategy, LayerContext, LayerResult, LayerTypes

CONTENTS_DIRNAME = "contents"


@dataclass(frozen=True)
class InAppDirCacheLayerMetadata:
    app_dir_path: str


class InAppDirCacheLayer:
    metadata_type = InAppDirCacheLayerMetadata

    def __init__(self, app_dir_path: str | os.PathLike[str]):
        self.app_dir_path = os.path.abspath(os.fspath(app_dir_path))

    def types(self) -> LayerTypes:
        return LayerTypes(build=True, launch=True, cache=True)

    def desired_metadata(self, ctx: LayerContext) -> InAppDirCacheLayerMetadata:
        return InAppDirCacheLayerMetadata(app_dir_path=self.app_dir_path)

    def create(self, ctx: LayerContext) -> LayerResult:
        ctx.logger.info("---> Creating cache for %s", self.app_dir_path)
        os.makedirs(os.path.join(ctx.path, CONTENTS_DIRNAME), exist_ok=True)
        return LayerResult(metadata=self.desired_metadata(ctx))

    def existing_layer_strategy(
        self, ctx: LayerContext, cached: CachedLayer
    ) -> ExistingLayerStrategy:
        if cached.metadata == self.desired_metadata(ctx):
            ctx.logger.info("---> Loading cache for %s", self.app_dir_path)
            return "keep"
        return "recreate"


def load_into_app(layer_path: str, app_dir_path: str) -> int:
    """Copy cached files into the app directory without overwriting newer app files.

    Returns the number of files copied.
    """

    source = os.path.join(layer_path, CONTENTS_DIRNAME)
    if not os.path.isdir(source):
        return 0
    copied = 0
    for root, _dirs, files in os.walk(source):
        rel = os.path.relpath(root, source)
        target_root = os.path.normpath(os.path.join(app_dir_path, rel))
        os.makedirs(target_root, exist_ok=True)
        for filename in files:
            target = os.path.join(target_root, filename)
            if os.path.exists(target):
                continue
            shutil.copy2(os.path.join(root, filename), target)
            copied += 1
    return copied


def save_from_app(layer_path: str, app_dir_path: str) -> int:
    """Replace the cached copy with the current app directory contents.

    Returns the number of files stored.
    """

    target = os.path.join(layer_path, CONTENTS_DIRNAME)
    if os.path.isdir(target):
        shutil.rmtree(target)
    if not os.path.isdir(app_dir_path):
        os.makedirs(target, exist_ok=True)
        return 0
    shutil.copytree(app_dir_path, target, symlinks=True)
    return sum(len(files) for _root, _dirs, files in os.walk(target))
