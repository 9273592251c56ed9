from __future__ import annotations

import difflib
import os
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from layerkit import Layer

from buildpack.foundation.commands import CommandRunner
from buildpack.foundation.config_namespace import ConfigNamespace
from buildpack.layers.bundler import BundlerLayer
from buildpack.layers.default_env import DefaultEnvLayer
from buildpack.layers.gems_path import GemsPathLayer
from buildpack.layers.in_app_dir_cache import InAppDirCacheLayer
from buildpack.layers.secret_key_base import SecretKeyBaseLayer


@dataclass(frozen=True)
class LayerFactoryContext:
    app_dir: str
    runner: CommandRunner


class LayerFactory(Protocol):
    def __call__(self, options: ConfigNamespace, deps: LayerFactoryContext) -> Layer:
        ...


@dataclass(frozen=True)
class LayerKind:
    id: str
    factory: LayerFactory
    doc: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise TypeError("LayerKind.id must be a non-empty string")
        object.__setattr__(self, "id", self.id.strip())

    def build(self, options: ConfigNamespace, deps: LayerFactoryContext) -> Layer:
        layer = self.factory(options, deps)
        options.assert_consumed()
        return layer


@dataclass(frozen=True)
class LayerRegistry:
    _by_id: dict[str, LayerKind]

    @classmethod
    def from_kinds(cls, kinds: Iterable[LayerKind]) -> "LayerRegistry":
        entries: dict[str, LayerKind] = {}
        for kind in kinds:
            if kind.id in entries:
                raise ValueError(f"Duplicate layer kind id: {kind.id}")
            entries[kind.id] = kind
        return cls(_by_id=entries)

    def available(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_id.keys()))

    def describe(self) -> tuple[dict[str, Any], ...]:
        return tuple(
            {"kind": kind.id, "doc": kind.doc}
            for kind in sorted(self._by_id.values(), key=lambda k: k.id)
        )

    def get(self, kind_id: str) -> LayerKind:
        key = (kind_id or "").strip()
        kind = self._by_id.get(key)
        if kind is None:
            available = ", ".join(self.available()) or "<none>"
            hint = ""
            suggestions = self.suggest(key)
            if suggestions:
                hint = f"; did you mean: {', '.join(suggestions)}"
            raise ValueError(f"Unknown layer kind: {kind_id} (available: {available}{hint})")
        return kind

    def suggest(self, kind_id: str, *, limit: int = 3) -> tuple[str, ...]:
        key = (kind_id or "").strip()
        if not key:
            return ()
        return tuple(difflib.get_close_matches(key, list(self.available()), n=limit))


def _default_env(options: ConfigNamespace, deps: LayerFactoryContext) -> Layer:
    return DefaultEnvLayer(options.get_str_mapping("values", default={}))


def _secret_key_base(options: ConfigNamespace, deps: LayerFactoryContext) -> Layer:
    key = options.get_str("key", default="SECRET_KEY_BASE")
    assert key is not None
    return SecretKeyBaseLayer(key=key)


def _gems_path(options: ConfigNamespace, deps: LayerFactoryContext) -> Layer:
    ruby_version = options.get_str("ruby_version")
    assert ruby_version is not None
    return GemsPathLayer(ruby_version)


def _bundler(options: ConfigNamespace, deps: LayerFactoryContext) -> Layer:
    return BundlerLayer(deps.runner, version=options.get_str("version", default=None))


def _in_app_dir_cache(options: ConfigNamespace, deps: LayerFactoryContext) -> Layer:
    path = options.get_str("path")
    assert path is not None
    return InAppDirCacheLayer(os.path.join(deps.app_dir, path))


def default_registry() -> LayerRegistry:
    return LayerRegistry.from_kinds(
        [
            LayerKind("default_env", _default_env, doc="Default environment variables (not cached)"),
            LayerKind("secret_key_base", _secret_key_base, doc="Stable generated SECRET_KEY_BASE"),
            LayerKind("gems_path", _gems_path, doc="Gem install directory keyed by Ruby version"),
            LayerKind("bundler", _bundler, doc="Bundler install with uninstall-on-upgrade"),
            LayerKind("in_app_dir_cache", _in_app_dir_cache, doc="Cache an app subdirectory"),
        ]
    )
