"""Sequential build session.

Threads an explicit build environment through layers in the order they are
handled. Each layer sees the build-scope result of every earlier build-typed
layer, never the reverse.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .env import Env, compose
from .launch import Launch
from .layer import Layer, LayerData
from .manager import LayerManager
from .names import validate_layer_name
from .store import SCHEMA_VERSION, utc_now_iso8601

BUILD_RECORD_FILENAME = "build.json"


@dataclass(frozen=True)
class BuildResult:
    build_env: Env
    launch_env: Env
    layers: tuple[LayerData, ...]
    launch: Launch = field(default_factory=Launch)

    def layer(self, name: str) -> LayerData:
        for data in self.layers:
            if data.name == name:
                return data
        raise KeyError(f"No layer named {name} in build result")

    def to_record(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "created_at": utc_now_iso8601(),
            "layers": [
                {"name": data.name, "types": data.types.to_record(), "outcome": data.outcome}
                for data in self.layers
            ],
            "processes": self.launch.to_records(),
        }

    def write(self, layers_dir: str | os.PathLike[str]) -> str:
        output_dir = os.path.abspath(os.fspath(layers_dir))
        os.makedirs(output_dir, exist_ok=True)
        output_path = os.path.join(output_dir, BUILD_RECORD_FILENAME)
        with open(output_path, "w", encoding="utf-8") as handle:
            json.dump(self.to_record(), handle, ensure_ascii=False, indent=2)
            handle.write("\n")
        return output_path


class BuildSession:
    def __init__(self, manager: LayerManager, base_env: Mapping[str, str]):
        self.manager = manager
        self.base_env = base_env if isinstance(base_env, Env) else Env(base_env)
        self._env = self.base_env
        self._layers: list[LayerData] = []

    @property
    def env(self) -> Env:
        return self._env

    @property
    def handled(self) -> tuple[str, ...]:
        return tuple(data.name for data in self._layers)

    @property
    def layers(self) -> tuple[LayerData, ...]:
        return tuple(self._layers)

    def handle_layer(self, name: str, layer: Layer) -> LayerData:
        layer_name = validate_layer_name(name)
        if layer_name in self.handled:
            raise ValueError(f"Layer {layer_name} was already handled in this build")

        data = self.manager.handle_layer(layer_name, layer, self._env)
        self._layers.append(data)
        if data.types.build:
            self._env = data.env.apply("build", self._env)
        return data

    def launch_env(self) -> Env:
        return compose(
            self.base_env,
            (data.env for data in self._layers if data.types.launch),
            scope="launch",
        )

    def prune_undeclared(self) -> list[str]:
        return self.manager.prune(self.handled)

    def finish(self, launch: Launch | None = None) -> BuildResult:
        return BuildResult(
            build_env=self._env,
            launch_env=self.launch_env(),
            layers=tuple(self._layers),
            launch=launch or Launch(),
        )
