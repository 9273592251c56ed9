from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from layerkit import Launch, Process, validate_layer_name

from buildpack.foundation.config_namespace import ConfigNamespace

LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class LayerSpec:
    """One entry of the configured layer plan."""

    name: str
    kind: str
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BuildConfig:
    app_dir: str
    layers_dir: str
    platform_dir: str | None
    inherit_process_env: bool
    prune: bool
    log_dir: str | None
    log_level: str
    layers: tuple[LayerSpec, ...]
    launch: Launch

    @staticmethod
    def from_dict(cfg: Mapping[str, Any], *, base_dir: str | None = None) -> "BuildConfig":
        """
        Parse and validate configuration.

        Relative paths resolve against `base_dir` (default: current directory).

        Raises:
            ValueError / TypeError: if keys are missing, invalid, or unknown.
        """

        if not isinstance(cfg, Mapping):
            raise ValueError("Config must be a mapping")
        root = ConfigNamespace(dict(cfg), path="")
        resolve_base = os.path.abspath(base_dir or os.getcwd())

        def resolve(path: str | None) -> str | None:
            if path is None:
                return None
            expanded = os.path.expandvars(os.path.expanduser(path))
            return os.path.normpath(os.path.join(resolve_base, expanded))

        build = root.namespace("build")
        app_dir = resolve(build.get_str("app_dir", default="."))
        layers_dir = resolve(build.get_str("layers_dir", default="layers"))
        platform_dir = resolve(build.get_str("platform_dir", default=None))
        inherit_process_env = build.get_bool("inherit_process_env", default=True)
        prune = build.get_bool("prune", default=True)

        logging_ns = root.namespace("logging")
        log_dir = resolve(logging_ns.get_str("log_dir", default=None))
        log_level = logging_ns.get_str("level", default="INFO", choices=LOG_LEVELS)

        layers = tuple(_parse_layer_specs(root.get_list_mapping("layers", default=[])))

        launch_ns = root.namespace("launch")
        processes = [
            _parse_process(raw, index=idx)
            for idx, raw in enumerate(launch_ns.get_list_mapping("processes", default=[]))
        ]

        root.assert_consumed()

        assert app_dir is not None and layers_dir is not None and log_level is not None
        return BuildConfig(
            app_dir=app_dir,
            layers_dir=layers_dir,
            platform_dir=platform_dir,
            inherit_process_env=inherit_process_env,
            prune=prune,
            log_dir=log_dir,
            log_level=log_level,
            layers=layers,
            launch=Launch.from_processes(processes),
        )


def _parse_layer_specs(raw_layers: list[dict[str, Any]]) -> list[LayerSpec]:
    specs: list[LayerSpec] = []
    seen: set[str] = set()
    for idx, raw in enumerate(raw_layers):
        ns = ConfigNamespace(raw, path=f"layers[{idx}]")
        name = validate_layer_name(ns.get_str("name") or "")
        if name in seen:
            raise ValueError(f"Duplicate layer name in config: {name}")
        seen.add(name)
        kind = ns.get_str("kind")
        options = ns.get_mapping("options", default=None)
        ns.assert_consumed()
        assert kind is not None
        specs.append(LayerSpec(name=name, kind=kind, options=options))
    return specs


def _parse_process(raw: Mapping[str, Any], *, index: int) -> Process:
    ns = ConfigNamespace(raw, path=f"launch.processes[{index}]")
    process = Process(
        type=ns.get_str("type") or "",
        command=ns.get_str("command") or "",
        args=tuple(ns.get_list_str("args", default=[])),
        default=ns.get_bool("default", default=False),
        working_directory=ns.get_str("working_directory", default=None),
    )
    ns.assert_consumed()
    return process
