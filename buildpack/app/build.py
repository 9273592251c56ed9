from __future__ import annotations

import os
import uuid
from datetime import datetime
from typing import Any, Mapping

from layerkit import BuildResult, BuildSession, Env, LayerManager

from buildpack.foundation.commands import CommandRunner, SubprocessCommandRunner
from buildpack.foundation.config_io import load_config
from buildpack.foundation.config_namespace import ConfigNamespace
from buildpack.foundation.logging_utils import configure_stdio_utf8, setup_build_logger
from buildpack.framework.config import BuildConfig
from buildpack.framework.platform import read_platform_env
from buildpack.layers.in_app_dir_cache import InAppDirCacheLayer, load_into_app, save_from_app
from buildpack.layers.registry import LayerFactoryContext, LayerRegistry, default_registry


def generate_build_id() -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}"


def base_environment(cfg: BuildConfig) -> Env:
    """Process env snapshot (when inherited) with platform variables on top."""

    env = Env.from_current() if cfg.inherit_process_env else Env()
    return env.merged(read_platform_env(cfg.platform_dir))


def run_build(
    cfg_dict: Mapping[str, Any],
    *,
    build_id: str | None = None,
    config_meta: Mapping[str, Any] | None = None,
    runner: CommandRunner | None = None,
    registry: LayerRegistry | None = None,
) -> BuildResult:
    base_dir = (config_meta or {}).get("base_dir")
    cfg = BuildConfig.from_dict(cfg_dict, base_dir=base_dir)

    build_id = build_id or generate_build_id()
    logger, _log_file = setup_build_logger(cfg.log_dir, build_id, level=cfg.log_level)

    if config_meta:
        paths = config_meta.get("paths") or []
        if paths:
            logger.info("Loaded config (%s) from %s", config_meta.get("mode"), ", ".join(paths))
    logger.info("Build %s started (app_dir=%s layers_dir=%s)", build_id, cfg.app_dir, cfg.layers_dir)

    registry = registry or default_registry()
    deps = LayerFactoryContext(
        app_dir=cfg.app_dir,
        runner=runner or SubprocessCommandRunner(logger),
    )
    layers = []
    for spec in cfg.layers:
        options = ConfigNamespace(dict(spec.options), path=f"layers.{spec.name}.options")
        layers.append((spec.name, registry.get(spec.kind).build(options, deps)))

    manager = LayerManager(cfg.layers_dir, app_dir=cfg.app_dir, logger=logger)
    session = BuildSession(manager, base_environment(cfg))

    app_dir_caches: list[tuple[str, InAppDirCacheLayer]] = []
    try:
        for name, layer in layers:
            data = session.handle_layer(name, layer)
            if isinstance(layer, InAppDirCacheLayer):
                restored = load_into_app(data.path, layer.app_dir_path)
                logger.info("Restored %d cached file(s) into %s", restored, layer.app_dir_path)
                app_dir_caches.append((data.path, layer))

        for layer_path, layer in app_dir_caches:
            stored = save_from_app(layer_path, layer.app_dir_path)
            logger.info("Stored %d file(s) from %s", stored, layer.app_dir_path)

        if cfg.prune:
            session.prune_undeclared()

        result = session.finish(cfg.launch)
        record_path = result.write(cfg.layers_dir)
    except Exception:
        logger.exception("Build %s failed", build_id)
        raise

    logger.info(
        "Build %s finished: %s",
        build_id,
        ", ".join(f"{data.name}={data.outcome}" for data in result.layers) or "<no layers>",
    )
    logger.debug("Build record: %s", record_path)
    return result


def main(config_path: str | None = None) -> int:
    configure_stdio_utf8()
    cfg_dict, cfg_meta = load_config(config_path=config_path)
    run_build(cfg_dict, config_meta=cfg_meta)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
