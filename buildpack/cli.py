from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Sequence
from typing import Any

from layerkit import Env, LayerMetadataStore, MetadataCorruptError, compose
from layerkit.session import BUILD_RECORD_FILENAME


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="buildpack", add_help=True)
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Run the configured layer plan")
    build.add_argument("--config", default=None, help="Config file (default: discovered)")

    inspect = sub.add_parser("inspect", help="Show cached layer records as JSON")
    inspect.add_argument("layers_dir")

    env = sub.add_parser("env", help="Print the environment composed from cached layers")
    env.add_argument("layers_dir")
    env.add_argument("--scope", choices=("build", "launch"), default="launch")
    env.add_argument(
        "--inherit",
        action="store_true",
        help="Compose over the current process environment instead of an empty one",
    )

    sub.add_parser("list-layer-kinds", help="List available layer kinds")

    return parser


def _inspect(layers_dir: str) -> list[dict[str, Any]]:
    store = LayerMetadataStore(layers_dir)
    rows: list[dict[str, Any]] = []
    for name in store.names():
        try:
            cached = store.load(name)
        except MetadataCorruptError as exc:
            rows.append({"name": name, "error": exc.reason})
            continue
        if cached is None:
            continue
        rows.append(
            {
                "name": cached.name,
                "path": cached.path,
                "types": cached.types.to_record(),
                "metadata": cached.metadata,
                "env": cached.env.to_records(),
            }
        )
    return rows


def _compose_cached_env(layers_dir: str, *, scope: str, base: Env) -> Env:
    record_path = os.path.join(layers_dir, BUILD_RECORD_FILENAME)
    if not os.path.isfile(record_path):
        raise FileNotFoundError(f"No build record found: {record_path}")
    with open(record_path, "r", encoding="utf-8") as handle:
        record = json.load(handle)

    store = LayerMetadataStore(layers_dir)
    layer_envs = []
    for entry in record.get("layers") or []:
        cached = store.load(entry["name"])
        if cached is None:
            raise FileNotFoundError(f"Layer {entry['name']} listed in build record is missing")
        visible = cached.types.build if scope == "build" else cached.types.launch
        if visible:
            layer_envs.append(cached.env)
    return compose(base, layer_envs, scope=scope)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)

    if args.command == "build":
        from .app.build import main as build_main

        return build_main(args.config)

    if args.command == "inspect":
        print(json.dumps(_inspect(args.layers_dir), ensure_ascii=False, indent=2))
        return 0

    if args.command == "env":
        base = Env.from_current() if args.inherit else Env()
        env = _compose_cached_env(args.layers_dir, scope=args.scope, base=base)
        for key in sorted(env):
            print(f"{key}={env[key]}")
        return 0

    if args.command == "list-layer-kinds":
        from .layers.registry import default_registry

        for row in default_registry().describe():
            print(f"{row['kind']}\t{row['doc'] or ''}")
        return 0

    raise AssertionError(f"Unhandled command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
