"""On-disk arena of layer records.

Each layer owns one directory under the layers directory. Next to the files the
layer produces, the store keeps two JSON records:

- ``layer.json``: schema version, name, types and metadata
- ``env.json``: the ordered environment modifications the layer emitted

A layer directory without ``layer.json`` is untrusted and treated as absent.
"""

from __future__ import annotations

import dataclasses
import json
import os
import shutil
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from .env import LayerEnv
from .errors import MetadataCorruptError
from .layer import CachedLayer, LayerTypes
from .names import validate_layer_name

SCHEMA_VERSION = 1
METADATA_FILENAME = "layer.json"
ENV_FILENAME = "env.json"


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def metadata_to_payload(metadata: Any) -> dict[str, Any]:
    if metadata is None:
        return {}
    if dataclasses.is_dataclass(metadata) and not isinstance(metadata, type):
        return dataclasses.asdict(metadata)
    if isinstance(metadata, Mapping):
        return {str(k): v for k, v in metadata.items()}
    raise TypeError(
        f"Layer metadata must be a dataclass instance or a mapping (type={type(metadata).__name__})"
    )


def metadata_from_payload(payload: Any, metadata_type: type | None, *, layer_name: str) -> Any:
    if not isinstance(payload, Mapping):
        raise MetadataCorruptError(
            layer_name, f"metadata must be a mapping (type={type(payload).__name__})"
        )
    if metadata_type is None:
        return dict(payload)
    if not dataclasses.is_dataclass(metadata_type):
        raise TypeError(f"metadata_type must be a dataclass type (got {metadata_type!r})")

    known = {f.name for f in dataclasses.fields(metadata_type) if f.init}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise MetadataCorruptError(layer_name, f"unexpected metadata field(s): {', '.join(unknown)}")
    try:
        return metadata_type(**payload)
    except (TypeError, ValueError) as exc:
        raise MetadataCorruptError(layer_name, f"cannot build {metadata_type.__name__}: {exc}") from exc


def persisted_form(metadata: Any) -> Any:
    """Metadata as it reads back from `layer.json` without a `metadata_type`.

    Tuples become lists and dataclasses become mappings, so comparing two
    persisted forms is independent of how the metadata was typed in memory.
    """

    return json.loads(json.dumps(metadata_to_payload(metadata)))


def _write_json(path: str, payload: Mapping[str, Any]) -> None:
    tmp_path = f"{path}.tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
            handle.write("\n")
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def _read_json(path: str, *, layer_name: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise MetadataCorruptError(
            layer_name, f"invalid JSON in {os.path.basename(path)}: {exc}"
        ) from exc
    except UnicodeDecodeError as exc:
        raise MetadataCorruptError(
            layer_name, f"undecodable {os.path.basename(path)}: {exc}"
        ) from exc


class LayerMetadataStore:
    def __init__(self, layers_dir: str | os.PathLike[str]):
        self.layers_dir = os.path.abspath(os.fspath(layers_dir))

    def layer_path(self, name: str) -> str:
        return os.path.join(self.layers_dir, validate_layer_name(name))

    def has_directory(self, name: str) -> bool:
        return os.path.isdir(self.layer_path(name))

    def ensure_directory(self, name: str) -> str:
        path = self.layer_path(name)
        os.makedirs(path, exist_ok=True)
        return path

    def names(self) -> list[str]:
        """Names of layer directories holding a metadata record."""

        if not os.path.isdir(self.layers_dir):
            return []
        found: list[str] = []
        for entry in sorted(os.listdir(self.layers_dir)):
            if os.path.isfile(os.path.join(self.layers_dir, entry, METADATA_FILENAME)):
                found.append(entry)
        return found

    def load(self, name: str, metadata_type: type | None = None) -> CachedLayer | None:
        """Load a layer's records.

        Returns None when no record exists. Raises `MetadataCorruptError`
        when a record exists but cannot be deserialized.
        """

        layer_name = validate_layer_name(name)
        path = self.layer_path(layer_name)
        metadata_path = os.path.join(path, METADATA_FILENAME)
        if not os.path.isfile(metadata_path):
            return None

        record = _read_json(metadata_path, layer_name=layer_name)
        if not isinstance(record, Mapping):
            raise MetadataCorruptError(layer_name, "layer.json must contain a JSON object")
        if record.get("schema_version") != SCHEMA_VERSION:
            raise MetadataCorruptError(
                layer_name, f"unsupported schema_version {record.get('schema_version')!r}"
            )

        raw_types = record.get("types")
        if not isinstance(raw_types, Mapping):
            raise MetadataCorruptError(layer_name, "layer.json is missing 'types'")
        try:
            types = LayerTypes(
                build=raw_types.get("build", False),
                launch=raw_types.get("launch", False),
                cache=raw_types.get("cache", False),
            )
        except TypeError as exc:
            raise MetadataCorruptError(layer_name, str(exc)) from exc

        metadata = metadata_from_payload(
            record.get("metadata", {}), metadata_type, layer_name=layer_name
        )

        env_path = os.path.join(path, ENV_FILENAME)
        if not os.path.isfile(env_path):
            raise MetadataCorruptError(layer_name, f"missing {ENV_FILENAME}")
        env_record = _read_json(env_path, layer_name=layer_name)
        if not isinstance(env_record, Mapping) or not isinstance(
            env_record.get("modifications"), list
        ):
            raise MetadataCorruptError(layer_name, f"{ENV_FILENAME} is missing 'modifications'")
        try:
            env = LayerEnv.from_records(env_record["modifications"])
        except (TypeError, ValueError) as exc:
            raise MetadataCorruptError(layer_name, f"invalid {ENV_FILENAME}: {exc}") from exc

        return CachedLayer(name=layer_name, path=path, types=types, metadata=metadata, env=env)

    def save(self, name: str, *, types: LayerTypes, metadata: Any, env: LayerEnv) -> CachedLayer:
        layer_name = validate_layer_name(name)
        path = self.ensure_directory(layer_name)

        # env.json first; layer.json marks the layer as trusted.
        _write_json(
            os.path.join(path, ENV_FILENAME),
            {"schema_version": SCHEMA_VERSION, "modifications": env.to_records()},
        )
        _write_json(
            os.path.join(path, METADATA_FILENAME),
            {
                "schema_version": SCHEMA_VERSION,
                "name": layer_name,
                "types": types.to_record(),
                "metadata": metadata_to_payload(metadata),
                "updated_at": utc_now_iso8601(),
            },
        )
        return CachedLayer(name=layer_name, path=path, types=types, metadata=metadata, env=env)

    def invalidate(self, name: str) -> None:
        """Drop a layer's records but keep its files."""

        path = self.layer_path(name)
        for filename in (METADATA_FILENAME, ENV_FILENAME):
            target = os.path.join(path, filename)
            if os.path.exists(target):
                os.remove(target)

    def delete(self, name: str) -> bool:
        path = self.layer_path(name)
        if not os.path.lexists(path):
            return False
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
        return True
