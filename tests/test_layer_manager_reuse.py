import json
import logging
import os
from dataclasses import dataclass

import pytest

from layerkit import (
    CachedLayer,
    Env,
    LayerContext,
    LayerEnv,
    LayerManager,
    LayerOperationError,
    LayerResult,
    LayerTypes,
)
from layerkit.store import ENV_FILENAME, METADATA_FILENAME


@dataclass(frozen=True)
class VersionMetadata:
    version: str


def _logger() -> logging.Logger:
    logger = logging.getLogger("test.layer_manager")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


class RecordingLayer:
    """Cache-typed layer keyed by a version string; records every call."""

    metadata_type = VersionMetadata

    def __init__(self, version: str, *, cache: bool = True):
        self.version = version
        self.cache = cache
        self.calls: list[tuple] = []

    def types(self) -> LayerTypes:
        return LayerTypes(build=True, launch=True, cache=self.cache)

    def desired_metadata(self, ctx: LayerContext) -> VersionMetadata:
        return VersionMetadata(version=self.version)

    def create(self, ctx: LayerContext) -> LayerResult:
        self.calls.append(("create",))
        with open(os.path.join(ctx.path, "installed.txt"), "w", encoding="utf-8") as handle:
            handle.write(self.version)
        return LayerResult(
            metadata=VersionMetadata(version=self.version),
            env=LayerEnv().insert("all", "override", "TOOL_VERSION", self.version),
        )


class UpdatingLayer(RecordingLayer):
    def update(self, ctx: LayerContext, cached: CachedLayer) -> LayerResult:
        self.calls.append(("update", cached.metadata))
        return LayerResult(
            metadata=VersionMetadata(version=self.version),
            env=LayerEnv().insert("all", "override", "TOOL_VERSION", self.version),
        )


def _manager(tmp_path) -> LayerManager:
    return LayerManager(tmp_path / "layers", app_dir=tmp_path / "app", logger=_logger())


def test_first_build_creates_and_persists_records(tmp_path):
    manager = _manager(tmp_path)
    layer = RecordingLayer("1.0")

    data = manager.handle_layer("tool", layer, Env())

    assert data.outcome == "created"
    assert layer.calls == [("create",)]
    layer_dir = tmp_path / "layers" / "tool"
    assert (layer_dir / "installed.txt").read_text(encoding="utf-8") == "1.0"
    record = json.loads((layer_dir / METADATA_FILENAME).read_text(encoding="utf-8"))
    assert record["metadata"] == {"version": "1.0"}
    assert record["types"] == {"build": True, "launch": True, "cache": True}
    env_record = json.loads((layer_dir / ENV_FILENAME).read_text(encoding="utf-8"))
    assert env_record["modifications"] == [
        {"scope": "all", "behavior": "override", "key": "TOOL_VERSION", "value": "1.0"}
    ]


def test_matching_metadata_keeps_layer_without_calling_create_or_update(tmp_path):
    _manager(tmp_path).handle_layer("tool", UpdatingLayer("1.0"), Env())

    layer = UpdatingLayer("1.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == []
    assert data.outcome == "kept"
    assert data.metadata == VersionMetadata(version="1.0")
    assert data.env.apply("build", {})["TOOL_VERSION"] == "1.0"
    assert (tmp_path / "layers" / "tool" / "installed.txt").exists()


def test_changed_metadata_with_update_calls_update_once_with_old_metadata(tmp_path):
    _manager(tmp_path).handle_layer("tool", UpdatingLayer("1.0"), Env())

    layer = UpdatingLayer("2.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == [("update", VersionMetadata(version="1.0"))]
    assert data.outcome == "updated"
    assert (tmp_path / "layers" / "tool" / "installed.txt").read_text(encoding="utf-8") == "1.0"

    reloaded = _manager(tmp_path).store.load("tool", VersionMetadata)
    assert reloaded is not None
    assert reloaded.metadata == VersionMetadata(version="2.0")


def test_changed_metadata_without_update_deletes_and_creates_once(tmp_path):
    _manager(tmp_path).handle_layer("tool", RecordingLayer("1.0"), Env())
    stale_file = tmp_path / "layers" / "tool" / "stale.txt"
    stale_file.write_text("old", encoding="utf-8")

    layer = RecordingLayer("2.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == [("create",)]
    assert data.outcome == "recreated"
    assert not stale_file.exists()
    assert (tmp_path / "layers" / "tool" / "installed.txt").read_text(encoding="utf-8") == "2.0"


def test_non_cache_layer_is_recreated_every_build(tmp_path):
    _manager(tmp_path).handle_layer("tool", RecordingLayer("1.0", cache=False), Env())

    layer = RecordingLayer("1.0", cache=False)
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == [("create",)]
    assert data.outcome == "created"


def test_strategy_hook_overrides_metadata_equality(tmp_path):
    class ForcedRecreate(UpdatingLayer):
        def existing_layer_strategy(self, ctx, cached):
            self.calls.append(("strategy", cached.metadata))
            return "recreate"

    _manager(tmp_path).handle_layer("tool", ForcedRecreate("1.0"), Env())

    layer = ForcedRecreate("1.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == [("strategy", VersionMetadata(version="1.0")), ("create",)]
    assert data.outcome == "recreated"


def test_update_strategy_without_update_operation_degrades_to_recreate(tmp_path):
    class AlwaysUpdate(RecordingLayer):
        def existing_layer_strategy(self, ctx, cached):
            return "update"

    _manager(tmp_path).handle_layer("tool", AlwaysUpdate("1.0"), Env())

    layer = AlwaysUpdate("1.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == [("create",)]
    assert data.outcome == "recreated"


def test_invalid_strategy_value_is_rejected(tmp_path):
    class BadStrategy(RecordingLayer):
        def existing_layer_strategy(self, ctx, cached):
            return "reuse"

    _manager(tmp_path).handle_layer("tool", BadStrategy("1.0"), Env())

    with pytest.raises(ValueError, match="invalid existing layer strategy"):
        _manager(tmp_path).handle_layer("tool", BadStrategy("1.0"), Env())


def test_corrupt_metadata_is_treated_as_absent(tmp_path):
    _manager(tmp_path).handle_layer("tool", UpdatingLayer("1.0"), Env())
    (tmp_path / "layers" / "tool" / METADATA_FILENAME).write_text("{not json", encoding="utf-8")

    layer = UpdatingLayer("1.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == [("create",)]
    assert data.outcome == "created"


def test_metadata_with_unexpected_fields_is_treated_as_absent(tmp_path):
    _manager(tmp_path).handle_layer("tool", UpdatingLayer("1.0"), Env())
    metadata_path = tmp_path / "layers" / "tool" / METADATA_FILENAME
    record = json.loads(metadata_path.read_text(encoding="utf-8"))
    record["metadata"]["legacy"] = True
    metadata_path.write_text(json.dumps(record), encoding="utf-8")

    layer = UpdatingLayer("1.0")
    _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == [("create",)]


def test_create_failure_propagates_and_leaves_no_record(tmp_path):
    class Failing(RecordingLayer):
        def create(self, ctx):
            raise LayerOperationError(ctx.name, "download failed")

    with pytest.raises(LayerOperationError, match="download failed") as excinfo:
        _manager(tmp_path).handle_layer("tool", Failing("1.0"), Env())

    assert excinfo.value.layer_name == "tool"
    assert getattr(excinfo.value, "layer_operation") == "create"
    assert not (tmp_path / "layers" / "tool" / METADATA_FILENAME).exists()

    layer = RecordingLayer("1.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())
    assert layer.calls == [("create",)]
    assert data.outcome == "created"


def test_update_failure_invalidates_layer_so_next_build_recreates(tmp_path):
    class FailingUpdate(UpdatingLayer):
        def update(self, ctx, cached):
            raise RuntimeError("gem uninstall exited 1")

    _manager(tmp_path).handle_layer("tool", UpdatingLayer("1.0"), Env())

    with pytest.raises(RuntimeError, match="gem uninstall exited 1") as excinfo:
        _manager(tmp_path).handle_layer("tool", FailingUpdate("2.0"), Env())
    assert getattr(excinfo.value, "layer_name") == "tool"
    assert getattr(excinfo.value, "layer_operation") == "update"

    layer = UpdatingLayer("2.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())
    assert layer.calls == [("create",)]
    assert data.outcome == "created"


def test_layer_receives_environment_snapshot(tmp_path):
    seen: list[Env] = []

    class EnvReader(RecordingLayer):
        def create(self, ctx):
            seen.append(ctx.env)
            return super().create(ctx)

    env = {"GEM_PATH": "/gems"}
    _manager(tmp_path).handle_layer("tool", EnvReader("1.0"), env)
    env["GEM_PATH"] = "/changed"

    assert seen[0]["GEM_PATH"] == "/gems"
    assert isinstance(seen[0], Env)


def test_cache_layer_without_desired_metadata_or_strategy_is_rejected(tmp_path):
    class NoFingerprint:
        def types(self):
            return LayerTypes(cache=True)

        def create(self, ctx):
            return LayerResult(metadata={})

    _manager(tmp_path).handle_layer("plain", NoFingerprint(), Env())

    with pytest.raises(TypeError, match="desired_metadata"):
        _manager(tmp_path).handle_layer("plain", NoFingerprint(), Env())


def test_create_must_return_layer_result(tmp_path):
    class WrongReturn(RecordingLayer):
        def create(self, ctx):
            return {"version": self.version}

    with pytest.raises(TypeError, match="must return LayerResult"):
        _manager(tmp_path).handle_layer("tool", WrongReturn("1.0"), Env())


def test_prune_removes_only_undeclared_managed_layers(tmp_path):
    manager = _manager(tmp_path)
    manager.handle_layer("keep_me", RecordingLayer("1.0"), Env())
    manager.handle_layer("drop_me", RecordingLayer("1.0"), Env())
    unmanaged = tmp_path / "layers" / "unmanaged"
    unmanaged.mkdir()

    removed = manager.prune(["keep_me"])

    assert removed == ["drop_me"]
    assert (tmp_path / "layers" / "keep_me").exists()
    assert not (tmp_path / "layers" / "drop_me").exists()
    assert unmanaged.exists()


def test_untyped_dataclass_metadata_is_kept_on_unchanged_rebuild(tmp_path):
    class Untyped(RecordingLayer):
        metadata_type = None

    _manager(tmp_path).handle_layer("tool", Untyped("1.0"), Env())

    layer = Untyped("1.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == []
    assert data.outcome == "kept"
    assert data.metadata == {"version": "1.0"}


@dataclass(frozen=True)
class PlatformsMetadata:
    platforms: tuple[str, ...]


class PlatformsLayer:
    metadata_type = PlatformsMetadata

    def __init__(self, *platforms: str):
        self.platforms = platforms
        self.calls: list[str] = []

    def types(self) -> LayerTypes:
        return LayerTypes(build=True, cache=True)

    def desired_metadata(self, ctx: LayerContext) -> PlatformsMetadata:
        return PlatformsMetadata(platforms=self.platforms)

    def create(self, ctx: LayerContext) -> LayerResult:
        self.calls.append("create")
        return LayerResult(metadata=self.desired_metadata(ctx))


def test_tuple_metadata_fields_compare_equal_after_persisting(tmp_path):
    _manager(tmp_path).handle_layer("gems", PlatformsLayer("ruby", "x86_64-linux"), Env())

    unchanged = PlatformsLayer("ruby", "x86_64-linux")
    kept = _manager(tmp_path).handle_layer("gems", unchanged, Env())
    changed = PlatformsLayer("ruby")
    recreated = _manager(tmp_path).handle_layer("gems", changed, Env())

    assert unchanged.calls == []
    assert kept.outcome == "kept"
    assert changed.calls == ["create"]
    assert recreated.outcome == "recreated"


def test_strategy_hook_replaces_desired_metadata_comparison(tmp_path):
    class HookOnly(RecordingLayer):
        def desired_metadata(self, ctx):
            raise AssertionError("desired_metadata must not be consulted")

        def existing_layer_strategy(self, ctx, cached):
            return "keep"

    _manager(tmp_path).handle_layer("tool", HookOnly("1.0"), Env())

    layer = HookOnly("2.0")
    data = _manager(tmp_path).handle_layer("tool", layer, Env())

    assert layer.calls == []
    assert data.outcome == "kept"
    assert data.metadata == VersionMetadata(version="1.0")
