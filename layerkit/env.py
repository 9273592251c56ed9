"""Scoped environment composition.

A `LayerEnv` is an ordered, immutable list of environment modifications. It is
applied to an `Env` for one scope at a time and always produces a new `Env`;
nothing here reads or writes the process environment except the explicit
`Env.from_current()` snapshot.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

logger = logging.getLogger(__name__)

Scope: TypeAlias = Literal["build", "launch", "all"]
ModificationBehavior: TypeAlias = Literal["override", "default", "prepend", "append", "delimiter"]

ALLOWED_SCOPES: tuple[str, ...] = ("build", "launch", "all")
APPLY_SCOPES: tuple[str, ...] = ("build", "launch")
ALLOWED_BEHAVIORS: tuple[str, ...] = ("override", "default", "prepend", "append", "delimiter")

FALLBACK_DELIMITER = " "


class Env(Mapping[str, str]):
    """Immutable environment mapping. Mutators return a new `Env`."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, str] | Iterable[tuple[str, str]] | None = None):
        items = dict(data or {})
        for key, value in items.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError(
                    "Env keys and values must be strings "
                    f"(key type={type(key).__name__}, value type={type(value).__name__})"
                )
        self._data: dict[str, str] = items

    @classmethod
    def from_current(cls) -> "Env":
        return cls(dict(os.environ))

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Env):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._data.items()))

    def __repr__(self) -> str:
        return f"Env({self._data!r})"

    def insert(self, key: str, value: str) -> "Env":
        data = dict(self._data)
        data[key] = value
        return Env(data)

    def remove(self, key: str) -> "Env":
        if key not in self._data:
            return self
        data = dict(self._data)
        del data[key]
        return Env(data)

    def merged(self, other: Mapping[str, str]) -> "Env":
        data = dict(self._data)
        data.update(other)
        return Env(data)

    def as_dict(self) -> dict[str, str]:
        return dict(self._data)


@dataclass(frozen=True)
class EnvModification:
    scope: Scope
    behavior: ModificationBehavior
    key: str
    value: str

    def __post_init__(self) -> None:
        if self.scope not in ALLOWED_SCOPES:
            raise ValueError(f"Invalid modification scope: {self.scope!r}")
        if self.behavior not in ALLOWED_BEHAVIORS:
            raise ValueError(f"Invalid modification behavior: {self.behavior!r}")
        if not isinstance(self.key, str):
            raise TypeError(
                f"Modification key must be a string (type={type(self.key).__name__})"
            )
        key = self.key.strip()
        if not key:
            raise ValueError("Modification key cannot be empty")
        if "=" in key:
            raise ValueError(f"Modification key cannot contain '=': {key!r}")
        object.__setattr__(self, "key", key)

        value = self.value
        if isinstance(value, os.PathLike):
            value = os.fspath(value)
        if not isinstance(value, str):
            raise TypeError(
                f"Modification value for {key} must be a string or path (type={type(value).__name__})"
            )
        object.__setattr__(self, "value", value)

    def visible_in(self, scope: str) -> bool:
        return self.scope == "all" or self.scope == scope

    def to_record(self) -> dict[str, str]:
        return {
            "scope": self.scope,
            "behavior": self.behavior,
            "key": self.key,
            "value": self.value,
        }


@dataclass(frozen=True)
class LayerEnv:
    """Ordered environment modifications produced by one layer.

    Order is significant and preserved; `insert` and `concat` return new
    values so a `LayerEnv` handed to another stage can never change under it.
    """

    modifications: tuple[EnvModification, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        mods = tuple(self.modifications)
        for idx, mod in enumerate(mods):
            if not isinstance(mod, EnvModification):
                raise TypeError(
                    f"LayerEnv.modifications[{idx}] must be an EnvModification "
                    f"(type={type(mod).__name__})"
                )
        object.__setattr__(self, "modifications", mods)

    @classmethod
    def from_modifications(cls, modifications: Iterable[EnvModification]) -> "LayerEnv":
        return cls(tuple(modifications))

    def __len__(self) -> int:
        return len(self.modifications)

    def __iter__(self) -> Iterator[EnvModification]:
        return iter(self.modifications)

    def insert(
        self,
        scope: Scope,
        behavior: ModificationBehavior,
        key: str,
        value: str | os.PathLike[str],
    ) -> "LayerEnv":
        mod = EnvModification(scope=scope, behavior=behavior, key=key, value=value)  # type: ignore[arg-type]
        return LayerEnv((*self.modifications, mod))

    def concat(self, other: "LayerEnv") -> "LayerEnv":
        if not isinstance(other, LayerEnv):
            raise TypeError(f"Cannot concat LayerEnv with {type(other).__name__}")
        return LayerEnv((*self.modifications, *other.modifications))

    def for_scope(self, scope: str) -> tuple[EnvModification, ...]:
        _require_apply_scope(scope)
        return tuple(mod for mod in self.modifications if mod.visible_in(scope))

    def apply(self, scope: str, env: Mapping[str, str]) -> Env:
        """Compose `env` with the modifications visible in `scope`.

        Processing is left to right. `delimiter` entries only affect later
        `prepend`/`append` entries for the same key within this call.
        """

        result: dict[str, str] = dict(env)
        delimiters: dict[str, str] = {}
        warned: set[str] = set()

        for mod in self.for_scope(scope):
            key = mod.key
            if mod.behavior == "override":
                result[key] = mod.value
            elif mod.behavior == "default":
                if key not in result:
                    result[key] = mod.value
            elif mod.behavior == "delimiter":
                delimiters[key] = mod.value
            elif key not in result:
                result[key] = mod.value
            else:
                delimiter = delimiters.get(key)
                if delimiter is None:
                    delimiter = FALLBACK_DELIMITER
                    if key not in warned:
                        warned.add(key)
                        logger.debug(
                            "No delimiter declared for %s before %s; using %r",
                            key,
                            mod.behavior,
                            FALLBACK_DELIMITER,
                        )
                if mod.behavior == "prepend":
                    result[key] = f"{mod.value}{delimiter}{result[key]}"
                else:
                    result[key] = f"{result[key]}{delimiter}{mod.value}"

        return Env(result)

    def to_records(self) -> list[dict[str, str]]:
        return [mod.to_record() for mod in self.modifications]

    @classmethod
    def from_records(cls, records: Iterable[Any]) -> "LayerEnv":
        mods: list[EnvModification] = []
        for idx, record in enumerate(records):
            if not isinstance(record, Mapping):
                raise TypeError(
                    f"Environment record {idx} must be a mapping (type={type(record).__name__})"
                )
            missing = [k for k in ("scope", "behavior", "key", "value") if k not in record]
            if missing:
                raise ValueError(
                    f"Environment record {idx} missing field(s): {', '.join(missing)}"
                )
            mods.append(
                EnvModification(
                    scope=record["scope"],
                    behavior=record["behavior"],
                    key=record["key"],
                    value=record["value"],
                )
            )
        return cls(tuple(mods))


def compose(env: Mapping[str, str], layer_envs: Iterable[LayerEnv], *, scope: str) -> Env:
    """Apply several layer environments in order for one scope."""

    result = env if isinstance(env, Env) else Env(env)
    for layer_env in layer_envs:
        result = layer_env.apply(scope, result)
    return result


def _require_apply_scope(scope: str) -> None:
    if scope not in APPLY_SCOPES:
        raise ValueError(
            f"Environment can only be composed for scope build or launch (got {scope!r})"
        )
