"""Strict configuration namespace with consumed-keys enforcement."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

_MISSING = object()


def _join_path(parent: str, key: str) -> str:
    if not parent:
        return key
    return f"{parent}.{key}"


@dataclass
class ConfigNamespace:
    """Typed reads from a config mapping; unread keys are reported as unknown."""

    data: Mapping[str, Any]
    path: str
    _consumed: set[str] = field(default_factory=set, init=False, repr=False)
    _children: dict[str, "ConfigNamespace"] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def empty(cls, *, path: str) -> "ConfigNamespace":
        return cls({}, path=path)

    def consumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._consumed))

    def unconsumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(str(k) for k in self.data.keys() if k not in self._consumed))

    def assert_consumed(self) -> None:
        unknown = list(self.unconsumed_keys())
        if unknown:
            path = self.path or "<root>"
            consumed = ", ".join(self.consumed_keys()) or "<none>"
            raise ValueError(
                f"Unknown config keys under {path}: {', '.join(unknown)} (consumed: {consumed})"
            )
        for child in self._children.values():
            child.assert_consumed()

    def _key(self, key: str) -> str:
        if not isinstance(key, str) or not key.strip():
            raise TypeError("ConfigNamespace key must be a non-empty string")
        return key.strip()

    def _get_raw(self, key: str, *, default: Any) -> Any:
        normalized = self._key(key)
        if normalized in self._children:
            raise ValueError(
                f"{_join_path(self.path, normalized)} already accessed as a nested namespace"
            )
        self._consumed.add(normalized)
        if normalized not in self.data:
            if default is _MISSING:
                raise ValueError(f"Missing required config key: {_join_path(self.path, normalized)}")
            return default
        return self.data.get(normalized)

    def has(self, key: str) -> bool:
        return self._key(key) in self.data

    def namespace(self, key: str, *, required: bool = False) -> "ConfigNamespace":
        normalized = self._key(key)
        if normalized in self._children:
            return self._children[normalized]

        self._consumed.add(normalized)
        raw = self.data.get(normalized)
        child_path = _join_path(self.path, normalized)
        if raw is None:
            if required:
                raise ValueError(f"Missing required config namespace: {child_path}")
            child = ConfigNamespace.empty(path=child_path)
        elif not isinstance(raw, Mapping):
            raise TypeError(f"{child_path} must be a mapping (type={type(raw).__name__})")
        else:
            child = ConfigNamespace(dict(raw), path=child_path)
        self._children[normalized] = child
        return child

    def get_bool(self, key: str, *, default: bool | object = _MISSING) -> bool:
        value = self._get_raw(key, default=default)
        if not isinstance(value, bool):
            raise TypeError(
                f"{_join_path(self.path, self._key(key))} must be a boolean (type={type(value).__name__})"
            )
        return value

    def get_str(
        self,
        key: str,
        *,
        default: str | None | object = _MISSING,
        allow_empty: bool = False,
        choices: tuple[str, ...] | None = None,
    ) -> str | None:
        raw = self._get_raw(key, default=default)
        if raw is None:
            return None
        label = _join_path(self.path, self._key(key))
        if not isinstance(raw, str):
            raise TypeError(f"{label} must be a string (type={type(raw).__name__})")
        value = raw.strip()
        if not value and not allow_empty:
            raise ValueError(f"{label} cannot be empty")
        if choices is not None and value not in choices:
            allowed = ", ".join(choices) or "<none>"
            raise ValueError(f"{label} must be one of: {allowed} (got {value!r})")
        return value

    def get_list_str(
        self,
        key: str,
        *,
        default: list[str] | tuple[str, ...] | object = _MISSING,
        allow_empty: bool = True,
    ) -> list[str]:
        raw = self._get_raw(key, default=default)
        label = _join_path(self.path, self._key(key))
        if not isinstance(raw, (list, tuple)):
            raise TypeError(f"{label} must be a list[str] (type={type(raw).__name__})")

        items: list[str] = []
        for idx, item in enumerate(raw):
            if not isinstance(item, str):
                raise TypeError(f"{label}[{idx}] must be a string (type={type(item).__name__})")
            items.append(item)
        if not items and not allow_empty:
            raise ValueError(f"{label} cannot be empty")
        return items

    def get_str_mapping(
        self,
        key: str,
        *,
        default: Mapping[str, str] | object = _MISSING,
    ) -> dict[str, str]:
        """Read a flat mapping of string keys to scalar values (stringified)."""

        raw = self._get_raw(key, default=default)
        label = _join_path(self.path, self._key(key))
        if not isinstance(raw, Mapping):
            raise TypeError(f"{label} must be a mapping (type={type(raw).__name__})")

        out: dict[str, str] = {}
        for k, v in raw.items():
            if not isinstance(k, str) or not k.strip():
                raise TypeError(f"{label} keys must be non-empty strings")
            if isinstance(v, (Mapping, list, tuple)) or v is None:
                raise TypeError(f"{label}.{k} must be a scalar (type={type(v).__name__})")
            if isinstance(v, bool):
                out[k.strip()] = "true" if v else "false"
            else:
                out[k.strip()] = str(v)
        return out

    def get_list_mapping(
        self,
        key: str,
        *,
        default: list[Mapping[str, Any]] | object = _MISSING,
    ) -> list[dict[str, Any]]:
        raw = self._get_raw(key, default=default)
        label = _join_path(self.path, self._key(key))
        if not isinstance(raw, (list, tuple)):
            raise TypeError(f"{label} must be a list[dict] (type={type(raw).__name__})")

        items: list[dict[str, Any]] = []
        for idx, item in enumerate(raw):
            if not isinstance(item, Mapping):
                raise TypeError(f"{label}[{idx}] must be a mapping (type={type(item).__name__})")
            items.append(dict(item))
        return items

    def get_mapping(
        self,
        key: str,
        *,
        default: Mapping[str, Any] | None | object = _MISSING,
    ) -> dict[str, Any]:
        """Read a mapping as opaque data; its keys are validated by whoever consumes it."""

        raw = self._get_raw(key, default=default)
        if raw is None:
            return {}
        label = _join_path(self.path, self._key(key))
        if not isinstance(raw, Mapping):
            raise TypeError(f"{label} must be a mapping (type={type(raw).__name__})")
        for k in raw.keys():
            if not isinstance(k, str) or not k.strip():
                raise TypeError(f"{label} keys must be non-empty strings")
        return dict(raw)
