from __future__ import annotations

import re

from .errors import InvalidLayerNameError

RESERVED_LAYER_NAMES: frozenset[str] = frozenset({"build", "launch", "store"})

_LAYER_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_layer_name(name: str) -> str:
    """Return the normalized layer name or raise `InvalidLayerNameError`.

    Layer names double as directory names under the layers directory, so they
    are restricted to a filesystem-safe character set.
    """

    if not isinstance(name, str):
        raise InvalidLayerNameError(
            f"Layer name must be a string (type={type(name).__name__})"
        )
    normalized = name.strip()
    if not normalized:
        raise InvalidLayerNameError("Layer name cannot be empty")
    if normalized in (".", ".."):
        raise InvalidLayerNameError(f"Invalid layer name: {name!r}")
    if not _LAYER_NAME_RE.match(normalized):
        raise InvalidLayerNameError(
            f"Invalid layer name: {name!r} (allowed characters: A-Z a-z 0-9 _ . -)"
        )
    if normalized in RESERVED_LAYER_NAMES:
        reserved = ", ".join(sorted(RESERVED_LAYER_NAMES))
        raise InvalidLayerNameError(f"Layer name {normalized!r} is reserved ({reserved})")
    return normalized
