from __future__ import annotations


class LayerkitError(Exception):
    """Base class for errors raised by the layer kernel."""


class InvalidLayerNameError(LayerkitError, ValueError):
    pass


class MetadataCorruptError(LayerkitError):
    """Persisted layer records exist but cannot be read back."""

    def __init__(self, layer_name: str, reason: str):
        super().__init__(f"Corrupt metadata for layer {layer_name}: {reason}")
        self.layer_name = layer_name
        self.reason = reason


class LayerOperationError(LayerkitError):
    """A layer's create/update collaborator failed.

    Concrete layers raise this (chained with ``from exc``) when a subprocess,
    download, or file operation fails. It is always fatal to the build.
    """

    def __init__(self, layer_name: str, message: str):
        super().__init__(f"Layer {layer_name} failed: {message}")
        self.layer_name = layer_name
        self.message = message
