"""Project-specific framework utilities.

This package holds the structural glue between configuration and the layer
kernel: the parsed build config and platform environment loading.

For reusable, project-agnostic layer primitives, use `layerkit`.
"""
