from __future__ import annotations

from collections.abc import Iterable, Mapping

from layerkit import LayerContext, LayerEnv, LayerResult, LayerTypes


class DefaultEnvLayer:
    """Set default environment variables for build and launch.

    Values only apply where the variable is not already set, so user and
    platform variables always win. Not cached: it is cheap to recreate.
    """

    def __init__(self, values: Mapping[str, str] | Iterable[tuple[str, str]]):
        self.values: tuple[tuple[str, str], ...] = tuple(
            dict(values).items() if isinstance(values, Mapping) else tuple(values)
        )

    def types(self) -> LayerTypes:
        return LayerTypes(build=True, launch=True, cache=False)

    def create(self, ctx: LayerContext) -> LayerResult:
        layer_env = LayerEnv()
        for key, value in self.values:
            layer_env = layer_env.insert("all", "default", key, value)
        return LayerResult(metadata={}, env=layer_env)
