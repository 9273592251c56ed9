from __future__ import annotations

import os

PLATFORM_ENV_DIRNAME = "env"


def read_platform_env(platform_dir: str | None) -> dict[str, str]:
    """Read user-provided variables from `<platform_dir>/env/<NAME>` files.

    Each regular file's name is the variable name and its content the value.
    A missing platform directory yields no variables.
    """

    if not platform_dir:
        return {}
    env_dir = os.path.join(platform_dir, PLATFORM_ENV_DIRNAME)
    if not os.path.isdir(env_dir):
        return {}

    values: dict[str, str] = {}
    for name in sorted(os.listdir(env_dir)):
        path = os.path.join(env_dir, name)
        if not os.path.isfile(path) or name.startswith("."):
            continue
        with open(path, "r", encoding="utf-8") as handle:
            values[name] = handle.read()
    return values
