from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

_PROCESS_TYPE_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class Process:
    type: str
    command: str
    args: tuple[str, ...] = ()
    default: bool = False
    working_directory: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not _PROCESS_TYPE_RE.match(self.type.strip()):
            raise ValueError(f"Invalid process type: {self.type!r}")
        object.__setattr__(self, "type", self.type.strip())

        if not isinstance(self.command, str) or not self.command.strip():
            raise ValueError(f"Process {self.type} command must be a non-empty string")

        if isinstance(self.args, str):
            raise TypeError(f"Process {self.type} args must be a sequence of strings, not a string")
        args = tuple(self.args)
        for idx, arg in enumerate(args):
            if not isinstance(arg, str):
                raise TypeError(
                    f"Process {self.type} args[{idx}] must be a string (type={type(arg).__name__})"
                )
        object.__setattr__(self, "args", args)

        if not isinstance(self.default, bool):
            raise TypeError(f"Process {self.type} default must be a boolean")

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "type": self.type,
            "command": self.command,
            "args": list(self.args),
            "default": self.default,
        }
        if self.working_directory is not None:
            record["working_directory"] = self.working_directory
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Process":
        return cls(
            type=record["type"],
            command=record["command"],
            args=tuple(record.get("args") or ()),
            default=bool(record.get("default", False)),
            working_directory=record.get("working_directory"),
        )


@dataclass(frozen=True)
class Launch:
    """Ordered launch processes declared by a build."""

    processes: tuple[Process, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        processes = tuple(self.processes)
        seen: set[str] = set()
        duplicates: set[str] = set()
        defaults: list[str] = []
        for process in processes:
            if not isinstance(process, Process):
                raise TypeError(
                    f"Launch.processes must contain Process values (type={type(process).__name__})"
                )
            if process.type in seen:
                duplicates.add(process.type)
            seen.add(process.type)
            if process.default:
                defaults.append(process.type)
        if duplicates:
            raise ValueError(f"Duplicate process type(s): {', '.join(sorted(duplicates))}")
        if len(defaults) > 1:
            raise ValueError(f"Only one default process is allowed (got: {', '.join(defaults)})")
        object.__setattr__(self, "processes", processes)

    @classmethod
    def from_processes(cls, processes: Iterable[Process]) -> "Launch":
        return cls(tuple(processes))

    def default_process(self) -> Process | None:
        for process in self.processes:
            if process.default:
                return process
        return None

    def to_records(self) -> list[dict[str, Any]]:
        return [process.to_record() for process in self.processes]
