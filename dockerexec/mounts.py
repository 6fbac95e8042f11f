"""
Bind mount arguments for local and log directories.

Every directory is mounted at the same path inside the container. Order is
kept and duplicates are not collapsed: two equal directories give two equal
mount arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

# The container user is resolved through the host's passwd file.
PASSWD_MOUNT = ["-v", "/etc/passwd:/etc/passwd:ro"]


@dataclass(frozen=True)
class MountSpec:
    """A bind mount whose host path and container path are the same path."""

    path: str

    @property
    def host_path(self) -> str:
        return self.path

    @property
    def container_path(self) -> str:
        return self.path

    def to_args(self) -> List[str]:
        return ["-v", f"{self.host_path}:{self.container_path}"]


def mount_specs(dirs: Iterable[str]) -> Tuple[MountSpec, ...]:
    return tuple(MountSpec(path=str(d)) for d in dirs)


def mount_args(specs: Iterable[MountSpec]) -> List[str]:
    """Flatten specs into daemon client arguments. No specs, no arguments."""
    args: List[str] = []
    for spec in specs:
        args.extend(spec.to_args())
    return args
