"""
Container daemon client selection.

Both supported clients talk to a remote daemon endpoint given on the command
line; they only differ in the flag that names it.
"""

from __future__ import annotations

import logging
import subprocess
from enum import Enum
from typing import List

logger = logging.getLogger(__name__)


class ContainerRuntime(Enum):
    DOCKER = "docker"
    PODMAN = "podman"

    @property
    def endpoint_flag(self) -> str:
        return "-H" if self is ContainerRuntime.DOCKER else "--url"


def get_runtime(name: str) -> ContainerRuntime:
    """Resolve a configured client name. Raises ValueError for unknown names."""
    return ContainerRuntime(name)


def client_argv(runtime: ContainerRuntime, docker_url: str) -> List[str]:
    """Client invocation connected to the configured daemon endpoint."""
    return [runtime.value, runtime.endpoint_flag, docker_url]


def check_daemon(runtime: ContainerRuntime, docker_url: str, timeout: float = 5) -> bool:
    """Verify the daemon at docker_url answers `info`."""
    try:
        subprocess.run(
            client_argv(runtime, docker_url) + ["info"],
            capture_output=True,
            check=True,
            timeout=timeout,
        )
        return True
    except (subprocess.SubprocessError, OSError) as e:
        logger.warning("Container daemon at %s not reachable: %s", docker_url, e)
        return False
