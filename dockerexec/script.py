"""
Launch script rendering.

The launch script runs inside the container as `bash <workdir>/launch_container.sh`.
It exports the container environment, links localized resources into the
working directory and finally execs the workload command:

    #!/bin/bash

    export APP_ENV='prod'
    mkdir -p 'conf'
    ln -sf '/data/filecache/10/job.xml' 'conf/job.xml'
    exec /bin/bash -c 'python train.py'

Host installation variables are never exported. They point at directories that
only exist on the node and would shadow whatever the image ships.
"""

from __future__ import annotations

import logging
import os
import shlex
from typing import IO, Iterable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

CONTAINER_SCRIPT = "launch_container.sh"

# Host runtime installation variables that are never exported into the image.
EXCLUDED_ENV_VARS = frozenset(
    {
        "HADOOP_YARN_HOME",
        "HADOOP_COMMON_HOME",
        "HADOOP_HDFS_HOME",
        "HADOOP_CONF_DIR",
        "JAVA_HOME",
    }
)


def excluded_env_vars(image_env_var: Optional[str] = None) -> frozenset:
    """Exclusion set, plus the variable that carried the image reference."""
    if image_env_var:
        return EXCLUDED_ENV_VARS | {image_env_var}
    return EXCLUDED_ENV_VARS


class ShellScriptBuilder:
    """Accumulates launch script lines. Every value is shell-quoted."""

    def __init__(self) -> None:
        self._lines: List[str] = ["#!/bin/bash", ""]

    def env(self, key: str, value: str) -> "ShellScriptBuilder":
        self._lines.append(f"export {key}={shlex.quote(value)}")
        return self

    def symlink(self, src: str, link: str) -> "ShellScriptBuilder":
        parent = os.path.dirname(link)
        if parent:
            self._lines.append(f"mkdir -p {shlex.quote(parent)}")
        self._lines.append(f"ln -sf {shlex.quote(src)} {shlex.quote(link)}")
        return self

    def command(self, command: Sequence[str]) -> "ShellScriptBuilder":
        self._lines.append(f"exec /bin/bash -c {shlex.quote(' '.join(command))}")
        return self

    def render(self) -> str:
        return "\n".join(self._lines) + "\n"

    def write(self, out: IO[bytes]) -> None:
        out.write(self.render().encode("utf-8"))
        out.flush()


def build_launch_script(
    environment: Optional[Mapping[str, str]],
    resources: Optional[Mapping[str, Iterable[str]]],
    command: Sequence[str],
    exclusions: Iterable[str] = EXCLUDED_ENV_VARS,
) -> ShellScriptBuilder:
    """
    Assemble the launch script.

    Environment keys and resource paths are sorted so the same inputs always
    render the same bytes. Link names keep their given order.
    """
    excluded = frozenset(exclusions)
    sb = ShellScriptBuilder()
    for key in sorted(environment or {}):
        if key not in excluded:
            sb.env(key, str(environment[key]))
    for src in sorted(resources or {}):
        for link in resources[src]:
            sb.symlink(str(src), str(link))
    sb.command(command)
    return sb


def write_launch_env(
    out: IO[bytes],
    environment: Optional[Mapping[str, str]],
    resources: Optional[Mapping[str, Iterable[str]]],
    command: Sequence[str],
    exclusions: Iterable[str] = EXCLUDED_ENV_VARS,
) -> None:
    """
    Render the launch script into out, then close it.

    out is closed on every path. A failure to close is logged and never
    replaces an error raised while rendering or writing.
    """
    try:
        sb = build_launch_script(environment, resources, command, exclusions)
        sb.write(out)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Script: %s", sb.render())
    finally:
        try:
            out.close()
        except Exception as e:
            logger.warning("Failed to close launch script stream: %s", e)
