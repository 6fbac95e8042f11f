"""
Privileged invocations of the container daemon client.

The node manager process cannot touch the container's directories or run the
client as the submitting user itself. Every daemon operation therefore goes
through the setuid helper, which takes a fixed positional prefix and then the
client command to run:

    helper user user <op> <app> <container> <workdir> <script> <tokens> \\
        <local,dirs> <log,dirs> docker -H <url> <verb> [options...]

The invoker reports exit codes and output as they are. Classifying them is the
controller's job.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Mapping, Optional, Protocol, Sequence

from dockerexec.config import Settings
from dockerexec.models import ExitCode, LaunchRequest, ResolvedLaunchPlan
from dockerexec.mounts import PASSWD_MOUNT, mount_args
from dockerexec.runtime import client_argv, get_runtime

logger = logging.getLogger(__name__)

# Daemon replies for a container that is already gone or being removed.
_ALREADY_REMOVED_MARKERS = ("No such container", "is already in progress")


class HelperCommand(IntEnum):
    """Operation codes parsed positionally by the helper binary. Never renumber."""

    RUN_DOCKER_CONTAINER = 4
    CREATE_DOCKER_CONTAINER = 5
    MANAGE_DOCKER_CONTAINER = 6
    REMOVE_DOCKER_CONTAINER = 7


@dataclass(frozen=True)
class InvocationResult:
    """
    Exit code and combined stdout/stderr of one helper invocation.

    A helper that could not be executed at all is the separate
    failed_to_start() variant: exit code -1 and the spawn error, no output.
    """

    exit_code: int
    output: str = ""
    start_error: Optional[str] = None

    @classmethod
    def failed_to_start(cls, error: str) -> "InvocationResult":
        return cls(exit_code=int(ExitCode.START_FAILURE), output="", start_error=error)

    @property
    def started(self) -> bool:
        return self.start_error is None

    @property
    def succeeded(self) -> bool:
        return self.started and self.exit_code == 0


class CommandRunner(Protocol):
    def run(self, argv: Sequence[str], env: Mapping[str, str]) -> InvocationResult:
        ...


class ProcessRunner:
    """Runs a command as a child process with exactly the given environment."""

    def run(self, argv: Sequence[str], env: Mapping[str, str]) -> InvocationResult:
        try:
            proc = subprocess.Popen(
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=dict(env),
                text=True,
                errors="replace",
            )
        except (OSError, ValueError) as e:
            logger.error("Failed to start %s: %s", argv[0] if argv else "<empty>", e)
            return InvocationResult.failed_to_start(str(e))

        # Popen's context exit closes the pipes and reaps the child.
        with proc:
            try:
                output, _ = proc.communicate()
            except BaseException:
                proc.kill()
                raise
        return InvocationResult(exit_code=proc.returncode, output=output or "")


def helper_argv(
    helper_path: str, request: LaunchRequest, op: HelperCommand
) -> List[str]:
    """Fixed positional prefix understood by the helper."""
    return [
        helper_path,
        request.user,
        request.user,
        str(int(op)),
        request.app_id,
        request.container_id,
        request.work_dir,
        request.script_path,
        request.tokens_path,
        ",".join(request.local_dirs),
        ",".join(request.log_dirs),
    ]


def container_options(request: LaunchRequest, plan: ResolvedLaunchPlan) -> List[str]:
    """Options shared by create and run, ending with image and script invocation."""
    args = [
        "--net", "host",
        "--name", request.container_id,
        "--user", request.user,
        "--workdir", request.work_dir,
    ]
    args.extend(PASSWD_MOUNT)
    args.extend(mount_args(plan.local_mounts))
    args.extend(mount_args(plan.log_mounts))
    args.extend([plan.image, "bash", plan.launch_script])
    return args


class PrivilegedInvoker:
    """Builds and executes helper -> daemon client command lines."""

    def __init__(self, settings: Settings, runner: Optional[CommandRunner] = None) -> None:
        self._settings = settings
        self._runtime = get_runtime(settings.client)
        self._runner: CommandRunner = runner or ProcessRunner()

    def _client(self, plan: ResolvedLaunchPlan) -> List[str]:
        return client_argv(self._runtime, plan.docker_url)

    def create_argv(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> List[str]:
        return (
            helper_argv(self._settings.helper_path, request, HelperCommand.CREATE_DOCKER_CONTAINER)
            + self._client(plan)
            + ["create"]
            + container_options(request, plan)
        )

    def run_argv(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> List[str]:
        return (
            helper_argv(self._settings.helper_path, request, HelperCommand.RUN_DOCKER_CONTAINER)
            + self._client(plan)
            + ["run", "--rm"]
            + container_options(request, plan)
        )

    def start_argv(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> List[str]:
        return (
            helper_argv(self._settings.helper_path, request, HelperCommand.MANAGE_DOCKER_CONTAINER)
            + self._client(plan)
            + ["start", "-a", request.container_id]
        )

    def remove_argv(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> List[str]:
        return (
            helper_argv(self._settings.helper_path, request, HelperCommand.REMOVE_DOCKER_CONTAINER)
            + self._client(plan)
            + ["rm", request.container_id]
        )

    def execute(self, argv: List[str], request: LaunchRequest) -> InvocationResult:
        logger.debug("command: %s", " ".join(argv))
        result = self._runner.run(argv, request.environment)
        if result.started:
            logger.debug(
                "Exit code %s from %s, output: %s",
                result.exit_code,
                request.container_id,
                result.output,
            )
        return result

    def create(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> InvocationResult:
        return self.execute(self.create_argv(request, plan), request)

    def run(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> InvocationResult:
        return self.execute(self.run_argv(request, plan), request)

    def start(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> InvocationResult:
        return self.execute(self.start_argv(request, plan), request)

    def remove(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> InvocationResult:
        """Remove the container. A container that is already gone counts as removed."""
        result = self.execute(self.remove_argv(request, plan), request)
        if result.started and result.exit_code != 0 and any(
            marker in result.output for marker in _ALREADY_REMOVED_MARKERS
        ):
            logger.info("Container %s already removed", request.container_id)
            return InvocationResult(exit_code=0, output=result.output)
        return result
