from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from dockerexec.image import validate_image
from dockerexec.mounts import MountSpec, mount_specs
from dockerexec.script import CONTAINER_SCRIPT

if TYPE_CHECKING:
    from dockerexec.config import Settings


class ExitCode(IntEnum):
    """
    Exit codes surfaced to the framework.

    INACTIVE is the sentinel for a container that was cancelled before launch.
    It shares its value with TERMINATED so the framework treats it as a
    container stopped on request.
    """

    SUCCESS = 0
    START_FAILURE = -1
    FORCE_KILLED = 137  # 128 + SIGKILL
    TERMINATED = 143  # 128 + SIGTERM
    INACTIVE = 143


class ExitCodeClass(str, Enum):
    """Semantic outcome of a launch attempt. Drives diagnostic severity."""

    NORMAL = "normal"
    FORCED_KILL = "forced_kill"
    REQUESTED_TERMINATION = "requested_termination"
    ALREADY_INACTIVE = "already_inactive"
    INVOCATION_FAILURE = "invocation_failure"


def classify_exit_code(exit_code: int) -> ExitCodeClass:
    """
    Map a raw exit code from an invocation to its class.

    ALREADY_INACTIVE is never returned here: an inactive container is detected
    before any invocation and classified by the controller directly.
    """
    if exit_code == ExitCode.SUCCESS:
        return ExitCodeClass.NORMAL
    if exit_code == ExitCode.FORCE_KILLED:
        return ExitCodeClass.FORCED_KILL
    if exit_code == ExitCode.TERMINATED:
        return ExitCodeClass.REQUESTED_TERMINATION
    return ExitCodeClass.INVOCATION_FAILURE


@dataclass(frozen=True)
class LaunchOutcome:
    """Terminal result of one launch attempt."""

    exit_code: int
    classification: ExitCodeClass
    diagnostics: Optional[str] = None

    @property
    def killed_on_request(self) -> bool:
        return self.classification in (
            ExitCodeClass.FORCED_KILL,
            ExitCodeClass.REQUESTED_TERMINATION,
        )


class LaunchRequest(BaseModel):
    """
    One launch attempt, as handed over by the framework.

    Attributes:
        container_id: Cluster-assigned container id, also the daemon-side name.
        user: Submitting user; the helper runs the operation as this user.
        app_id: Owning application id.
        work_dir: Container working directory on the host.
        local_dirs: Local resource directories, mounted in order.
        log_dirs: Log directories, mounted in order.
        script_path: Framework-private launch script path.
        tokens_path: Framework-private token file path.
        image_reference: Raw, unvalidated image reference.
        environment: The container's sanitized environment.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    container_id: str = Field(min_length=1)
    user: str = Field(min_length=1)
    app_id: str = Field(min_length=1)
    work_dir: str
    local_dirs: Tuple[str, ...] = ()
    log_dirs: Tuple[str, ...] = ()
    script_path: str
    tokens_path: str
    image_reference: Optional[str] = None
    environment: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_environment(
        cls,
        *,
        environment: Mapping[str, str],
        image_env_var: str,
        **fields: object,
    ) -> "LaunchRequest":
        """Build a request whose image reference comes from the container environment."""
        return cls(
            image_reference=environment.get(image_env_var),
            environment=dict(environment),
            **fields,
        )


class ResolvedLaunchPlan(BaseModel):
    """Validated, derived launch parameters. Built only by resolve_plan()."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    image: str
    docker_url: str
    local_mounts: Tuple[MountSpec, ...] = ()
    log_mounts: Tuple[MountSpec, ...] = ()
    launch_script: str


def resolve_plan(request: LaunchRequest, settings: "Settings") -> ResolvedLaunchPlan:
    """
    Derive the launch plan for a request.

    Raises:
        InvalidImageError: Before anything else is computed, if the image
            reference is missing or malformed.
    """
    image = validate_image(request.image_reference)
    return ResolvedLaunchPlan(
        image=image,
        docker_url=settings.docker_url,
        local_mounts=mount_specs(request.local_dirs),
        log_mounts=mount_specs(request.log_dirs),
        launch_script=posixpath.join(request.work_dir, CONTAINER_SCRIPT),
    )


class LifecycleEventType(str, Enum):
    STARTED = "started"
    DIED = "died"
    STOPPED = "stopped"
    REMOVED = "removed"


@dataclass(frozen=True)
class LifecycleEvent:
    """Daemon notification for one container. Consumed once, never stored."""

    container_id: str
    event_type: LifecycleEventType
    timestamp: float
