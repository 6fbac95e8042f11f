"""
dockerexec: launch cluster containers inside Docker through a setuid helper.

Provides:
- ContainerExecutor: validated, privilege-separated container launches
- Image reference validation before anything reaches a command line
- Launch script rendering for the in-container environment
- Exit code classification into framework diagnostics
- Per-launch daemon event subscriptions that clean up stopped containers
"""
from dockerexec.config import Settings, get_settings, reset_settings
from dockerexec.controller import LaunchCallbacks, LaunchController
from dockerexec.events import (
    DockerEventStream,
    EventReconciler,
    SubscriptionRegistry,
    parse_event,
)
from dockerexec.exceptions import (
    DaemonUnavailableError,
    DockerExecConfigError,
    DockerExecError,
    InvalidImageError,
)
from dockerexec.executor import ContainerExecutor
from dockerexec.image import is_valid_image, validate_image
from dockerexec.invoker import (
    HelperCommand,
    InvocationResult,
    PrivilegedInvoker,
    ProcessRunner,
)
from dockerexec.models import (
    ExitCode,
    ExitCodeClass,
    LaunchOutcome,
    LaunchRequest,
    LifecycleEvent,
    LifecycleEventType,
    ResolvedLaunchPlan,
    classify_exit_code,
    resolve_plan,
)
from dockerexec.mounts import MountSpec, mount_args, mount_specs
from dockerexec.runtime import ContainerRuntime
from dockerexec.script import EXCLUDED_ENV_VARS, ShellScriptBuilder, write_launch_env
from dockerexec.strategies import (
    CreateStartRemoveStrategy,
    DirectRunStrategy,
    LaunchOrchestrator,
)

__all__ = [
    # Entry point
    "ContainerExecutor",
    "LaunchController",
    "LaunchCallbacks",
    # Configuration
    "Settings",
    "get_settings",
    "reset_settings",
    # Data model
    "LaunchRequest",
    "ResolvedLaunchPlan",
    "LaunchOutcome",
    "ExitCode",
    "ExitCodeClass",
    "LifecycleEvent",
    "LifecycleEventType",
    "classify_exit_code",
    "resolve_plan",
    # Building blocks
    "validate_image",
    "is_valid_image",
    "ShellScriptBuilder",
    "write_launch_env",
    "EXCLUDED_ENV_VARS",
    "MountSpec",
    "mount_specs",
    "mount_args",
    "ContainerRuntime",
    "HelperCommand",
    "InvocationResult",
    "PrivilegedInvoker",
    "ProcessRunner",
    # Strategies
    "LaunchOrchestrator",
    "DirectRunStrategy",
    "CreateStartRemoveStrategy",
    # Daemon events
    "DockerEventStream",
    "EventReconciler",
    "SubscriptionRegistry",
    "parse_event",
    # Errors
    "DockerExecError",
    "DockerExecConfigError",
    "InvalidImageError",
    "DaemonUnavailableError",
]
