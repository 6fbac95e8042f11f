"""
LaunchController: one launch attempt from request to exit code.

Sequence:
    1. Validate   resolve_plan() raises InvalidImageError, nothing is spawned
    2. Liveness   a container the framework no longer wants returns
                  ExitCode.INACTIVE without any invocation
    3. Invoke     the configured LaunchOrchestrator
    4. Classify   exit code -> ExitCodeClass -> diagnostics text
    5. Report     at most one diagnostics update, then return the exit code

Invocation failures are never raised. The framework observes them through the
returned exit code and reads the explanation from the diagnostics channel.
"""

from __future__ import annotations

import logging
from typing import Protocol

from dockerexec.config import Settings
from dockerexec.invoker import InvocationResult
from dockerexec.models import (
    ExitCode,
    ExitCodeClass,
    LaunchOutcome,
    LaunchRequest,
    classify_exit_code,
    resolve_plan,
)
from dockerexec.strategies import LaunchOrchestrator

logger = logging.getLogger(__name__)

KILLED_ON_REQUEST = "Container killed on request. Exit code is {exit_code}"


class LaunchCallbacks(Protocol):
    """What the calling framework exposes to a launch."""

    def is_active(self, container_id: str) -> bool:
        """False once the framework has cancelled the container."""
        ...

    def report_diagnostics(self, container_id: str, message: str) -> None:
        ...


def failure_diagnostics(request: LaunchRequest, result: InvocationResult) -> str:
    return (
        "Exception from container-launch.\n"
        f"Container id: {request.container_id}\n"
        f"Exit code: {result.exit_code}\n"
        f"Output: {result.output}"
    )


def classify_result(request: LaunchRequest, result: InvocationResult) -> LaunchOutcome:
    """Turn an invocation result into the outcome reported to the framework."""
    if not result.started:
        # No container-side state exists yet to attach diagnostics to.
        logger.error(
            "Could not start helper for %s: %s", request.container_id, result.start_error
        )
        return LaunchOutcome(
            exit_code=int(ExitCode.START_FAILURE),
            classification=ExitCodeClass.INVOCATION_FAILURE,
        )

    classification = classify_exit_code(result.exit_code)
    if classification is ExitCodeClass.NORMAL:
        return LaunchOutcome(exit_code=result.exit_code, classification=classification)

    logger.warning(
        "Exit code from container %s is : %s", request.container_id, result.exit_code
    )
    if classification in (ExitCodeClass.FORCED_KILL, ExitCodeClass.REQUESTED_TERMINATION):
        return LaunchOutcome(
            exit_code=result.exit_code,
            classification=classification,
            diagnostics=KILLED_ON_REQUEST.format(exit_code=result.exit_code),
        )

    diagnostics = failure_diagnostics(request, result)
    logger.error(
        "Exception from container-launch with container ID: %s and exit code: %s\n%s",
        request.container_id,
        result.exit_code,
        result.output,
    )
    return LaunchOutcome(
        exit_code=result.exit_code,
        classification=classification,
        diagnostics=diagnostics,
    )


class LaunchController:
    """
    Sequences validation, liveness, invocation, classification and reporting.

    Holds no per-launch state, so one controller serves concurrent launches
    of different containers.
    """

    def __init__(self, settings: Settings, orchestrator: LaunchOrchestrator) -> None:
        self._settings = settings
        self._orchestrator = orchestrator

    def launch(self, request: LaunchRequest, callbacks: LaunchCallbacks) -> int:
        return self.launch_with_outcome(request, callbacks).exit_code

    def launch_with_outcome(
        self, request: LaunchRequest, callbacks: LaunchCallbacks
    ) -> LaunchOutcome:
        plan = resolve_plan(request, self._settings)

        if not callbacks.is_active(request.container_id):
            logger.info(
                "Container %s was marked as inactive. Returning terminated error",
                request.container_id,
            )
            return LaunchOutcome(
                exit_code=int(ExitCode.INACTIVE),
                classification=ExitCodeClass.ALREADY_INACTIVE,
            )

        result = self._orchestrator.invoke(request, plan)
        outcome = classify_result(request, result)
        if outcome.diagnostics is not None:
            callbacks.report_diagnostics(request.container_id, outcome.diagnostics)
        return outcome
