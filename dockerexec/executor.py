"""
ContainerExecutor: the entry point a node manager talks to.

Usage:
    from dockerexec import ContainerExecutor, LaunchRequest

    executor = ContainerExecutor()
    executor.init()  # fails fast on bad configuration

    with open(script_path, "wb") as out:
        executor.write_launch_env(out, env, resources, ["python", "train.py"])

    request = executor.build_request(
        environment=env,
        container_id="container_1700000000000_0001_01_000002",
        user="alice",
        app_id="application_1700000000000_0001",
        work_dir="/data/nm/usercache/alice/appcache/application_1700000000000_0001/container_1700000000000_0001_01_000002",
        local_dirs=["/data/nm"],
        log_dirs=["/logs/nm"],
        script_path=script_path,
        tokens_path=tokens_path,
    )
    exit_code = executor.launch_container(request, callbacks)
"""

from __future__ import annotations

import logging
from typing import IO, Iterable, Mapping, Optional, Sequence

from dockerexec.config import Settings, get_settings
from dockerexec.controller import LaunchCallbacks, LaunchController
from dockerexec.events import DockerEventStream, SubscriptionRegistry
from dockerexec.exceptions import DaemonUnavailableError
from dockerexec.invoker import CommandRunner, PrivilegedInvoker
from dockerexec.models import LaunchOutcome, LaunchRequest
from dockerexec.runtime import check_daemon, get_runtime
from dockerexec.script import excluded_env_vars, write_launch_env
from dockerexec.strategies import (
    CreateStartRemoveStrategy,
    DirectRunStrategy,
    LaunchOrchestrator,
    StreamFactory,
)

logger = logging.getLogger(__name__)


def _docker_event_stream(docker_url: str, container_id: str) -> DockerEventStream:
    return DockerEventStream(docker_url, container_id)


class ContainerExecutor:
    """
    Launches framework containers through the privileged helper and the
    container daemon.

    Args:
        settings: Configuration. Defaults to the cached environment settings.
        runner: Child process runner. Defaults to ProcessRunner.
        stream_factory: Event source factory for the create/start/remove
            strategy. Defaults to the Engine API stream when
            settings.watch_events is on.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        runner: Optional[CommandRunner] = None,
        stream_factory: Optional[StreamFactory] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._runner = runner
        self._stream_factory = stream_factory
        self._subscriptions = SubscriptionRegistry()
        self._controller: Optional[LaunchController] = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def active_subscriptions(self) -> int:
        return self._subscriptions.active_count

    def init(self) -> LaunchController:
        """
        Validate configuration and build the launch pipeline.

        Raises:
            DockerExecConfigError: Unsupported authentication mode, missing
                daemon URL, or unknown strategy/client.
            DaemonUnavailableError: verify_daemon is on and the daemon does
                not answer.
        """
        self._settings.validate()
        logger.debug("dockerUrl: %s", self._settings.docker_url)
        if self._settings.verify_daemon and not check_daemon(
            get_runtime(self._settings.client), self._settings.docker_url
        ):
            raise DaemonUnavailableError(
                "Container daemon is not reachable",
                docker_url=self._settings.docker_url,
            )
        self._controller = LaunchController(self._settings, self._build_orchestrator())
        logger.info(
            "Container executor ready (strategy=%s, client=%s)",
            self._settings.strategy,
            self._settings.client,
        )
        return self._controller

    def _build_orchestrator(self) -> LaunchOrchestrator:
        invoker = PrivilegedInvoker(self._settings, self._runner)
        if self._settings.strategy == "run":
            return DirectRunStrategy(invoker)
        stream_factory = self._stream_factory
        if stream_factory is None and self._settings.watch_events:
            stream_factory = _docker_event_stream
        return CreateStartRemoveStrategy(
            invoker,
            stream_factory=stream_factory,
            registry=self._subscriptions,
        )

    def _require_controller(self) -> LaunchController:
        if self._controller is None:
            return self.init()
        return self._controller

    def build_request(self, *, environment: Mapping[str, str], **fields: object) -> LaunchRequest:
        """LaunchRequest with the image reference taken from the container environment."""
        return LaunchRequest.from_environment(
            environment=environment,
            image_env_var=self._settings.image_env_var,
            **fields,
        )

    def launch_container(self, request: LaunchRequest, callbacks: LaunchCallbacks) -> int:
        """
        Launch one container and return its exit code.

        Raises:
            InvalidImageError: The image reference is missing or malformed.
        """
        return self._require_controller().launch(request, callbacks)

    def launch_with_outcome(
        self, request: LaunchRequest, callbacks: LaunchCallbacks
    ) -> LaunchOutcome:
        return self._require_controller().launch_with_outcome(request, callbacks)

    def write_launch_env(
        self,
        out: IO[bytes],
        environment: Optional[Mapping[str, str]],
        resources: Optional[Mapping[str, Iterable[str]]],
        command: Sequence[str],
    ) -> None:
        """Write the in-container launch script to out and close it."""
        write_launch_env(
            out,
            environment,
            resources,
            command,
            exclusions=excluded_env_vars(self._settings.image_env_var),
        )
