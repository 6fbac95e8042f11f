"""
Launch strategies: how a validated plan becomes daemon invocations.

- DirectRunStrategy: one `run --rm` invocation. The daemon removes the
  container itself when it exits.
- CreateStartRemoveStrategy: `create`, then `start -a` (blocks until the
  container exits), then `rm`. A per-launch EventReconciler watches the
  daemon while `start` blocks so a stopped container is removed even if the
  synchronous path never gets to `rm`.

Strategies only produce an InvocationResult. Classification and reporting
happen in LaunchController.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from dockerexec.events import EventReconciler, EventSource, SubscriptionRegistry
from dockerexec.invoker import InvocationResult, PrivilegedInvoker
from dockerexec.models import LaunchRequest, ResolvedLaunchPlan

logger = logging.getLogger(__name__)

# (docker_url, container_id) -> event source scoped to that container
StreamFactory = Callable[[str, str], EventSource]


class LaunchOrchestrator(Protocol):
    """Turns one resolved launch into privileged invocations."""

    def invoke(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> InvocationResult:
        ...


class DirectRunStrategy:
    def __init__(self, invoker: PrivilegedInvoker) -> None:
        self._invoker = invoker

    def invoke(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> InvocationResult:
        return self._invoker.run(request, plan)


class CreateStartRemoveStrategy:
    """
    Create, start attached, remove.

    A failed create stops the sequence. Remove runs after start whatever
    start returned; its result only replaces start's when start succeeded,
    so the workload's own exit code is what the framework sees.
    """

    def __init__(
        self,
        invoker: PrivilegedInvoker,
        stream_factory: Optional[StreamFactory] = None,
        registry: Optional[SubscriptionRegistry] = None,
    ) -> None:
        self._invoker = invoker
        self._stream_factory = stream_factory
        self._registry = registry or SubscriptionRegistry()

    def invoke(self, request: LaunchRequest, plan: ResolvedLaunchPlan) -> InvocationResult:
        created = self._invoker.create(request, plan)
        if not created.succeeded:
            return created
        daemon_id = created.output.strip()
        logger.debug("Created container %s (daemon id %s)", request.container_id, daemon_id)

        reconciler = self._subscribe(request, plan)
        try:
            started = self._invoker.start(request, plan)
            removed = self._invoker.remove(request, plan)
            if removed.succeeded and reconciler is not None:
                reconciler.mark_removed()
        finally:
            if reconciler is not None:
                self._registry.deregister(request.container_id)
                # The listener exits by itself within one poll interval.
                reconciler.close(wait=False)

        if not removed.succeeded:
            logger.warning(
                "Failed to remove container %s, exit code %s",
                request.container_id,
                removed.exit_code,
            )
            if started.succeeded:
                return removed
        return started

    def _subscribe(
        self, request: LaunchRequest, plan: ResolvedLaunchPlan
    ) -> Optional[EventReconciler]:
        if self._stream_factory is None:
            return None
        try:
            stream = self._stream_factory(plan.docker_url, request.container_id)
        except Exception as e:
            logger.warning(
                "Could not subscribe to daemon events for %s: %s", request.container_id, e
            )
            return None
        reconciler = EventReconciler(
            request.container_id,
            remove=lambda: self._invoker.remove(request, plan),
            stream=stream,
        )
        self._registry.register(reconciler)
        reconciler.start()
        return reconciler
