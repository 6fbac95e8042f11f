"""
Daemon lifecycle events and stopped-container cleanup.

`start -a` blocks until the container exits, and a node manager restart or a
helper failure can leave a stopped container behind on the daemon. Each launch
therefore opens its own event subscription, scoped to its container, for
exactly the lifetime of the launch:

    with EventReconciler(container_id, remove, stream) as reconciler:
        ...start, remove...
        reconciler.mark_removed()

A "die"/"stop" notification triggers one remove. The reconciler never touches
launch state; a remove that races with the synchronous one is harmless because
removing an absent container counts as success.

Events come from the Engine API (`GET /events`) streamed over httpx, on a unix
socket or a tcp endpoint.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, Optional, Protocol, Tuple
from urllib.parse import urlsplit

import httpx

from dockerexec.exceptions import DockerExecConfigError
from dockerexec.invoker import InvocationResult
from dockerexec.models import LifecycleEvent, LifecycleEventType

logger = logging.getLogger(__name__)

# Engine API action -> lifecycle event type. Other actions are ignored.
_ACTIONS: Dict[str, LifecycleEventType] = {
    "start": LifecycleEventType.STARTED,
    "die": LifecycleEventType.DIED,
    "stop": LifecycleEventType.STOPPED,
    "destroy": LifecycleEventType.REMOVED,
}

_CLEANUP_TRIGGERS = (LifecycleEventType.DIED, LifecycleEventType.STOPPED)


def parse_event(payload: Dict[str, Any]) -> Optional[LifecycleEvent]:
    """Convert one Engine API event object, or None if it is not a lifecycle event."""
    if payload.get("Type", "container") != "container":
        return None
    action = payload.get("Action") or payload.get("status") or ""
    event_type = _ACTIONS.get(action)
    if event_type is None:
        return None

    actor = payload.get("Actor") or {}
    attributes = actor.get("Attributes") or {}
    container_id = attributes.get("name") or actor.get("ID") or payload.get("id")
    if not container_id:
        return None

    if payload.get("timeNano"):
        timestamp = payload["timeNano"] / 1e9
    else:
        timestamp = float(payload.get("time", 0))
    return LifecycleEvent(
        container_id=str(container_id).lstrip("/"),
        event_type=event_type,
        timestamp=timestamp,
    )


def engine_endpoint(docker_url: str) -> Tuple[str, Optional[str]]:
    """
    Split a daemon URL into (httpx base_url, unix socket path or None).

    Accepts unix://, tcp://, http:// and https:// URLs.
    """
    parts = urlsplit(docker_url)
    if parts.scheme == "unix":
        return "http://docker", parts.path
    if parts.scheme == "tcp":
        return f"http://{parts.netloc}", None
    if parts.scheme in ("http", "https"):
        return docker_url.rstrip("/"), None
    raise DockerExecConfigError(
        f"Unsupported docker URL: {docker_url}",
        code="unsupported_docker_url",
        details={"docker_url": docker_url},
    )


class EventSource(Protocol):
    def __iter__(self) -> Iterator[LifecycleEvent]:
        ...

    def close(self) -> None:
        ...


class DockerEventStream:
    """
    Engine API event stream filtered to a single container name.

    The daemon sends nothing while the container is idle, so each read gives
    up after poll_interval seconds to notice close(). The request is then
    reissued with `since` set to the last event seen, so nothing is missed.
    close() only flags the stream; the reading thread closes the client.
    """

    def __init__(
        self,
        docker_url: str,
        container_id: str,
        transport: Optional[httpx.BaseTransport] = None,
        poll_interval: float = 1.0,
    ) -> None:
        base_url, socket_path = engine_endpoint(docker_url)
        if transport is None and socket_path:
            transport = httpx.HTTPTransport(uds=socket_path)
        self._container_id = container_id
        self._closed = threading.Event()
        self._reading = False
        self._client = httpx.Client(
            base_url=base_url,
            transport=transport,
            timeout=httpx.Timeout(10.0, read=poll_interval),
        )

    def __iter__(self) -> Iterator[LifecycleEvent]:
        self._reading = True
        subscribed_at = time.time()
        since: Optional[float] = None
        try:
            while not self._closed.is_set():
                try:
                    for event in self._read(since):
                        since = event.timestamp
                        yield event
                    return
                except httpx.ReadTimeout:
                    if since is None:
                        since = subscribed_at
        finally:
            self._client.close()

    def _read(self, since: Optional[float]) -> Iterator[LifecycleEvent]:
        filters = {"type": ["container"], "container": [self._container_id]}
        params = {"filters": json.dumps(filters)}
        if since is not None:
            params["since"] = f"{since:.9f}"
        with self._client.stream("GET", "/events", params=params) as response:
            response.raise_for_status()
            for line in response.iter_lines():
                if self._closed.is_set():
                    return
                if not line.strip():
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed event line: %r", line)
                    continue
                event = parse_event(payload)
                if event is not None:
                    yield event

    def close(self) -> None:
        self._closed.set()
        if not self._reading:
            self._client.close()


class EventReconciler:
    """
    Removes a stopped container when the daemon reports it died.

    Runs its listener on a daemon thread. Removal failures are logged, never
    raised: this path only adds cleanup on top of the synchronous launch.
    """

    def __init__(
        self,
        container_id: str,
        remove: Callable[[], InvocationResult],
        stream: EventSource,
        join_timeout: float = 5.0,
    ) -> None:
        self.container_id = container_id
        self._remove = remove
        self._stream = stream
        self._join_timeout = join_timeout
        self._removed = threading.Event()
        self._stopping = threading.Event()
        self._remove_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def removed(self) -> bool:
        return self._removed.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._listen,
            name=f"docker-events-{self.container_id}",
            daemon=True,
        )
        self._thread.start()
        logger.info("Watching daemon events for %s", self.container_id)

    def close(self, wait: bool = True) -> None:
        """
        Stop listening. Safe to call more than once.

        With wait, blocks until the listener exits, at most join_timeout
        seconds; the stream wakes it within its poll interval.
        """
        self._stopping.set()
        try:
            self._stream.close()
        except Exception as e:
            logger.warning("Failed to close event stream for %s: %s", self.container_id, e)
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._join_timeout)
        logger.info("Stopped watching daemon events for %s", self.container_id)

    def __enter__(self) -> "EventReconciler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def mark_removed(self) -> None:
        """Record a removal done by the synchronous path."""
        self._removed.set()

    def handle(self, event: LifecycleEvent) -> None:
        if event.container_id != self.container_id:
            return
        if event.event_type is LifecycleEventType.REMOVED:
            self._removed.set()
        elif event.event_type in _CLEANUP_TRIGGERS:
            self._remove_once()

    def _listen(self) -> None:
        try:
            for event in self._stream:
                if self._stopping.is_set():
                    break
                self.handle(event)
        except Exception as e:
            # Errors after close() are expected.
            if not self._stopping.is_set():
                logger.warning("Event stream for %s ended: %s", self.container_id, e)

    def _remove_once(self) -> None:
        with self._remove_lock:
            if self._removed.is_set():
                return
            try:
                result = self._remove()
            except Exception as e:
                logger.warning("Event-driven remove of %s failed: %s", self.container_id, e)
                return
            if result.succeeded:
                self._removed.set()
                logger.info("Removed stopped container %s", self.container_id)
            else:
                logger.warning(
                    "Event-driven remove of %s exited with %s: %s",
                    self.container_id,
                    result.exit_code,
                    result.output,
                )


class SubscriptionRegistry:
    """
    Active reconcilers by container id.

    Shared by concurrent launches. The lock only guards the map; handlers run
    outside it.
    """

    def __init__(self) -> None:
        self._reconcilers: Dict[str, EventReconciler] = {}
        self._lock = threading.Lock()

    def register(self, reconciler: EventReconciler) -> None:
        with self._lock:
            previous = self._reconcilers.get(reconciler.container_id)
            self._reconcilers[reconciler.container_id] = reconciler
        if previous is not None and previous is not reconciler:
            logger.warning("Replacing event subscription for %s", reconciler.container_id)
            previous.close(wait=False)

    def deregister(self, container_id: str) -> Optional[EventReconciler]:
        with self._lock:
            return self._reconcilers.pop(container_id, None)

    def get(self, container_id: str) -> Optional[EventReconciler]:
        with self._lock:
            return self._reconcilers.get(container_id)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._reconcilers)
