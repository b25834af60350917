"""Shared pieces of the API router: request model, backend interface and helpers."""

from __future__ import annotations

import enum
import json
import logging
import sys
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, BinaryIO, Optional, Protocol

from kubedock.model.container import Container, Signal
from kubedock.model.database import Database, default_database
from kubedock.model.records import Exec
from kubedock.routes.requests import EndpointConfig

log = logging.getLogger(__name__)

POLL_RATE = 1
POLL_BURST = 3
LOG_LINES = 100


class DeployState(enum.Enum):
    """The state of a deployed container as reported by the backend."""

    FAILED = "failed"
    RUNNING = "running"
    COMPLETED = "completed"


class Backend(Protocol):
    """The operations the API needs from the cluster backend."""

    def start_container(self, container: Container) -> DeployState:
        """Deploy the container and return its state."""

    def get_container_status(self, container: Container) -> DeployState:
        """Return the current state of a deployed container."""

    def delete_container(self, container: Container) -> None:
        """Remove the deployed container."""

    def delete_older_than(self, age: Any) -> None:
        """Remove deployed resources older than age."""

    def copy_to_container(self, container: Container, archive: bytes, path: str) -> None:
        """Extract a tar archive at path in the container."""

    def copy_from_container(self, container: Container, path: str) -> bytes:
        """Return a tar archive of path in the container."""

    def exec_container(self, container: Container, exc: Exec, out: BinaryIO) -> int:
        """Run the exec in the container and return its exit code."""

    def get_logs(
        self, container: Container, follow: bool, count: int, stop: Signal, out: BinaryIO
    ) -> None:
        """Write the container logs to out."""

    def get_image_exposed_ports(self, name: str) -> dict[str, Any]:
        """Return the ports exposed by the named image."""

    def create_port_forwards(self, container: Container) -> None:
        """Forward the container ports to the local host."""

    def create_reverse_proxies(self, container: Container) -> None:
        """Proxy the container ports via the local host."""

    def get_pod_ip(self, container: Container) -> str:
        """Return the address of the pod running the container."""


class ApiError(Exception):
    """An error that is answered with the given HTTP status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass
class ApiRequest:
    """An incoming API call: path parameters, query arguments, headers and body."""

    params: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        """Return the decoded body; raise ApiError(500) if it is not valid JSON."""
        if not self.body.strip():
            raise ApiError(500, "empty request body")
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError) as err:
            raise ApiError(500, str(err)) from err


@dataclass
class ApiResponse:
    """An API answer.

    body is sent as JSON, content as raw bytes; stream, when set, takes over
    the connection and writes to it until done.
    """

    status: int
    body: Any = None
    content: Optional[bytes] = None
    headers: dict[str, str] = field(default_factory=dict)
    stream: Optional[Callable[[BinaryIO], None]] = None


class RateLimiter:
    """A token bucket allowing rate events per second with bursts up to burst."""

    def __init__(self, rate: float, burst: int) -> None:
        self.rate = rate
        self.burst = burst
        self._tokens = float(burst)
        self._last = time.monotonic()
        self._lock = threading.Lock()

    def allow(self) -> bool:
        """Take a token if one is available."""
        with self._lock:
            now = time.monotonic()
            self._tokens = min(self.burst, self._tokens + (now - self._last) * self.rate)
            self._last = now
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False


@dataclass
class RouterConfig:
    """Settings that shape how the API behaves."""

    inspector: bool = False
    port_forward: bool = False
    reverse_proxy: bool = False
    request_cpu: str = ""
    request_memory: str = ""
    runas_user: str = ""
    pull_policy: str = ""
    pre_archive: bool = False
    deploy_as_job: bool = False


class BaseRouter:
    """State and helpers shared by all endpoint groups."""

    def __init__(
        self,
        backend: Backend,
        config: Optional[RouterConfig] = None,
        db: Optional[Database] = None,
    ) -> None:
        self.backend = backend
        self.config = config if config is not None else RouterConfig()
        self.db = db if db is not None else default_database()
        self.poll_limiter = RateLimiter(POLL_RATE, POLL_BURST)

    def add_network_aliases(self, container: Container, endpoint: EndpointConfig) -> None:
        """Merge the endpoint aliases into the container's aliases, lower cased."""
        aliases: list[str] = []
        done = {container.short_id}
        for alias in [*container.network_aliases, *endpoint.aliases]:
            if alias not in done:
                lowered = alias.lower()
                aliases.append(lowered)
                done.add(lowered)
        container.network_aliases = aliases

    def start_container(self, container: Container) -> None:
        """Start the container on the backend and store its resulting state."""
        try:
            state = self.backend.start_container(container)
        except Exception:
            if log.isEnabledFor(logging.DEBUG):
                log.info("container %s log output:", container.short_id)
                out = getattr(sys.stderr, "buffer", sys.stderr)
                try:
                    self.backend.get_logs(container, False, LOG_LINES, threading.Event(), out)
                except Exception as err:  # noqa: BLE001 - best effort diagnostics
                    log.debug("could not fetch logs: %s", err)
            raise

        container.host_ip = "0.0.0.0"
        if self.config.port_forward:
            self.backend.create_port_forwards(container)
        elif container.get_service_ports():
            container.host_ip = self.backend.get_pod_ip(container)
            if self.config.reverse_proxy:
                self.backend.create_reverse_proxies(container)

        container.stopped = False
        container.killed = False
        container.failed = state is DeployState.FAILED
        container.completed = state is DeployState.COMPLETED
        container.running = state is DeployState.RUNNING
        self.db.save_container(container)

    def update_container_status(self, container: Container) -> None:
        """Poll the backend and mark the container completed when it finished."""
        if container.completed:
            return
        if not self.poll_limiter.allow():
            log.debug("rate-limited status request for container: %s", container.id)
            return
        try:
            status = self.backend.get_container_status(container)
        except Exception as err:  # noqa: BLE001 - any backend error marks a failure
            log.warning("container status error: %s", err)
            container.failed = True
            return
        if status is DeployState.COMPLETED:
            container.finished = datetime.now(timezone.utc)
            container.completed = True
            container.running = False