"""The container record and the logic derived from its configuration."""

from __future__ import annotations

import enum
import io
import logging
import os
import re
import tarfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from kubedock import tarutil
from kubedock.model.quantity import Quantity, parse_quantity
from kubedock.model.records import ZERO_TIME

log = logging.getLogger(__name__)

LABEL_REQUEST_CPU = "com.joyrex2001.kubedock.request-cpu"
LABEL_REQUEST_MEMORY = "com.joyrex2001.kubedock.request-memory"
LABEL_PULL_POLICY = "com.joyrex2001.kubedock.pull-policy"
LABEL_DEPLOY_AS_JOB = "com.joyrex2001.kubedock.deploy-as-job"

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})


class PullPolicy(str, enum.Enum):
    """When the image of a container should be pulled."""

    ALWAYS = "Always"
    NEVER = "Never"
    IF_NOT_PRESENT = "IfNotPresent"


_PULL_POLICIES = {
    "default": PullPolicy.IF_NOT_PRESENT,
    "notpresent": PullPolicy.IF_NOT_PRESENT,
    "ifnotpresent": PullPolicy.IF_NOT_PRESENT,
    "always": PullPolicy.ALWAYS,
    "allways": PullPolicy.ALWAYS,
    "never": PullPolicy.NEVER,
}


class Signal(Protocol):
    """Anything that can be notified, such as a threading.Event."""

    def set(self) -> None: ...


@dataclass(frozen=True)
class EnvVar:
    """A single environment variable."""

    name: str
    value: str


@dataclass
class PreArchive:
    """An archive to be copied into the container before it starts."""

    path: str
    archive: bytes


@dataclass
class ResourceRequirements:
    """Resource requests and limits keyed by resource name."""

    requests: dict[str, Quantity] = field(default_factory=dict)
    limits: dict[str, Quantity] = field(default_factory=dict)


def _parse_int(text: str) -> int:
    if _INT_PATTERN.fullmatch(text) is None:
        raise ValueError(f"invalid syntax: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _tcp_port(spec: str) -> int:
    """Convert '9000/tcp' or '9000' to the port number."""
    parts = spec.split("/")
    if len(parts) > 2:
        raise ValueError(f"could not parse exposed port {spec}")
    try:
        port = _parse_int(parts[0])
    except ValueError as err:
        raise ValueError(f"could not parse exposed port {spec}: {err}") from err
    if len(parts) == 2 and parts[1] != "tcp":
        raise ValueError(
            f"unsupported protocol {parts[1]} for port: {port} - only tcp is supported"
        )
    return port


def _tcp_ports(ports: dict[str, Any]) -> list[int]:
    result = []
    for spec in ports:
        try:
            result.append(_tcp_port(spec))
        except ValueError:
            log.error("could not parse exposed port %s", spec)
    return result


@dataclass
class Container:
    """The details of a container."""

    id: str = ""
    short_id: str = ""
    name: str = ""
    image: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    user: str = ""
    entrypoint: list[str] = field(default_factory=list)
    cmd: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    binds: list[str] = field(default_factory=list)
    pre_archives: list[PreArchive] = field(default_factory=list)
    host_ip: str = ""
    exposed_ports: dict[str, Any] = field(default_factory=dict)
    image_ports: dict[str, Any] = field(default_factory=dict)
    host_ports: dict[int, int] = field(default_factory=dict)
    mapped_ports: dict[int, int] = field(default_factory=dict)
    networks: set[str] = field(default_factory=set)
    network_aliases: list[str] = field(default_factory=list)
    stop_channels: list[Signal] = field(default_factory=list)
    attach_channels: list[Signal] = field(default_factory=list)
    running: bool = False
    completed: bool = False
    failed: bool = False
    stopped: bool = False
    killed: bool = False
    created: datetime = ZERO_TIME
    finished: datetime = ZERO_TIME

    def get_env_vars(self) -> list[EnvVar]:
        """Return the environment as name/value pairs, skipping malformed entries."""
        result = []
        for entry in self.env:
            name, sep, value = entry.partition("=")
            if not sep:
                log.error("could not parse env %s", entry)
                continue
            result.append(EnvVar(name, value))
        return result

    def get_image_pull_policy(self) -> PullPolicy:
        """Return the pull policy from the labels.

        Raises ValueError for an unknown policy; the fallback in that case is
        PullPolicy.IF_NOT_PRESENT.
        """
        policy = self.labels.get(LABEL_PULL_POLICY, "")
        if not policy:
            return _PULL_POLICIES["default"]
        try:
            return _PULL_POLICIES[policy.lower()]
        except KeyError:
            raise ValueError(f"invalid pull policy: {policy}") from None

    def run_as_job(self) -> bool:
        """Return True if the deploy-as-job label holds a true value."""
        return self.labels.get(LABEL_DEPLOY_AS_JOB, "") in _TRUE

    def get_resource_requirements(self) -> ResourceRequirements:
        """Build requests and limits from the cpu and memory labels."""
        req = ResourceRequirements()
        for kind, label in (("cpu", LABEL_REQUEST_CPU), ("memory", LABEL_REQUEST_MEMORY)):
            if label not in self.labels:
                continue
            spec = self.labels[label]
            parts = spec.replace(" ", "").split(",")
            if len(parts) > 2:
                raise ValueError(f"invalid resource requirement: {spec}")
            request = parts[0]
            limit = parts[1] if len(parts) == 2 else ""
            if not request and limit:
                request = limit
            req.requests[kind] = parse_quantity(request)
            if limit:
                req.limits[kind] = parse_quantity(limit)
        return req

    def get_run_as_user(self) -> int | None:
        """Return the numeric user to run as, or None to use the image default."""
        if not self.user:
            log.warning("user not set, will run as user defined in image")
            return None
        try:
            return _parse_int(self.user)
        except ValueError:
            raise ValueError(f"failed to parse {self.user} to Int64") from None

    def map_port(self, pod: int, local: int) -> None:
        """Map a pod port to a local port."""
        self.mapped_ports[pod] = local

    def add_host_port(self, src: str, dst: str) -> None:
        """Add a predefined port mapping; an empty src is stored as -dst."""
        dst_port = _tcp_port(dst)
        if src:
            try:
                src_port = _parse_int(src)
            except ValueError as err:
                raise ValueError(f"could not parse exposed port {dst}: {err}") from err
        else:
            src_port = -dst_port
        self.host_ports[src_port] = dst_port

    def get_container_tcp_ports(self) -> list[int]:
        """Return the tcp ports exposed by the container."""
        return _tcp_ports(self.exposed_ports)

    def get_image_tcp_ports(self) -> list[int]:
        """Return the tcp ports exposed by the image."""
        return _tcp_ports(self.image_ports)

    def get_service_ports(self) -> dict[int, int]:
        """Return the port mapping to apply on a service."""
        ports = {port: port for port in self.get_image_tcp_ports()}
        ports.update((port, port) for port in self.get_container_tcp_ports())
        for mapping in (self.host_ports, self.mapped_ports):
            for src, dst in mapping.items():
                ports[dst if src < 0 else src] = dst
        return ports

    def get_volumes(self) -> dict[str, str]:
        """Return the binds as a mapping of target location to local location."""
        mounts = {}
        for bind in self.binds:
            parts = bind.split(":")
            if len(parts) < 2:
                raise ValueError(f"invalid bind: {bind}")
            mounts[parts[1]] = parts[0]
        return mounts

    def get_volume_folders(self) -> dict[str, str]:
        """Return the binds whose local location is a folder."""
        return {dst: src for dst, src in self.get_volumes().items() if os.path.isdir(src)}

    def get_volume_files(self) -> dict[str, str]:
        """Return the binds whose local location exists and is not a folder."""
        return {
            dst: src
            for dst, src in self.get_volumes().items()
            if os.path.exists(src) and not os.path.isdir(src)
        }

    def get_pre_archive_files(self) -> dict[str, bytes]:
        """Return the contents of every single-file pre-archive keyed by target path."""
        files: dict[str, bytes] = {}
        for pre in self.pre_archives:
            try:
                names = tarutil.get_target_file_names(pre.path, pre.archive)
            except (tarfile.TarError, OSError) as err:
                log.error("error determining pre archive filenames: %s", err)
                continue
            if len(names) != 1:
                continue
            out = io.BytesIO()
            try:
                tarutil.unpack_file(pre.path, names[0], pre.archive, out)
            except (tarfile.TarError, OSError) as err:
                log.error("error extracting %s from archive: %s", names[0], err)
                continue
            files[names[0]] = out.getvalue()
        return files

    def has_volumes(self) -> bool:
        """Return True if any binds are configured."""
        return bool(self.binds)

    def add_stop_channel(self, stop: Signal) -> None:
        """Register a signal to be set by signal_stop."""
        self.stop_channels.append(stop)

    def signal_stop(self) -> None:
        """Set and forget all stop signals."""
        for stop in self.stop_channels:
            stop.set()
        self.stop_channels = []

    def add_attach_channel(self, stop: Signal) -> None:
        """Register a signal to be set by signal_detach."""
        self.attach_channels.append(stop)

    def signal_detach(self) -> None:
        """Set and forget all attach signals."""
        for stop in self.attach_channels:
            stop.set()
        self.attach_channels = []

    def connect_network(self, id: str) -> None:
        """Attach a network to the container."""
        self.networks.add(id)

    def disconnect_network(self, id: str) -> None:
        """Detach a network; the bridge network cannot be detached."""
        if id == "bridge":
            raise ValueError("can't delete bridge network")
        if id not in self.networks:
            raise KeyError(f"container is not connected to network {id}")
        self.networks.discard(id)

    def match(self, typ: str, key: str, val: str) -> bool:
        """Match the container against a filter of the given type."""
        if typ == "name":
            return self.name == key
        if typ != "label":
            return True
        return key in self.labels and self.labels[key] == val

    def state_string(self) -> str:
        """Return a word that describes the state."""
        if self.running:
            return "Up"
        if self.stopped or self.killed or self.failed:
            return "Dead"
        if self.completed:
            return "Exited"
        return "Created"

    def status_string(self) -> str:
        """Return a word that describes the health."""
        return "healthy" if self.running else "unhealthy"