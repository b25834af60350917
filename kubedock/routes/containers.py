"""Container endpoints of the API."""

from __future__ import annotations

import logging
import re
import threading
import time
from datetime import datetime, timezone
from typing import Any, BinaryIO

from kubedock.filter import Filter, FilterError
from kubedock.model.container import (
    LABEL_DEPLOY_AS_JOB,
    LABEL_PULL_POLICY,
    LABEL_REQUEST_CPU,
    LABEL_REQUEST_MEMORY,
    Container,
)
from kubedock.model.database import NotFoundError
from kubedock.routes.base import LOG_LINES, ApiError, ApiRequest, ApiResponse, BaseRouter
from kubedock.routes.requests import ContainerCreateRequest

log = logging.getLogger(__name__)

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


def _parse_bool(text: str) -> bool:
    """Return True for the usual spellings of true; anything else is False."""
    return text in _TRUE


def _parse_int(text: str) -> int:
    """Return the integer in text, or 0 if it is not one."""
    return int(text) if _INT_PATTERN.fullmatch(text) else 0


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}Z"
    )


def _unix(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def _write_upgrade(request: ApiRequest, out: BinaryIO) -> None:
    """Write the raw-stream response header on a taken-over connection."""
    if any(name.lower() == "upgrade" for name in request.headers):
        out.write(
            b"HTTP/1.1 101 UPGRADED\r\n"
            b"Content-Type: application/vnd.docker.raw-stream\r\n"
            b"Connection: Upgrade\r\n"
            b"Upgrade: tcp\r\n"
        )
    else:
        out.write(b"HTTP/1.1 200 OK\r\nContent-Type: application/vnd.docker.raw-stream\r\n")
    out.write(b"\r\n")


class ContainerRoutes(BaseRouter):
    """Handlers for the /containers endpoints."""

    restart_delay = 1.0
    wait_interval = 1.0

    def _get_container(self, id: str) -> Container:
        try:
            return self.db.get_container(id)
        except NotFoundError as err:
            raise ApiError(404, str(err)) from err

    def _start(self, container: Container) -> None:
        try:
            self.start_container(container)
        except ApiError:
            raise
        except Exception as err:
            raise ApiError(500, str(err)) from err

    def _delete_deployment(self, container: Container) -> None:
        try:
            self.backend.delete_container(container)
        except Exception as err:  # noqa: BLE001 - deletion is best effort
            log.warning("error while deleting k8s container: %s", err)

    def container_create(self, request: ApiRequest) -> ApiResponse:
        """Create a container record; POST /containers/create."""
        try:
            spec = ContainerCreateRequest.from_json(request.json())
        except ValueError as err:
            raise ApiError(500, str(err)) from err

        name = spec.name or request.query.get("name", "")
        labels = dict(spec.labels)
        user = spec.user
        cfg = self.config
        if not user and cfg.runas_user:
            user = cfg.runas_user
        if LABEL_REQUEST_CPU not in labels and cfg.request_cpu:
            labels[LABEL_REQUEST_CPU] = cfg.request_cpu
        if LABEL_REQUEST_MEMORY not in labels and cfg.request_memory:
            labels[LABEL_REQUEST_MEMORY] = cfg.request_memory
        if LABEL_PULL_POLICY not in labels and cfg.pull_policy:
            labels[LABEL_PULL_POLICY] = cfg.pull_policy
        if LABEL_DEPLOY_AS_JOB not in labels and cfg.deploy_as_job:
            labels[LABEL_DEPLOY_AS_JOB] = "true"
        if spec.host_config.memory:
            labels[LABEL_REQUEST_MEMORY] = str(spec.host_config.memory)
        if spec.host_config.nano_cpus:
            labels[LABEL_REQUEST_CPU] = f"{spec.host_config.nano_cpus}n"

        container = Container(
            name=name,
            image=spec.image,
            entrypoint=list(spec.entrypoint),
            user=user,
            cmd=list(spec.cmd),
            env=list(spec.env),
            exposed_ports=dict(spec.exposed_ports),
            labels=labels,
            binds=list(spec.host_config.binds),
        )

        try:
            image = self.db.get_image_by_name_or_id(spec.image)
        except NotFoundError as err:
            log.warning("unable to fetch image details: %s", err)
        else:
            for port in image.exposed_ports:
                container.image_ports[port] = port

        for dst, sources in spec.host_config.port_bindings.items():
            for src in sources:
                try:
                    container.add_host_port(src, dst)
                except ValueError as err:
                    raise ApiError(500, str(err)) from err

        for endpoint in spec.endpoints_config.values():
            self.add_network_aliases(container, endpoint)

        try:
            bridge = self.db.get_network_by_name("bridge")
        except NotFoundError as err:
            raise ApiError(500, str(err)) from err
        container.connect_network(bridge.id)

        self.db.save_container(container)
        return ApiResponse(201, {"Id": container.id})

    def container_start(self, request: ApiRequest) -> ApiResponse:
        """Start a container; POST /containers/{id}/start."""
        id = request.params.get("id", "")
        container = self._get_container(id)
        if not container.running and not container.completed:
            self._start(container)
        else:
            log.warning("container %s already running", id)
        return ApiResponse(204)

    def container_restart(self, request: ApiRequest) -> ApiResponse:
        """Restart a container; POST /containers/{id}/restart."""
        container = self._get_container(request.params.get("id", ""))
        delay = _parse_int(request.query.get("t", ""))
        if delay > 0:
            time.sleep(delay)

        self._delete_deployment(container)
        container.signal_detach()
        container.signal_stop()
        container.running = False
        container.completed = False
        container.stopped = True
        self.db.save_container(container)

        time.sleep(self.restart_delay)
        self._start(container)
        return ApiResponse(204)

    def container_stop(self, request: ApiRequest) -> ApiResponse:
        """Stop a container; POST /containers/{id}/stop."""
        container = self._get_container(request.params.get("id", ""))
        container.signal_detach()
        container.signal_stop()
        if not container.stopped and not container.killed:
            self._delete_deployment(container)
        container.running = False
        container.completed = False
        container.stopped = True
        self.db.save_container(container)
        return ApiResponse(204)

    def container_kill(self, request: ApiRequest) -> ApiResponse:
        """Kill a container; POST /containers/{id}/kill."""
        container = self._get_container(request.params.get("id", ""))
        signal = request.query.get("signal", "").lower()
        if "int" in signal:
            container.signal_detach()
            self.db.save_container(container)
            return ApiResponse(204)

        if signal and not any(word in signal for word in ("kil", "term", "quit")):
            log.info("ignoring signal %s", signal)
            return ApiResponse(204)

        container.signal_detach()
        container.signal_stop()
        if not container.stopped and not container.killed:
            self._delete_deployment(container)
        container.killed = True
        container.running = False
        container.completed = False
        self.db.save_container(container)
        return ApiResponse(204)

    def container_delete(self, request: ApiRequest) -> ApiResponse:
        """Remove a container; DELETE /containers/{id}."""
        container = self._get_container(request.params.get("id", ""))
        container.signal_detach()
        container.signal_stop()
        if not container.stopped and not container.killed:
            self._delete_deployment(container)
        try:
            self.db.delete_container(container)
        except NotFoundError as err:
            raise ApiError(404, str(err)) from err
        return ApiResponse(204)

    def container_attach(self, request: ApiRequest) -> ApiResponse:
        """Attach to the output of a container; POST /containers/{id}/attach."""
        container = self._get_container(request.params.get("id", ""))

        status = 501 if _parse_bool(request.query.get("stdin", "")) else None
        stdout = _parse_bool(request.query.get("stdout", ""))
        stderr = _parse_bool(request.query.get("stderr", ""))
        if not stdout or not stderr:
            log.warning("Ignoring stdout/stderr filtering")

        if not container.running and not container.completed:
            self._start(container)

        if not _parse_bool(request.query.get("stream", "")):
            return ApiResponse(status or 204)

        def stream(out: BinaryIO) -> None:
            _write_upgrade(request, out)
            stop = threading.Event()
            container.add_attach_channel(stop)
            try:
                self.backend.get_logs(container, True, LOG_LINES, stop, out)
            except Exception as err:  # noqa: BLE001 - the connection is already taken over
                log.error("error retrieving logs: %s", err)

        return ApiResponse(status or 200, stream=stream)

    def container_wait(self, request: ApiRequest) -> ApiResponse:
        """Block until the container stops; POST /containers/{id}/wait."""
        id = request.params.get("id", "")
        while True:
            time.sleep(self.wait_interval)
            try:
                container = self.db.get_container(id)
            except NotFoundError:
                break
            self.update_container_status(container)
            if container.stopped or container.killed or container.completed:
                break
        return ApiResponse(200, {"StatusCode": 0})

    def container_info(self, request: ApiRequest) -> ApiResponse:
        """Return details of a container; GET /containers/{id}/json."""
        container = self._get_container(request.params.get("id", ""))
        return ApiResponse(200, self.container_details(container, True))

    def container_list(self, request: ApiRequest) -> ApiResponse:
        """List the containers matching the filters; GET /containers/json."""
        try:
            selection = Filter(request.query.get("filters", ""))
        except FilterError as err:
            log.debug("unsupported filter: %s", err)
            selection = Filter("")
        result = [
            self.container_details(container, False)
            for container in self.db.get_containers()
            if selection.match(container)
        ]
        return ApiResponse(200, result)

    def container_details(self, container: Container, detail: bool) -> dict[str, Any]:
        """Return the inspect (detail) or list representation of a container."""
        networks = {
            netw.name: {"NetworkID": netw.id, "IPAddress": "127.0.0.1"}
            for netw in self.db.get_networks_by_ids(container.networks)
        }
        res: dict[str, Any] = {
            "Id": container.id,
            "Name": "/" + container.name,
            "Image": container.image,
            "Names": self.container_names(container),
            "NetworkSettings": {
                "Networks": networks,
                "Ports": self.network_settings_ports(container),
            },
            "HostConfig": {
                "NetworkMode": "bridge",
                "LogConfig": {"Type": "json-file", "Config": {}},
            },
        }
        if detail:
            self.update_container_status(container)
            res["State"] = {
                "Health": {"Status": container.status_string()},
                "Running": container.running,
                "Status": container.state_string(),
                "Paused": False,
                "Restarting": False,
                "OOMKilled": False,
                "Dead": container.failed,
                "StartedAt": _format_time(container.created),
                "FinishedAt": _format_time(container.finished),
                "ExitCode": 0,
                "Error": "",
            }
            res["Config"] = {
                "Image": container.image,
                "Labels": container.labels,
                "Env": container.env,
                "Cmd": container.cmd,
                "Tty": False,
            }
            res["Created"] = _format_time(container.created)
        else:
            res["Labels"] = container.labels
            res["State"] = container.status_string()
            res["Status"] = container.state_string()
            res["Created"] = _unix(container.created)
            res["Ports"] = self.container_ports(container)
        return res

    def network_settings_ports(self, container: Container) -> dict[str, list[dict[str, str]]]:
        """Return the port section used in container details."""
        if not container.host_ip:
            return {}
        res: dict[str, list[dict[str, str]]] = {}
        for dst, sources in self.available_ports(container).items():
            res[f"{dst}/tcp"] = [
                {"HostIp": container.host_ip, "HostPort": str(src)}
                for src in dict.fromkeys(sources)
            ]
        return res

    def container_ports(self, container: Container) -> list[dict[str, Any]]:
        """Return the port list used in the container listing."""
        if not container.host_ip:
            return []
        res: list[dict[str, Any]] = []
        for dst, sources in self.available_ports(container).items():
            for src in dict.fromkeys(sources):
                entry: dict[str, Any] = {
                    "IP": container.host_ip,
                    "PrivatePort": dst,
                    "Type": "tcp",
                }
                if src > 0:
                    entry["PublicPort"] = src
                res.append(entry)
        return res

    def available_ports(self, container: Container) -> dict[int, list[int]]:
        """Return the host ports available for each container port."""
        if self.config.port_forward or self.config.reverse_proxy:
            mappings = [container.host_ports, container.mapped_ports]
        else:
            mappings = [container.get_service_ports()]
        ports: dict[int, list[int]] = {}
        for mapping in mappings:
            for src, dst in mapping.items():
                if src < 0:
                    continue
                ports.setdefault(dst, []).append(src)
        return ports

    def container_names(self, container: Container) -> list[str]:
        """Return the names that identify the container."""
        names = []
        if container.name:
            names.append("/" + container.name)
        names.append("/" + container.id)
        names.append("/" + container.short_id)
        names.extend(
            "/" + alias for alias in container.network_aliases if alias != container.name
        )
        return names