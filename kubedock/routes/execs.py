"""Exec endpoints of the API."""

from __future__ import annotations

import logging
from typing import Any, BinaryIO

from kubedock.model.container import Container
from kubedock.model.database import NotFoundError
from kubedock.model.records import Exec
from kubedock.routes.base import ApiError, ApiRequest, ApiResponse, BaseRouter
from kubedock.routes.requests import ContainerExecRequest, ExecStartRequest

log = logging.getLogger(__name__)


def _upgrade_header(request: ApiRequest) -> bytes:
    if any(name.lower() == "upgrade" for name in request.headers):
        return (
            b"HTTP/1.1 101 UPGRADED\r\n"
            b"Content-Type: application/vnd.docker.raw-stream\r\n"
            b"Connection: Upgrade\r\n"
            b"Upgrade: tcp\r\n\r\n"
        )
    return b"HTTP/1.1 200 OK\r\nContent-Type: application/vnd.docker.raw-stream\r\n\r\n"


class ExecRoutes(BaseRouter):
    """Handlers for creating, running and inspecting execs."""

    def _find_exec_container(self, id: str) -> Container:
        try:
            return self.db.get_container(id)
        except NotFoundError as err:
            raise ApiError(404, str(err)) from err

    def _find_exec(self, id: str) -> Exec:
        try:
            return self.db.get_exec(id)
        except NotFoundError as err:
            raise ApiError(404, str(err)) from err

    @staticmethod
    def _decode(request: ApiRequest, kind: Any) -> Any:
        try:
            return kind.from_json(request.json())
        except ValueError as err:
            raise ApiError(500, str(err)) from err

    def container_exec(self, request: ApiRequest) -> ApiResponse:
        """Create an exec instance; POST /containers/{id}/exec."""
        spec = self._decode(request, ContainerExecRequest)
        if spec.env is not None:
            raise ApiError(400, "env variables not supported")
        if spec.stdin:
            raise ApiError(400, "stdin not supported")
        if spec.tty:
            raise ApiError(400, "tty not supported")

        id = request.params.get("id", "")
        self._find_exec_container(id)
        exc = Exec(container_id=id, cmd=list(spec.cmd), stderr=spec.stderr, stdout=spec.stdout)
        self.db.save_exec(exc)
        return ApiResponse(201, {"Id": exc.id})

    def exec_start(self, request: ApiRequest) -> ApiResponse:
        """Run an exec instance, streaming its output; POST /exec/{id}/start."""
        spec = self._decode(request, ExecStartRequest)
        if spec.detach:
            raise ApiError(400, "detached mode not supported")

        exc = self._find_exec(request.params.get("id", ""))
        container = self._find_exec_container(exc.container_id)

        def stream(out: BinaryIO) -> None:
            out.write(_upgrade_header(request))
            try:
                code = self.backend.exec_container(container, exc, out)
            except Exception as err:  # noqa: BLE001 - the connection is already taken over
                log.error("error during exec: %s", err)
                return
            exc.exit_code = code
            self.db.save_exec(exc)

        return ApiResponse(200, stream=stream)

    def exec_info(self, request: ApiRequest) -> ApiResponse:
        """Return details of an exec instance; GET /exec/{id}/json."""
        id = request.params.get("id", "")
        exc = self._find_exec(id)
        return ApiResponse(
            200,
            {
                "ID": id,
                "Running": False,
                "ExitCode": exc.exit_code,
                "ProcessConfig": {"arguments": exc.cmd, "entrypoint": ""},
            },
        )