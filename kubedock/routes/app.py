"""The complete API router: maps method and path to the endpoint handlers."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import replace
from typing import Optional

from kubedock.model.database import Database
from kubedock.routes.base import ApiError, ApiRequest, ApiResponse, Backend, RouterConfig
from kubedock.routes.containers import ContainerRoutes
from kubedock.routes.execs import ExecRoutes
from kubedock.routes.images import ImageRoutes
from kubedock.routes.networks import NetworkRoutes

log = logging.getLogger(__name__)

Handler = Callable[[ApiRequest], ApiResponse]

_VERSION_PREFIX = re.compile(r"^/v1.[0-9]+")


def strip_version(path: str) -> str:
    """Remove a leading /v1.xx API version from the path."""
    if path.startswith("/v1."):
        return _VERSION_PREFIX.sub("", path, count=1)
    return path


def _compile(pattern: str) -> re.Pattern[str]:
    regex = ""
    for segment in pattern.split("/")[1:]:
        if segment.startswith(":"):
            regex += f"/(?P<{segment[1:]}>[^/]+)"
        elif segment.startswith("*"):
            regex += f"(?P<{segment[1:]}>/.*)"
        else:
            regex += "/" + re.escape(segment)
    return re.compile(regex)


def _not_implemented(request: ApiRequest) -> ApiResponse:
    return ApiResponse(501)


def _no_content(request: ApiRequest) -> ApiResponse:
    return ApiResponse(204)


def _ping(request: ApiRequest) -> ApiResponse:
    return ApiResponse(200, content=b"OK", headers={"Content-Type": "text/plain; charset=utf-8"})


class Router(ContainerRoutes, NetworkRoutes, ImageRoutes, ExecRoutes):
    """All supported endpoints behind a single dispatch entry point."""

    def __init__(
        self,
        backend: Backend,
        config: Optional[RouterConfig] = None,
        db: Optional[Database] = None,
    ) -> None:
        super().__init__(backend, config, db)
        self._static: dict[tuple[str, str], Handler] = {}
        self._dynamic: list[tuple[str, re.Pattern[str], Handler]] = []
        for method, pattern, handler in self._routes():
            if ":" in pattern or "*" in pattern:
                self._dynamic.append((method, _compile(pattern), handler))
            else:
                self._static[(method, pattern)] = handler

    def _routes(self) -> list[tuple[str, str, Handler]]:
        return [
            ("GET", "/_ping", _ping),
            ("HEAD", "/_ping", _ping),
            ("POST", "/containers/create", self.container_create),
            ("POST", "/containers/:id/start", self.container_start),
            ("POST", "/containers/:id/attach", self.container_attach),
            ("POST", "/containers/:id/exec", self.container_exec),
            ("POST", "/containers/:id/stop", self.container_stop),
            ("POST", "/containers/:id/restart", self.container_restart),
            ("POST", "/containers/:id/kill", self.container_kill),
            ("POST", "/containers/:id/wait", self.container_wait),
            ("DELETE", "/containers/:id", self.container_delete),
            ("GET", "/containers/json", self.container_list),
            ("GET", "/containers/:id/json", self.container_info),
            ("POST", "/exec/:id/start", self.exec_start),
            ("GET", "/exec/:id/json", self.exec_info),
            ("POST", "/networks/create", self.networks_create),
            ("POST", "/networks/:id/connect", self.networks_connect),
            ("POST", "/networks/:id/disconnect", self.networks_disconnect),
            ("GET", "/networks", self.networks_list),
            ("GET", "/networks/:id", self.networks_info),
            ("DELETE", "/networks/:id", self.networks_delete),
            ("POST", "/networks/prune", self.networks_prune),
            ("POST", "/images/create", self.image_create),
            ("GET", "/images/json", self.image_list),
            ("GET", "/images/:image/*json", self.image_json),
            ("GET", "/containers/:id/top", _not_implemented),
            ("GET", "/containers/:id/changes", _not_implemented),
            ("GET", "/containers/:id/export", _not_implemented),
            ("GET", "/containers/:id/stats", _not_implemented),
            ("POST", "/containers/:id/resize", _not_implemented),
            ("POST", "/containers/:id/update", _not_implemented),
            ("POST", "/containers/:id/rename", _not_implemented),
            ("POST", "/containers/:id/pause", _not_implemented),
            ("POST", "/containers/:id/unpause", _not_implemented),
            ("GET", "/containers/:id/attach/ws", _not_implemented),
            ("HEAD", "/containers/:id/archive", _not_implemented),
            ("POST", "/containers/prune", _not_implemented),
            ("GET", "/networks/reaper_default", _not_implemented),
            ("POST", "/build", _not_implemented),
            ("POST", "/volumes/prune", _no_content),
        ]

    def _resolve(self, method: str, path: str) -> Optional[tuple[Handler, dict[str, str]]]:
        handler = self._static.get((method, path))
        if handler is not None:
            return handler, {}
        for route_method, regex, handler in self._dynamic:
            if route_method != method:
                continue
            match = regex.fullmatch(path)
            if match is not None:
                return handler, match.groupdict()
        return None

    def dispatch(
        self, method: str, path: str, request: Optional[ApiRequest] = None
    ) -> ApiResponse:
        """Route a call to its handler and turn errors into responses."""
        request = request if request is not None else ApiRequest()
        path = strip_version(path)
        found = self._resolve(method.upper(), path)
        if found is None:
            return ApiResponse(
                404, content=b"404 page not found", headers={"Content-Type": "text/plain"}
            )
        handler, params = found
        call = replace(request, params={**request.params, **params})
        try:
            return handler(call)
        except ApiError as err:
            log.error("error during request[%d]: %s", err.status, err.message)
            return ApiResponse(err.status, {"message": err.message})
        except Exception:  # noqa: BLE001 - a failing handler must not take the server down
            log.exception("recovered from failure handling %s %s", method, path)
            return ApiResponse(500)