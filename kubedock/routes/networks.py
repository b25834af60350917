"""Network endpoints of the API."""

from __future__ import annotations

import logging
from typing import Any

from kubedock.model.container import Container
from kubedock.model.database import NotFoundError
from kubedock.model.records import Network
from kubedock.routes.base import ApiError, ApiRequest, ApiResponse, BaseRouter
from kubedock.routes.requests import (
    NetworkConnectRequest,
    NetworkCreateRequest,
    NetworkDisconnectRequest,
)

log = logging.getLogger(__name__)


class NetworkRoutes(BaseRouter):
    """Handlers for the /networks endpoints."""

    def _find_network(self, id: str) -> Network:
        try:
            return self.db.get_network_by_name_or_id(id)
        except NotFoundError as err:
            raise ApiError(404, str(err)) from err

    def _find_container(self, id: str) -> Container:
        try:
            return self.db.get_container(id)
        except NotFoundError as err:
            raise ApiError(404, str(err)) from err

    def _describe(self, network: Network) -> dict[str, Any]:
        return {
            "Name": network.name,
            "ID": network.id,
            "Driver": "bridge",
            "Scope": "local",
            "Attachable": True,
            "Containers": self.containers_in_network(network),
        }

    def networks_list(self, request: ApiRequest) -> ApiResponse:
        """List all networks; GET /networks."""
        return ApiResponse(200, [self._describe(netw) for netw in self.db.get_networks()])

    def networks_info(self, request: ApiRequest) -> ApiResponse:
        """Inspect a network; GET /networks/{id}."""
        network = self._find_network(request.params.get("id", ""))
        return ApiResponse(200, self._describe(network))

    def networks_create(self, request: ApiRequest) -> ApiResponse:
        """Create a network; POST /networks/create."""
        try:
            spec = NetworkCreateRequest.from_json(request.json())
        except ValueError as err:
            raise ApiError(500, str(err)) from err
        network = Network(name=spec.name)
        self.db.save_network(network)
        return ApiResponse(201, {"Id": network.id})

    def networks_delete(self, request: ApiRequest) -> ApiResponse:
        """Remove a network; DELETE /networks/{id}."""
        network = self._find_network(request.params.get("id", ""))
        if network.is_predefined():
            raise ApiError(
                403, f"{network.name} is a pre-defined network and cannot be removed"
            )
        if self.containers_in_network(network):
            raise ApiError(403, "cannot delete network, containers attachd")
        try:
            self.db.delete_network(network)
        except NotFoundError as err:
            raise ApiError(404, str(err)) from err
        return ApiResponse(204)

    def networks_connect(self, request: ApiRequest) -> ApiResponse:
        """Connect a container to a network; POST /networks/{id}/connect."""
        try:
            spec = NetworkConnectRequest.from_json(request.json())
        except ValueError as err:
            raise ApiError(500, str(err)) from err
        network = self._find_network(request.params.get("id", ""))
        container = self._find_container(spec.container)

        container.connect_network(network.id)
        before = len(container.network_aliases)
        self.add_network_aliases(container, spec.endpoint_config)
        if container.running and before != len(container.network_aliases):
            log.warning(
                "adding networkaliases to a running container, will not create new services..."
            )
        self.db.save_container(container)
        return ApiResponse(201, {"ID": network.id})

    def networks_disconnect(self, request: ApiRequest) -> ApiResponse:
        """Disconnect a container from a network; POST /networks/{id}/disconnect."""
        try:
            spec = NetworkDisconnectRequest.from_json(request.json())
        except ValueError as err:
            raise ApiError(500, str(err)) from err
        id = request.params.get("id", "")
        self._find_network(id)
        container = self._find_container(spec.container)
        try:
            container.disconnect_network(id)
        except Exception as err:  # noqa: BLE001 - any refusal is answered as not found
            raise ApiError(404, str(err)) from err
        self.db.save_container(container)
        return ApiResponse(204)

    def networks_prune(self, request: ApiRequest) -> ApiResponse:
        """Delete networks that are unused; POST /networks/prune."""
        deleted: list[str] = []
        for network in self.db.get_networks():
            if network.is_predefined() or self.containers_in_network(network):
                continue
            try:
                self.db.delete_network(network)
            except NotFoundError as err:
                raise ApiError(404, str(err)) from err
            deleted.append(network.name)
        return ApiResponse(201, {"NetworksDeleted": deleted})

    def containers_in_network(self, network: Network) -> dict[str, dict[str, str]]:
        """Return the containers attached to the network, keyed by container id."""
        return {
            container.id: {"Name": container.name}
            for container in self.db.get_containers()
            if network.id in (container.networks or {})
        }