"""An in-memory store for containers, execs, networks and images."""

from __future__ import annotations

import threading
from collections.abc import Collection
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from kubedock import stringid
from kubedock.model.container import Container
from kubedock.model.records import Exec, Image, Network

_R = TypeVar("_R")

_CONTAINER = "container"
_EXEC = "exec"
_NETWORK = "network"
_IMAGE = "image"

DEFAULT_NETWORKS = ("null", "host", "bridge")


class NotFoundError(LookupError):
    """Raised when a requested record does not exist."""


class Database:
    """Thread-safe in-memory tables of records keyed by their identifier.

    Records are stored by reference, so changes to a retrieved record are
    visible to later lookups. Listings are ordered by identifier.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: dict[str, dict[str, Any]] = {
            _CONTAINER: {},
            _EXEC: {},
            _NETWORK: {},
            _IMAGE: {},
        }
        for name in DEFAULT_NETWORKS:
            self.save_network(Network(name=name))

    # generic helpers

    def _all(self, table: str) -> list[Any]:
        with self._lock:
            rows = self._tables[table]
            return [rows[key] for key in sorted(rows)]

    def _first(self, table: str, attr: str, value: str) -> Optional[Any]:
        if not value:
            return None
        with self._lock:
            if attr == "id":
                return self._tables[table].get(value)
            return next(
                (rec for rec in self._all(table) if getattr(rec, attr) == value),
                None,
            )

    def _lookup(self, table: str, id: str) -> Optional[Any]:
        attr = "short_id" if stringid.is_short_id(id) else "id"
        return self._first(table, attr, id)

    def _save(self, table: str, rec: Any) -> None:
        with self._lock:
            self._tables[table][rec.id] = rec

    def _delete(self, table: str, rec: Any) -> None:
        with self._lock:
            if self._tables[table].pop(rec.id, None) is None:
                raise NotFoundError(f"{table} {rec.id} not found")

    @staticmethod
    def _assign_ids(rec: Any, short: bool = True) -> None:
        if rec.id:
            return
        rec.id = stringid.generate_random_id()
        if short:
            rec.short_id = stringid.truncate_id(rec.id)
        rec.created = datetime.now(timezone.utc)

    @staticmethod
    def _found(rec: Optional[_R], kind: str, key: str) -> _R:
        if rec is None:
            raise NotFoundError(f"{kind} {key} not found")
        return rec

    # containers

    def get_container(self, id: str) -> Container:
        """Return the container with the given id, short id or name."""
        rec = self._lookup(_CONTAINER, id)
        if rec is None:
            rec = self._first(_CONTAINER, "name", id)
        return self._found(rec, "container", id)

    def get_container_by_name(self, name: str) -> Container:
        """Return the container with the given name."""
        return self._found(self._first(_CONTAINER, "name", name), "container", name)

    def get_container_by_name_or_id(self, id: str) -> Container:
        """Return the container matching the given id or name."""
        try:
            return self.get_container(id)
        except NotFoundError:
            return self.get_container_by_name(id)

    def get_containers(self) -> list[Container]:
        """Return all stored containers."""
        return self._all(_CONTAINER)

    def save_container(self, container: Container) -> None:
        """Store the container, assigning ids and creation time if it is new."""
        self._assign_ids(container)
        self._save(_CONTAINER, container)

    def delete_container(self, container: Container) -> None:
        """Remove the container."""
        self._delete(_CONTAINER, container)

    # execs

    def get_exec(self, id: str) -> Exec:
        """Return the exec with the given id."""
        return self._found(self._first(_EXEC, "id", id), "exec", id)

    def get_execs(self) -> list[Exec]:
        """Return all stored execs."""
        return self._all(_EXEC)

    def save_exec(self, exc: Exec) -> None:
        """Store the exec, assigning an id and creation time if it is new."""
        self._assign_ids(exc, short=False)
        self._save(_EXEC, exc)

    def delete_exec(self, exc: Exec) -> None:
        """Remove the exec."""
        self._delete(_EXEC, exc)

    # networks

    def get_network(self, id: str) -> Network:
        """Return the network with the given id or short id."""
        return self._found(self._lookup(_NETWORK, id), "network", id)

    def get_network_by_name(self, name: str) -> Network:
        """Return the network with the given name."""
        return self._found(self._first(_NETWORK, "name", name), "network", name)

    def get_network_by_name_or_id(self, id: str) -> Network:
        """Return the network matching the given id or name."""
        try:
            return self.get_network(id)
        except NotFoundError:
            return self.get_network_by_name(id)

    def get_networks(self) -> list[Network]:
        """Return all stored networks."""
        return self._all(_NETWORK)

    def get_networks_by_ids(self, ids: Collection[str]) -> list[Network]:
        """Return the networks whose id is in ids."""
        return [netw for netw in self._all(_NETWORK) if netw.id in ids]

    def save_network(self, network: Network) -> None:
        """Store the network, assigning ids and creation time if it is new."""
        self._assign_ids(network)
        self._save(_NETWORK, network)

    def delete_network(self, network: Network) -> None:
        """Remove the network."""
        self._delete(_NETWORK, network)

    # images

    def get_image(self, id: str) -> Image:
        """Return the image with the given id or short id."""
        return self._found(self._lookup(_IMAGE, id), "image", id)

    def get_image_by_name(self, name: str) -> Image:
        """Return the image with the given name."""
        return self._found(self._first(_IMAGE, "name", name), "image", name)

    def get_image_by_name_or_id(self, id: str) -> Image:
        """Return the image matching the given id or name."""
        try:
            return self.get_image(id)
        except NotFoundError:
            return self.get_image_by_name(id)

    def get_images(self) -> list[Image]:
        """Return all stored images."""
        return self._all(_IMAGE)

    def save_image(self, image: Image) -> None:
        """Store the image, assigning ids and creation time if it is new."""
        self._assign_ids(image)
        self._save(_IMAGE, image)

    def delete_image(self, image: Image) -> None:
        """Remove the image."""
        self._delete(_IMAGE, image)


_default: Optional[Database] = None
_default_lock = threading.Lock()


def default_database() -> Database:
    """Return the shared database, creating it on first use."""
    global _default
    with _default_lock:
        if _default is None:
            _default = Database()
        return _default