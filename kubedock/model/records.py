"""Plain records stored in the in-memory database."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

PREDEFINED_NETWORKS = frozenset({"bridge", "null", "host"})


@dataclass
class Exec:
    """The details of a command executed in a container."""

    id: str = ""
    container_id: str = ""
    cmd: list[str] = field(default_factory=list)
    stdout: bool = False
    stderr: bool = False
    exit_code: int = 0
    created: datetime = ZERO_TIME


@dataclass
class Image:
    """The details of an image."""

    id: str = ""
    short_id: str = ""
    name: str = ""
    exposed_ports: dict[str, Any] = field(default_factory=dict)
    created: datetime = ZERO_TIME


@dataclass
class Network:
    """The details of a network."""

    id: str = ""
    short_id: str = ""
    name: str = ""
    created: datetime = ZERO_TIME

    def is_predefined(self) -> bool:
        """Return True for the system networks bridge, null and host."""
        return self.name in PREDEFINED_NETWORKS