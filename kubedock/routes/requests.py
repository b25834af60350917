"""Request bodies accepted by the API endpoints."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

JsonInput = Union[str, bytes, bytearray, Mapping[str, Any], None]


def _decode(data: JsonInput) -> Mapping[str, Any]:
    """Return data as a JSON object; raise ValueError if it is not one."""
    if isinstance(data, (str, bytes, bytearray)):
        try:
            data = json.loads(data)
        except (ValueError, UnicodeDecodeError) as err:
            raise ValueError(f"invalid json: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    return data


def _field(data: Mapping[str, Any], key: str) -> Any:
    """Look up a key, falling back to a case-insensitive match."""
    if key in data:
        return data[key]
    lowered = key.lower()
    for name, value in data.items():
        if isinstance(name, str) and name.lower() == lowered:
            return value
    return None


def _mismatch(key: str, kind: str) -> ValueError:
    return ValueError(f"field {key}: expected {kind}")


def _str(data: Mapping[str, Any], key: str) -> str:
    value = _field(data, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _mismatch(key, "a string")
    return value


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = _field(data, key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise _mismatch(key, "a boolean")
    return value


def _int(data: Mapping[str, Any], key: str) -> int:
    value = _field(data, key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise _mismatch(key, "an integer")
    return value


def _str_list(data: Mapping[str, Any], key: str) -> Optional[list[str]]:
    value = _field(data, key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise _mismatch(key, "a list of strings")
    return list(value)


def _object(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = _field(data, key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise _mismatch(key, "an object")
    return dict(value)


def _str_map(data: Mapping[str, Any], key: str) -> dict[str, str]:
    value = _object(data, key)
    if not all(isinstance(v, str) for v in value.values()):
        raise _mismatch(key, "an object of strings")
    return value


@dataclass
class EndpointConfig:
    """Network endpoint settings of a container."""

    aliases: list[str] = field(default_factory=list)

    @classmethod
    def _from_mapping(cls, data: Mapping[str, Any]) -> "EndpointConfig":
        return cls(aliases=_str_list(data, "Aliases") or [])


@dataclass
class HostConfig:
    """Host-side settings: binds, port bindings and resource limits.

    Port bindings map a container port spec to the list of host ports.
    """

    binds: list[str] = field(default_factory=list)
    port_bindings: dict[str, list[str]] = field(default_factory=dict)
    memory: int = 0
    nano_cpus: int = 0

    @classmethod
    def _from_mapping(cls, data: Mapping[str, Any]) -> "HostConfig":
        bindings: dict[str, list[str]] = {}
        for port, binds in _object(data, "PortBindings").items():
            if binds is None:
                bindings[port] = []
                continue
            if not isinstance(binds, list):
                raise _mismatch("PortBindings", "lists of bindings")
            bindings[port] = [_str(_decode(b), "HostPort") for b in binds]
        return cls(
            binds=_str_list(data, "Binds") or [],
            port_bindings=bindings,
            memory=_int(data, "Memory"),
            nano_cpus=_int(data, "NanoCpus"),
        )


@dataclass
class ContainerCreateRequest:
    """Body of the container create endpoint."""

    name: str = ""
    image: str = ""
    exposed_ports: dict[str, Any] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    entrypoint: list[str] = field(default_factory=list)
    cmd: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    user: str = ""
    host_config: HostConfig = field(default_factory=HostConfig)
    endpoints_config: dict[str, EndpointConfig] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: JsonInput) -> "ContainerCreateRequest":
        """Build the request from a JSON document or decoded object."""
        obj = _decode(data)
        networking = _decode(_object(obj, "NetworkingConfig"))
        endpoints = {
            name: EndpointConfig._from_mapping(_decode(endp))
            for name, endp in _object(networking, "EndpointsConfig").items()
        }
        return cls(
            name=_str(obj, "name"),
            image=_str(obj, "image"),
            exposed_ports=_object(obj, "ExposedPorts"),
            labels=_str_map(obj, "Labels"),
            entrypoint=_str_list(obj, "Entrypoint") or [],
            cmd=_str_list(obj, "Cmd") or [],
            env=_str_list(obj, "Env") or [],
            user=_str(obj, "User"),
            host_config=HostConfig._from_mapping(_object(obj, "HostConfig")),
            endpoints_config=endpoints,
        )


@dataclass
class ContainerExecRequest:
    """Body of the container exec endpoint; env is None when not given."""

    cmd: list[str] = field(default_factory=list)
    stdin: bool = False
    stdout: bool = False
    stderr: bool = False
    tty: bool = False
    env: Optional[list[str]] = None

    @classmethod
    def from_json(cls, data: JsonInput) -> "ContainerExecRequest":
        """Build the request from a JSON document or decoded object."""
        obj = _decode(data)
        return cls(
            cmd=_str_list(obj, "Cmd") or [],
            stdin=_bool(obj, "AttachStdin"),
            stdout=_bool(obj, "AttachStdout"),
            stderr=_bool(obj, "AttachStderr"),
            tty=_bool(obj, "Tty"),
            env=_str_list(obj, "Env"),
        )


@dataclass
class ExecStartRequest:
    """Body of the exec start endpoint."""

    detach: bool = False
    tty: bool = False

    @classmethod
    def from_json(cls, data: JsonInput) -> "ExecStartRequest":
        """Build the request from a JSON document or decoded object."""
        obj = _decode(data)
        return cls(detach=_bool(obj, "Detach"), tty=_bool(obj, "Tty"))


@dataclass
class NetworkCreateRequest:
    """Body of the network create endpoint."""

    name: str = ""

    @classmethod
    def from_json(cls, data: JsonInput) -> "NetworkCreateRequest":
        """Build the request from a JSON document or decoded object."""
        return cls(name=_str(_decode(data), "Name"))


@dataclass
class NetworkConnectRequest:
    """Body of the network connect endpoint."""

    container: str = ""
    endpoint_config: EndpointConfig = field(default_factory=EndpointConfig)

    @classmethod
    def from_json(cls, data: JsonInput) -> "NetworkConnectRequest":
        """Build the request from a JSON document or decoded object."""
        obj = _decode(data)
        return cls(
            container=_str(obj, "container"),
            endpoint_config=EndpointConfig._from_mapping(_object(obj, "EndpointConfig")),
        )


@dataclass
class NetworkDisconnectRequest:
    """Body of the network disconnect endpoint."""

    container: str = ""

    @classmethod
    def from_json(cls, data: JsonInput) -> "NetworkDisconnectRequest":
        """Build the request from a JSON document or decoded object."""
        return cls(container=_str(_decode(data), "container"))