"""Filters given as JSON query arguments when listing resources."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol


class FilterError(ValueError):
    """Raised when a filter specification cannot be parsed."""


class Matcher(Protocol):
    """An object that can be tested against a typed key/value filter."""

    def match(self, typ: str, key: str, val: str) -> bool: ...


@dataclass(frozen=True)
class _KeyVal:
    key: str
    value: str
    expected: bool


def _as_mapping_format(data: Any) -> dict[str, dict[str, bool]] | None:
    """Return data in the {"type": {"k=v": bool}} form, or None if it is not."""
    if not isinstance(data, dict):
        return None
    result: dict[str, dict[str, bool]] = {}
    for typ, filters in data.items():
        if filters is None:
            result[typ] = {}
            continue
        if not isinstance(filters, dict):
            return None
        entries: dict[str, bool] = {}
        for spec, flag in filters.items():
            if flag is None:
                flag = False
            if not isinstance(flag, bool):
                return None
            entries[spec] = flag
        result[typ] = entries
    return result


def _as_list_format(data: Any) -> dict[str, dict[str, bool]] | None:
    """Convert the legacy {"type": ["k=v", ...]} form, or None if it is not."""
    if not isinstance(data, dict):
        return None
    result: dict[str, dict[str, bool]] = {}
    for typ, filters in data.items():
        if filters is None:
            filters = []
        if not isinstance(filters, list) or not all(isinstance(f, str) for f in filters):
            return None
        result[typ] = {spec: True for spec in filters}
    return result


def _parse(spec: str) -> dict[str, dict[str, bool]]:
    try:
        data = json.loads(spec)
    except json.JSONDecodeError as err:
        raise FilterError(f"invalid filter: {err}") from err
    if data is None:
        return {}
    for convert in (_as_mapping_format, _as_list_format):
        parsed = convert(data)
        if parsed is not None:
            return parsed
    raise FilterError(f"unsupported filter format: {spec}")


class Filter:
    """A set of typed key/value conditions that must all hold."""

    def __init__(self, spec: str) -> None:
        self._filters: dict[str, list[_KeyVal]] = {}
        request = _parse(spec) if spec else {}
        for typ, entries in request.items():
            items = self._filters.setdefault(typ, [])
            for entry, expected in entries.items():
                fields = entry.split("=")
                value = fields[1] if len(fields) == 2 else ""
                items.append(_KeyVal(fields[0], value, expected))

    def match(self, matcher: Matcher) -> bool:
        """Return True if every condition gives its expected outcome."""
        return all(
            matcher.match(typ, kv.key, kv.value) == kv.expected
            for typ, items in self._filters.items()
            for kv in items
        )