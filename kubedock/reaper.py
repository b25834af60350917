"""Periodic removal of lingering containers and execs."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from kubedock.model.database import Database

log = logging.getLogger(__name__)

EXEC_REAP_MAX = timedelta(minutes=5)
KUBERNETES_GRACE = timedelta(minutes=15)
REAP_INTERVAL = 60.0


def _as_timedelta(value: Union[timedelta, float, int]) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


class Reaper:
    """Removes resources that outlived their maximum age.

    The backend must offer ``delete_container(container)`` and
    ``delete_older_than(age)``.
    """

    def __init__(self, db: Database, backend: Any, keep_max: Union[timedelta, float, int]) -> None:
        self.db = db
        self.backend = backend
        self.keep_max = _as_timedelta(keep_max)
        self.exec_reap_max = EXEC_REAP_MAX
        self.interval = REAP_INTERVAL
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start reaping in a background thread at a steady interval."""
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop_event,), name="reaper", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread and wait for it to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self, stop: threading.Event) -> None:
        while not stop.wait(self.interval):
            log.info("start cleaning lingering objects...")
            self.clean()
            log.info("finished cleaning lingering objects...")

    def clean(self) -> None:
        """Run every cleaner, logging rather than raising their errors."""
        cleaners = (
            ("execs", self.clean_execs),
            ("containers", self.clean_containers),
            ("k8s containers", self.clean_containers_kubernetes),
        )
        for what, cleaner in cleaners:
            try:
                cleaner()
            except Exception as err:  # noqa: BLE001 - a cleaner must not stop the loop
                log.error("error cleaning %s: %s", what, err)

    def clean_containers(self) -> None:
        """Delete stored containers older than the configured maximum age."""
        cutoff = datetime.now(timezone.utc) - self.keep_max
        for container in self.db.get_containers():
            if container.created >= cutoff:
                continue
            log.debug("deleting container: %s", container.id)
            try:
                self.backend.delete_container(container)
            except Exception as err:  # noqa: BLE001 - the kubernetes sweep retries later
                log.warning("error deleting deployment: %s", err)
            self.db.delete_container(container)

    def clean_containers_kubernetes(self) -> None:
        """Delete cluster resources that are not tracked locally and are too old."""
        self.backend.delete_older_than(self.keep_max + KUBERNETES_GRACE)

    def clean_execs(self) -> None:
        """Delete execs older than the exec maximum age."""
        cutoff = datetime.now(timezone.utc) - self.exec_reap_max
        for exc in self.db.get_execs():
            if exc.created < cutoff:
                log.debug("deleting exec: %s", exc.id)
                self.db.delete_exec(exc)