"""A reverse TCP proxy from a local port to a remote address."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

log = logging.getLogger(__name__)

DIAL_TIMEOUT = 1.0
ACCEPT_POLL = 0.1
_CHUNK = 65536


def _pipe(src: socket.socket, dst: socket.socket) -> None:
    """Copy data from src to dst until either side closes."""
    while True:
        try:
            data = src.recv(_CHUNK)
            if not data:
                return
            dst.sendall(data)
        except OSError:
            return


def _close(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    sock.close()


class ReverseProxy:
    """Listens on 0.0.0.0 at the local port and relays to the remote address."""

    def __init__(self, local_port: int, remote_ip: str, remote_port: int) -> None:
        self.local_port = local_port
        self.remote_ip = remote_ip
        self.remote_port = remote_port
        self._listener: Optional[socket.socket] = None
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        """The port actually listened on."""
        if self._listener is not None:
            return self._listener.getsockname()[1]
        return self.local_port

    @property
    def _remote(self) -> str:
        return f"{self.remote_ip}:{self.remote_port}"

    def start(self) -> None:
        """Open the listener and serve connections in a background thread."""
        log.info("start reverse-proxy 0.0.0.0:%d->%s", self.local_port, self._remote)
        listener = socket.create_server(("0.0.0.0", self.local_port))
        listener.settimeout(ACCEPT_POLL)
        self._listener = listener
        self._stopped.clear()
        self._thread = threading.Thread(target=self._serve, args=(listener,), daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Close the listener; connections in flight finish on their own."""
        self._stopped.set()
        if self._listener is not None:
            self._listener.close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        log.info("stopped reverse-proxy 0.0.0.0:%d->%s", self.local_port, self._remote)

    def __enter__(self) -> "ReverseProxy":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _serve(self, listener: socket.socket) -> None:
        while not self._stopped.is_set():
            try:
                conn, _ = listener.accept()
            except TimeoutError:
                continue
            except OSError as err:
                if self._stopped.is_set():
                    return
                log.warning("error accepting connection: %s", err)
                continue
            conn.settimeout(None)
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn: socket.socket) -> None:
        try:
            remote = socket.create_connection(
                (self.remote_ip, self.remote_port), timeout=DIAL_TIMEOUT
            )
        except OSError as err:
            log.warning("error dialing remote addr: %s", err)
            conn.close()
            return
        remote.settimeout(None)
        upstream = threading.Thread(target=_pipe, args=(conn, remote), daemon=True)
        upstream.start()
        _pipe(remote, conn)
        _close(remote)
        _close(conn)