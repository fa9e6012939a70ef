# Copyright 2026 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.


"""
TCP listener for the ParaStat collector.

CollectorServer binds one listening socket, accepts agent connections and
starts a handler thread per connection. Handler threads are tracked so that
shutdown() can wait for them to drain instead of abandoning them.

There is no limit on concurrent connections; each one costs a thread.
"""

import logging
import socket
import threading
from typing import Optional, Set

from parastat.connection import POLL_INTERVAL_SECONDS, READ_SIZE, format_peer, handle_connection
from parastat.host_table import HostTable

logger = logging.getLogger(__name__)

DEFAULT_BIND_ADDRESS = "0.0.0.0"  # All IPv4 interfaces
LISTEN_BACKLOG = 16
SHUTDOWN_JOIN_TIMEOUT_SECONDS = 2.0


class CollectorServer:
    """
    Accept loop plus supervised per-connection handler threads.

    Typical use::

        server = CollectorServer(port, table, stop_event)
        server.bind()            # OSError here is a fatal startup error
        server.serve_forever()   # returns once stop_event is set
        server.shutdown()
    """

    def __init__(
        self,
        port: int,
        table: HostTable,
        stop_event: Optional[threading.Event] = None,
        bind_address: str = DEFAULT_BIND_ADDRESS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        read_size: int = READ_SIZE,
    ) -> None:
        """
        Initialize the server.

        Args:
            port: TCP port to listen on (0 picks a free port)
            table: Host table updated by the handlers
            stop_event: Shared shutdown event (a new one is created if omitted)
            bind_address: Local address to bind
            poll_interval: Timeout for accept/recv so the stop event is observed
            read_size: Bytes requested per handler read
        """
        self.requested_port = port
        self.table = table
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.bind_address = bind_address
        self.poll_interval = poll_interval
        self.read_size = read_size
        self._listener: Optional[socket.socket] = None
        self._handlers: Set[threading.Thread] = set()
        self._handlers_lock = threading.Lock()
        self._connection_seq = 0

    @property
    def port(self) -> int:
        """The bound port (the requested port before bind())."""
        if self._listener is None:
            return self.requested_port
        return self._listener.getsockname()[1]

    def bind(self) -> None:
        """
        Create, bind and listen on the server socket.

        Raises:
            OSError: If the address cannot be bound or listened on
        """
        family = socket.AF_INET6 if ":" in self.bind_address else socket.AF_INET
        self._listener = socket.create_server(
            (self.bind_address, self.requested_port),
            family=family,
            backlog=LISTEN_BACKLOG,
        )
        self._listener.settimeout(self.poll_interval)
        logger.info("Collector listening on %s:%d", self.bind_address or "*", self.port)

    def serve_forever(self) -> None:
        """Accept connections until the stop event is set or the listener closes."""
        if self._listener is None:
            raise RuntimeError("bind() must be called before serve_forever().")
        while not self.stop_event.is_set():
            try:
                conn, address = self._listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._listener.fileno() == -1:
                    # Listener closed underneath us (shutdown from another thread).
                    break
                logger.warning("Error accepting connection: %s", e)
                # Persistent failures such as EMFILE would otherwise spin.
                self.stop_event.wait(self.poll_interval)
                continue
            self._start_handler(conn, format_peer(address))

    def _start_handler(self, conn: socket.socket, peer: str) -> None:
        """Start and register a handler thread for one accepted connection."""
        self._connection_seq += 1
        thread = threading.Thread(
            target=self._run_handler,
            args=(conn, peer),
            name=f"parastat-conn-{self._connection_seq}",
            daemon=True,
        )
        with self._handlers_lock:
            self._handlers.add(thread)
        try:
            thread.start()
        except RuntimeError as e:
            # Thread creation failed (resource exhaustion); keep accepting.
            logger.warning("Could not start handler for %s: %s", peer, e)
            with self._handlers_lock:
                self._handlers.discard(thread)
            conn.close()

    def _run_handler(self, conn: socket.socket, peer: str) -> None:
        try:
            handle_connection(
                conn,
                peer,
                self.table,
                self.stop_event,
                read_size=self.read_size,
                poll_interval=self.poll_interval,
            )
        finally:
            with self._handlers_lock:
                self._handlers.discard(threading.current_thread())

    def active_connections(self) -> int:
        """Number of handler threads still running."""
        with self._handlers_lock:
            return len(self._handlers)

    def shutdown(self, timeout: float = SHUTDOWN_JOIN_TIMEOUT_SECONDS) -> int:
        """
        Stop accepting, close the listener and wait for handlers to finish.

        Args:
            timeout: Maximum seconds to wait for each handler thread

        Returns:
            Number of handler threads still alive after the wait
        """
        self.stop_event.set()
        if self._listener is not None:
            try:
                self._listener.close()
            except OSError:
                pass
        with self._handlers_lock:
            handlers = list(self._handlers)
        for thread in handlers:
            thread.join(timeout=timeout)
        remaining = sum(1 for thread in handlers if thread.is_alive())
        if remaining:
            logger.warning("%d connection handler(s) did not stop within %.1fs", remaining, timeout)
        return remaining
