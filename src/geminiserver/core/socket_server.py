"""
=============================================================================
TCP LISTENER
=============================================================================

Accepts TCP connections and hands each one to a callback. TLS is NOT done
here: the accept loop only accepts, the handshake happens in a worker.

    ┌───────────────────────┐
    │   Listening Socket    │ ◄── Created once at startup
    │   (0.0.0.0:1965)      │     Never sends/receives data
    └───────────┬───────────┘
                │ accept()
        ┌───────┼───────────────┐
        ▼       ▼               ▼
     Conn 1   Conn 2   ...   Conn N   ──► connection_handler(conn)

=============================================================================
SIGNAL HANDLING FOR GRACEFUL SHUTDOWN
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd, kill) both stop the
accept loop. The server then waits for in-flight connections before
exiting with status 0.

Python only allows signal handlers on the main thread, so when the
server runs on another thread (tests, embedding) signals are left alone
and shutdown() must be called explicitly.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP listener.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown()
    """

    # How often accept() wakes up to check for shutdown
    ACCEPT_POLL_INTERVAL = 0.5

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_bound(self) -> bool:
        return self._socket is not None

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (ip, port). After bind, this is the real port, which
        matters when the config asked for port 0.
        """
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.listen_address, self.config.port)

    def _create_socket(self) -> socket.socket:
        """
        Create the listening socket.

        SO_REUSEADDR: restart without "Address already in use" while old
        connections sit in TIME_WAIT.
        """
        family = socket.AF_INET6 if ":" in self.config.listen_address else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses are written in one sendall(), no point in Nagle delays
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() times out periodically so the loop can notice shutdown
        sock.settimeout(self.ACCEPT_POLL_INTERVAL)
        return sock

    def bind(self) -> None:
        """
        Create, bind and listen. Separate from start() so startup errors
        (port in use, permission denied) surface before the accept loop.

        Raises:
            OSError: If the address can't be bound.
        """
        self._socket = self._create_socket()
        listen_address = self.config.listen_address

        try:
            self._socket.bind((listen_address, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {listen_address}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown(). Binds first if bind() wasn't
        called yet.

        Args:
            connection_handler: Called with each new Connection, on the
                                accept thread. Must not block.
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                timeout=self.config.timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop accepting. Safe to call from any thread, more than once."""
        if self._running:
            logger.info("Shutting down listener...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._ready_event.clear()
        logger.info("Listener stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop runs. Handy in tests."""
        return self._ready_event.wait(timeout)
