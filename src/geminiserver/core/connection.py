"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket for the lifetime of one Gemini request.

=============================================================================
TCP (AND TLS) IS A BYTE STREAM
=============================================================================

The client sends one line, but nothing guarantees it arrives in one
recv():

    Client sends:   gemini://localhost/docs/intro.gmi\\r\\n

    Server might receive:
        recv() → "gemini://loc"
        recv() → "alhost/docs/intro.gmi\\r\\n"

So we keep reading until we see the line feed, with two limits:

    - SIZE: at most max_request_size bytes plus CRLF, so a client can't
      make us buffer forever
    - TIME: one deadline for the whole line, so a client that goes
      silent or trickles bytes can't hold a worker forever

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► HANDSHAKE ──► AWAITING_REQUEST ──► PARSING ──► RESOLVING
                │                │                │            │
                │                │                ▼            ▼
                │                │             BUILDING ◄──────┘
                │                │                │
                │                │                ▼
                │                │             WRITING
                │                │                │
                ▼                ▼                ▼
              CLOSED ◄───────────┴────────────────┘

Every path ends in CLOSED: one connection, one request, no keep-alive.
A failure at any stage short-circuits to BUILDING a failure response.

=============================================================================
"""

import logging
import socket
import ssl
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..gemini.errors import MalformedRequest


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"                            # Just accepted
    HANDSHAKE = "handshake"                # TLS handshake in progress
    AWAITING_REQUEST = "awaiting_request"  # Reading the request line
    PARSING = "parsing"                    # Validating the URL
    RESOLVING = "resolving"                # Looking up the resource
    BUILDING = "building"                  # Composing the response
    WRITING = "writing"                    # Sending the response
    CLOSED = "closed"                      # Socket released


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket (an SSLSocket after start_tls()).
        address: Client's (ip, port) tuple.
        id: Short unique identifier for log correlation.
        state: Current state, see the module docstring.
        created_at: Accept timestamp.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    # Configuration (passed from ServerConfig)
    buffer_size: int = 4096
    timeout: Optional[float] = 10.0
    max_request_size: int = 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    @property
    def buffered(self) -> bytes:
        """Everything received so far, for logging a rejected request."""
        return self._buffer

    # =========================================================================
    # TLS
    # =========================================================================

    def start_tls(self, context: ssl.SSLContext) -> None:
        """
        Run the server side of the TLS handshake.

        Done in the worker thread rather than in accept(): a client that
        stalls mid-handshake only blocks its own worker, up to the timeout.

        Raises:
            ssl.SSLError: Handshake failed (bad client, wrong protocol).
            TimeoutError: Handshake didn't finish within the timeout.
            OSError: Connection dropped.
        """
        self.state = ConnectionState.HANDSHAKE
        self.socket = context.wrap_socket(self.socket, server_side=True)

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read the request line.

        Accumulates data until a line feed is seen. Anything after the
        line feed is ignored: there's exactly one request per connection.

        Returns:
            The request line including its line ending, whatever arrived
            before EOF if the client closed without a line ending, or
            None if the client closed without sending anything.

        Raises:
            MalformedRequest: The line exceeds the size limit.
            TimeoutError: The line wasn't complete within ``timeout`` seconds.
        """
        self.state = ConnectionState.AWAITING_REQUEST

        # URL + CRLF
        limit = self.max_request_size + 2

        # One deadline for the whole line, so trickling a byte at a time
        # doesn't reset the clock on every recv()
        deadline = None if self.timeout is None else time.monotonic() + self.timeout

        try:
            while b"\n" not in self._buffer:
                if len(self._buffer) > limit:
                    raise MalformedRequest(f"Request line longer than {limit} bytes")

                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise TimeoutError("Request read timeout")
                    self.socket.settimeout(remaining)

                chunk = self._recv()
                if not chunk:
                    break  # EOF
                self._buffer += chunk

        except socket.timeout:
            raise TimeoutError("Request read timeout")

        if not self._buffer:
            return None

        line_end = self._buffer.find(b"\n")
        if line_end == -1:
            return self._buffer

        if line_end + 1 > limit:
            raise MalformedRequest(f"Request line longer than {limit} bytes")

        return self._buffer[:line_end + 1]

    def _recv(self) -> bytes:
        """socket.recv() that maps abrupt disconnects to EOF."""
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError, ssl.SSLEOFError, ssl.SSLZeroReturnError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send the whole response with sendall().

        Returns:
            True if sent, False if the connection was lost. A failed
            write is not retried.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            # OSError covers resets, broken pipes, timeouts and SSL errors
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection.

        For TLS we first send close_notify (unwrap), so the client can
        tell a complete body from a truncated one. Then FIN, then release
        the file descriptor. Errors are ignored: the peer may be gone.
        """
        if self.state == ConnectionState.CLOSED:
            return

        sock = self.socket
        try:
            sock.settimeout(0.5)
        except OSError:
            pass

        if isinstance(sock, ssl.SSLSocket):
            try:
                sock = sock.unwrap()
            except (OSError, ValueError):
                pass  # Peer went away without close_notify

        try:
            sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            sock.close()
        except OSError:
            pass
        if sock is not self.socket:
            try:
                self.socket.close()
            except OSError:
                pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
