"""
=============================================================================
GEMINI SERVER
=============================================================================

The orchestrator that ties the components together.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    GEMINI SERVER ARCHITECTURE                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │  GeminiServer   │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌────────────────┐      │
    │    │ SocketServer │    │  ThreadPool  │    │ ContentHandler │      │
    │    │  (accept)    │    │ (one task    │    │ (resolve, sniff│      │
    │    │              │    │  per conn)   │    │  list, build)  │      │
    │    └──────────────┘    └──────────────┘    └────────────────┘      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. ACCEPT          SocketServer accepts the TCP connection
    2. QUEUE           Connection submitted to the ThreadPool
    3. HANDSHAKE       Worker runs the TLS handshake (bounded by timeout)
    4. READ            Read one line, up to the line feed
    5. PARSE           RequestParser validates scheme, host, path
    6. RESOLVE/BUILD   ContentHandler produces a GeminiResponse
    7. WRITE           Status line + body, one sendall()
    8. CLOSE           close_notify, FIN, release the socket
    9. LOG             One access log record

A failure at steps 4-6 becomes a failure response; steps 7-9 still
happen. The whole thing is a straight line, no state survives a request.

=============================================================================
"""

import logging
import ssl
from typing import Optional

from .access_log import AccessLogger, AccessLogRecord
from .config import ServerConfig
from .core import Connection, ConnectionState, SocketServer, ThreadPool
from .gemini import (
    Classifier,
    GeminiError,
    GeminiResponse,
    MagicClassifier,
    MalformedRequest,
    RequestParser,
    error_response,
)
from .handlers import ContentHandler


logger = logging.getLogger(__name__)


class GeminiServer:
    """
    Gemini content server.

    =========================================================================
    USAGE
    =========================================================================

        config = ServerConfig.load("server.json")
        server = GeminiServer(
            config,
            ssl_context=load_tls_context(config.cert_path, config.key_path),
        )
        server.run()  # Blocks until SIGINT/SIGTERM

    ``ssl_context=None`` serves plain TCP. That's not a valid Gemini
    server, it exists so the pipeline can be tested without certificates.
    The CLI always passes a context.

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
        classifier: Optional[Classifier] = None,
    ):
        """
        Args:
            config: Server configuration, validated here.
            ssl_context: Server-side TLS context.
            classifier: MIME classifier. Defaults to libmagic.

        Raises:
            ConfigError: Invalid configuration.
            ValueError: The content root isn't a directory.
            ImportError: libmagic is unavailable and no classifier given.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._ssl_context = ssl_context

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.backlog,
        )

        # ─────────────────────────────────────────────────────────────────
        # REQUEST PIPELINE
        # ─────────────────────────────────────────────────────────────────
        self._parser = RequestParser(
            host=self.config.host,
            max_request_size=self.config.max_request_size,
        )
        self._handler = ContentHandler(
            content_root=self.config.content_root,
            classifier=classifier if classifier is not None else MagicClassifier(),
            charset=self.config.content_charset,
            lang=self.config.content_lang,
        )
        self._access_log = AccessLogger(log_format=self.config.log_format)

        self._running = False

    @property
    def address(self):
        """Bound (ip, port); the real port once bound, even for port 0."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def bind(self) -> None:
        """
        Bind the listening socket without serving yet.

        Raises:
            OSError: Address in use, permission denied, ...
        """
        self._socket_server.bind()

    def run(self):
        """
        Serve until shutdown() or SIGINT/SIGTERM (blocking).

        In-flight connections are allowed to finish before this returns.
        """
        if not self._socket_server.is_bound:
            self.bind()

        self._running = True
        self._thread_pool.start()

        host, port = self.address
        scheme = "gemini" if self._ssl_context is not None else "plain TCP (no TLS)"
        logger.info(
            f"Serving {self._handler.content_root} as {self.config.host} "
            f"on {host}:{port} [{scheme}]"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask a running server to stop. Safe from any thread."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def _shutdown(self):
        """
        Graceful shutdown: the listener is already closed at this point,
        let the workers finish what they have, then stop them.
        """
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Called on the accept thread: queue the connection for a worker."""
        try:
            submitted = self._thread_pool.submit(self._process_connection, args=(conn,))
        except RuntimeError:
            submitted = False  # shutting down

        if not submitted:
            # Handshake hasn't happened, so there's no way to send a
            # status line. Just drop it.
            logger.warning(f"[{conn.id}] Server overloaded, dropping connection from {conn.client_ip}")
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Handle one connection end to end (runs in a worker thread).

        Handshake → read → parse → resolve/build → write → close → log.
        """
        with conn:  # closes on every path
            # ─────────────────────────────────────────────────────────────
            # TLS HANDSHAKE
            # ─────────────────────────────────────────────────────────────
            if self._ssl_context is not None:
                try:
                    conn.start_tls(self._ssl_context)
                except (ssl.SSLError, OSError) as e:
                    logger.warning(f"[{conn.id}] TLS handshake with {conn.client_ip} failed: {e}")
                    return

            # ─────────────────────────────────────────────────────────────
            # READ REQUEST
            # ─────────────────────────────────────────────────────────────
            try:
                raw = conn.read_request()
            except GeminiError as e:
                raw, response = conn.buffered, error_response(e)
            except TimeoutError:
                raw = conn.buffered
                response = error_response(MalformedRequest("Timed out reading request"))
            except OSError as e:
                logger.warning(f"[{conn.id}] Connection error while reading: {e}")
                return
            else:
                if raw is None:
                    logger.debug(f"[{conn.id}] Closed by client before sending a request")
                    return
                response = self.respond(raw, conn)

            # ─────────────────────────────────────────────────────────────
            # WRITE RESPONSE
            # ─────────────────────────────────────────────────────────────
            conn.send_response(response.to_bytes())

        self._access_log.log(
            AccessLogRecord.for_response(conn.client_ip, self._loggable_line(raw), response)
        )

    def respond(self, raw: bytes, conn: Optional[Connection] = None) -> GeminiResponse:
        """
        The request-to-response pipeline for one raw request line.

        Never raises: taxonomy errors become their status line, anything
        unexpected is logged and becomes "40 Temporary failure".
        """
        client_address = conn.address if conn is not None else ("", 0)

        try:
            self._set_state(conn, ConnectionState.PARSING)
            request = self._parser.parse(raw, client_address)

            self._set_state(conn, ConnectionState.RESOLVING)
            response = self._handler.handle(request)
        except GeminiError as e:
            logger.debug(f"Rejected request {raw[:80]!r}: {e.detail}")
            response = error_response(e)
        except Exception as e:
            logger.exception(f"Unexpected error handling {raw[:80]!r}: {e}")
            response = error_response(GeminiError(str(e)))

        self._set_state(conn, ConnectionState.BUILDING)
        return response

    @staticmethod
    def _set_state(conn: Optional[Connection], state: ConnectionState):
        if conn is not None:
            conn.state = state

    def _loggable_line(self, raw: Optional[bytes]) -> str:
        if not raw:
            return ""
        line = raw.split(b"\n", 1)[0][:self.config.max_request_size + 2]
        return line.decode("utf-8", errors="replace").strip()


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger for the CLI."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("geminiserver").setLevel(log_level)
