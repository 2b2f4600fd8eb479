"""
Integration tests: a real server on a loopback port.
"""

import json
import logging
import socket
import time
from pathlib import Path

import pytest

from geminiserver import GeminiServer, ServerConfig
from geminiserver.core import Connection


class TestRequestPipeline:
    """GeminiServer.respond(): bytes in, response out, no sockets."""

    @pytest.fixture
    def server(self, config: ServerConfig, classifier) -> GeminiServer:
        return GeminiServer(config, classifier=classifier)

    def test_success(self, server: GeminiServer):
        response = server.respond(b"gemini://localhost/about.gmi\r\n")
        assert response.to_bytes() == b"20 text/gemini\r\n# About\n"

    @pytest.mark.parametrize("raw,expected", [
        (b"https://localhost/\r\n", b"59 Bad request\r\n"),
        (b"gemini://elsewhere.org/\r\n", b"53 Proxy request refused\r\n"),
        (b"gemini://localhost/missing\r\n", b"51 Not found\r\n"),
        (b"\xff\r\n", b"59 Bad request\r\n"),
    ])
    def test_failures(self, server: GeminiServer, raw: bytes, expected: bytes):
        assert server.respond(raw).to_bytes() == expected

    def test_unexpected_error_is_temporary_failure(self, server: GeminiServer, monkeypatch):
        def explode(request):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(server._handler, "handle", explode)

        response = server.respond(b"gemini://localhost/\r\n")
        assert response.to_bytes() == b"40 Temporary failure\r\n"

    def test_invalid_content_root(self, config: ServerConfig, classifier, tmp_path: Path):
        with pytest.raises(ValueError):
            GeminiServer(config.with_overrides(content_root=str(tmp_path / "nope")), classifier=classifier)


class TestPlainServer:
    """The whole connection lifecycle over plain TCP."""

    def test_index(self, plain_server):
        assert plain_server.get("gemini://localhost/") == b"20 text/gemini\r\n# Welcome\n=> /docs/ Docs\n"

    def test_listing(self, plain_server):
        response = plain_server.get("gemini://localhost/docs/")

        assert response.startswith(b"20 text/gemini\r\n# Index of /docs\n")
        assert b"=> /docs/release%20notes.txt release notes.txt\n" in response

    def test_binary(self, plain_server, content_root: Path):
        response = plain_server.get("gemini://localhost/logo.png")
        assert response == b"20 image/png\r\n" + (content_root / "logo.png").read_bytes()

    def test_not_found(self, plain_server):
        assert plain_server.get("gemini://localhost/nope.gmi") == b"51 Not found\r\n"

    def test_traversal(self, plain_server, content_root: Path):
        (content_root.parent / "secret.txt").write_text("top secret")
        assert plain_server.get("gemini://localhost/../secret.txt") == b"51 Not found\r\n"

    def test_proxy_refused(self, plain_server):
        assert plain_server.get("gemini://example.org/") == b"53 Proxy request refused\r\n"

    def test_oversized_request(self, plain_server):
        response = plain_server.request(b"gemini://localhost/" + b"a" * 2000 + b"\r\n")
        assert response == b"59 Bad request\r\n"

    def test_split_request(self, plain_server):
        """The request line may arrive in pieces."""
        with socket.create_connection(("127.0.0.1", plain_server.port), timeout=5.0) as sock:
            sock.sendall(b"gemini://local")
            time.sleep(0.1)
            sock.sendall(b"host/about.gmi\r\n")
            data = sock.recv(4096)

        assert data.startswith(b"20 text/gemini\r\n")

    def test_slow_client_times_out(self, plain_server):
        """A client that never finishes the line gets 59 after the timeout."""
        with socket.create_connection(("127.0.0.1", plain_server.port), timeout=10.0) as sock:
            sock.sendall(b"gemini://localhost/")
            assert sock.recv(4096) == b"59 Bad request\r\n"

    def test_silent_client_gets_nothing(self, plain_server):
        with socket.create_connection(("127.0.0.1", plain_server.port), timeout=5.0) as sock:
            sock.shutdown(socket.SHUT_WR)
            assert sock.recv(4096) == b""

    def test_access_log(self, plain_server, caplog):
        with caplog.at_level(logging.INFO, logger="geminiserver.access"):
            plain_server.get("gemini://localhost/nope.gmi")
            time.sleep(0.2)  # the record is written after the socket closes

        lines = [r.getMessage() for r in caplog.records if r.name == "geminiserver.access"]
        assert len(lines) == 1
        assert lines[0].startswith("127.0.0.1 - - [")
        assert lines[0].endswith('"gemini://localhost/nope.gmi" 51 0')

    def test_concurrent_clients(self, plain_server):
        import threading

        results = []
        lock = threading.Lock()

        def fetch():
            data = plain_server.get("gemini://localhost/about.gmi")
            with lock:
                results.append(data)

        threads = [threading.Thread(target=fetch) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10.0)

        assert results == [b"20 text/gemini\r\n# About\n"] * 10


class TestJsonAccessLog:
    def test_json_record(self, config: ServerConfig, make_server, caplog):
        server = make_server(config.with_overrides(log_format="json"))

        with caplog.at_level(logging.INFO, logger="geminiserver.access"):
            server.get("gemini://localhost/about.gmi")
            time.sleep(0.2)

        records = [json.loads(r.getMessage()) for r in caplog.records if r.name == "geminiserver.access"]
        assert records[0]["status"] == 20
        assert records[0]["size"] == len(b"# About\n")
        assert records[0]["request"] == "gemini://localhost/about.gmi"


class TestTLSServer:
    """End to end over real TLS."""

    def test_index(self, tls_server):
        assert tls_server.get("gemini://localhost/") == b"20 text/gemini\r\n# Welcome\n=> /docs/ Docs\n"

    def test_failure_over_tls(self, tls_server):
        assert tls_server.get("gemini://localhost/missing") == b"51 Not found\r\n"

    def test_non_tls_client_rejected(self, tls_server):
        """A plain-text client fails the handshake and gets nothing useful back."""
        with socket.create_connection(("127.0.0.1", tls_server.port), timeout=5.0) as sock:
            sock.sendall(b"gemini://localhost/\r\n")
            try:
                data = sock.recv(4096)
            except ConnectionResetError:
                data = b""

        assert not data.startswith(b"20")

    def test_server_keeps_serving_after_bad_handshake(self, tls_server):
        with socket.create_connection(("127.0.0.1", tls_server.port), timeout=5.0) as sock:
            sock.sendall(b"garbage\r\n")

        assert tls_server.get("gemini://localhost/about.gmi") == b"20 text/gemini\r\n# About\n"


class TestShutdown:
    def test_shutdown_stops_listener(self, config: ServerConfig, make_server):
        server = make_server(config)
        port = server.port

        server.stop()

        assert not server.server.is_running
        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", port), timeout=1.0).close()

    def test_shutdown_drains_in_flight_request(self, config: ServerConfig, make_server):
        """A request already accepted is still answered after shutdown()."""
        server = make_server(config)
        port = server.port

        with socket.create_connection(("127.0.0.1", port), timeout=10.0) as sock:
            sock.sendall(b"gemini://localhost/ab")
            time.sleep(0.3)  # accepted and picked up by a worker

            server.server.shutdown()
            time.sleep(0.7)  # longer than the accept poll, listener is closed

            with pytest.raises(OSError):
                socket.create_connection(("127.0.0.1", port), timeout=1.0).close()

            sock.sendall(b"out.gmi\r\n")

            chunks = []
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)

        assert b"".join(chunks) == b"20 text/gemini\r\n# About\n"

    def test_handle_connection_when_stopped(self, config: ServerConfig, classifier):
        """A connection that can't be queued is closed, not leaked."""
        server = GeminiServer(config, classifier=classifier)
        server_sock, client_sock = socket.socketpair()
        conn = Connection(socket=server_sock, address=("127.0.0.1", 1))

        server._handle_connection(conn)  # pool never started

        assert client_sock.recv(16) == b""
        client_sock.close()
