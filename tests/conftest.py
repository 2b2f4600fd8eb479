"""
pytest configuration and fixtures.
"""

import shutil
import socket
import ssl
import subprocess
import threading
from pathlib import Path
from typing import Generator, Optional, Union

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from geminiserver import GeminiServer, ServerConfig
from geminiserver.gemini import Classifier, FileAccessError, MimeInfo


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class FakeClassifier(Classifier):
    """
    Extension-based classifier, so tests don't depend on the libmagic
    database installed on the machine.

    Files whose name contains "broken" fail to classify.
    """

    TYPES = {
        ".gmi": "text/plain",
        ".gemini": "text/plain",
        ".txt": "text/plain",
        ".png": "image/png",
    }

    def __init__(self):
        self.calls = []

    def classify(self, path: Union[str, Path]) -> MimeInfo:
        path = Path(path)
        self.calls.append(path)
        if "broken" in path.name:
            raise FileAccessError(f"cannot classify {path}")
        return MimeInfo(self.TYPES.get(path.suffix, "application/octet-stream"), "utf-8")


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    """
    A small capsule:

        content/
        ├── index.gmi
        ├── about.gmi
        ├── notes.txt
        ├── logo.png
        ├── docs/
        │   ├── intro.gmi
        │   └── release notes.txt
        ├── blog/
        │   └── index.gemini
        └── empty/
    """
    root = tmp_path / "content"
    root.mkdir()

    (root / "index.gmi").write_text("# Welcome\n=> /docs/ Docs\n", encoding="utf-8")
    (root / "about.gmi").write_text("# About\n", encoding="utf-8")
    (root / "notes.txt").write_text("plain notes\n", encoding="utf-8")
    (root / "logo.png").write_bytes(PNG_BYTES)

    docs = root / "docs"
    docs.mkdir()
    (docs / "intro.gmi").write_text("# Intro\n", encoding="utf-8")
    (docs / "release notes.txt").write_text("v1\n", encoding="utf-8")

    blog = root / "blog"
    blog.mkdir()
    (blog / "index.gemini").write_text("# Blog\n", encoding="utf-8")

    (root / "empty").mkdir()

    return root


@pytest.fixture
def config(content_root: Path) -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="localhost",
        bind_address="127.0.0.1",
        port=0,  # Let OS pick a free port
        content_root=str(content_root),
        min_workers=2,
        max_workers=4,
        timeout=2.0,
        log_level="WARNING",
    )


@pytest.fixture(scope="session")
def tls_credentials(tmp_path_factory) -> tuple:
    """Self-signed certificate and key, generated with the openssl CLI."""
    openssl = shutil.which("openssl")
    if openssl is None:
        pytest.skip("openssl CLI not available")

    directory = tmp_path_factory.mktemp("tls")
    cert = directory / "cert.pem"
    key = directory / "key.pem"

    result = subprocess.run(
        [
            openssl, "req", "-x509", "-newkey", "rsa:2048", "-nodes",
            "-days", "1", "-subj", "/CN=localhost",
            "-keyout", str(key), "-out", str(cert),
        ],
        capture_output=True,
    )
    if result.returncode != 0:
        pytest.skip(f"openssl failed: {result.stderr.decode(errors='replace')}")

    return str(cert), str(key)


def client_context() -> ssl.SSLContext:
    """Client side: self-signed certificates are accepted (TOFU)."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def read_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        try:
            chunk = sock.recv(4096)
        except (ssl.SSLEOFError, ssl.SSLZeroReturnError, ConnectionResetError):
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False  # not a test class

    def __init__(self, server: GeminiServer, ssl_context: Optional[ssl.SSLContext] = None):
        self.server = server
        self.client_ssl = ssl_context
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Bind, then serve in a background thread."""
        self.server.bind()
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def request(self, payload: bytes, timeout: float = 5.0) -> bytes:
        """Send raw bytes, return everything the server sent back."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=timeout) as raw:
            if self.client_ssl is None:
                raw.sendall(payload)
                return read_all(raw)

            with self.client_ssl.wrap_socket(raw, server_hostname="localhost") as sock:
                sock.sendall(payload)
                return read_all(sock)

    def get(self, url: str) -> bytes:
        return self.request(url.encode("utf-8") + b"\r\n")


@pytest.fixture
def plain_server(config: ServerConfig, classifier: FakeClassifier) -> Generator[TestServer, None, None]:
    """Server over plain TCP, the full pipeline without certificates."""
    test_srv = TestServer(GeminiServer(config, classifier=classifier))
    test_srv.start()

    yield test_srv

    test_srv.stop()


@pytest.fixture
def tls_server(config: ServerConfig, classifier: FakeClassifier, tls_credentials) -> Generator[TestServer, None, None]:
    """Server over TLS with a throwaway self-signed certificate."""
    from geminiserver.tls import load_tls_context

    cert, key = tls_credentials
    server = GeminiServer(config, ssl_context=load_tls_context(cert, key), classifier=classifier)
    test_srv = TestServer(server, ssl_context=client_context())
    test_srv.start()

    yield test_srv

    test_srv.stop()


@pytest.fixture
def make_server(classifier: FakeClassifier):
    """Factory for servers with a custom config; all are stopped afterwards."""
    servers = []

    def factory(config: ServerConfig) -> TestServer:
        test_srv = TestServer(GeminiServer(config, classifier=classifier))
        test_srv.start()
        servers.append(test_srv)
        return test_srv

    yield factory

    for test_srv in servers:
        test_srv.stop()
