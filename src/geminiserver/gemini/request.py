"""
=============================================================================
GEMINI REQUEST PARSING
=============================================================================

A Gemini request is a single line: an absolute URL followed by CRLF.

    gemini://example.org/docs/intro.gmi\r\n
    └────┘   └─────────┘└──────────────┘
    scheme      host         path

That's it. No method, no headers, no body. All the interesting work is
VALIDATION, because the URL decides which file we touch on disk:

    ┌───────────────────────────────────────────────────────────────────┐
    │  REQUEST PARSER                                                   │
    ├───────────────────────────────────────────────────────────────────┤
    │                                                                    │
    │  1. Decode UTF-8, strip trailing CRLF ──────────► MalformedRequest │
    │  2. Length / whitespace / control chars ────────► MalformedRequest │
    │  3. scheme == "gemini" (case-sensitive) ────────► MalformedRequest │
    │  4. host == configured host ────────────────────► ProxyRefused     │
    │  5. Strict percent-decoding of the path ────────► MalformedRequest │
    │                                                                    │
    └───────────────────────────────────────────────────────────────────┘

The parser has no side effects: it never touches the filesystem. Keeping
the decoded path inside the content root is the resolver's job.

=============================================================================
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote_to_bytes, urlsplit

from .errors import MalformedRequest, ProxyRefused


GEMINI_SCHEME = "gemini"

# URLs are limited to 1024 bytes, not counting the CRLF
MAX_REQUEST_SIZE = 1024


@dataclass(frozen=True)
class GeminiRequest:
    """
    A validated Gemini request.

    Attributes:
        raw_line: The request line as received, without line ending.
        scheme: Always ``"gemini"``.
        host: Lowercased host from the URL, equal to the served host.
        port: Port from the URL, if one was given.
        path: Percent-decoded path, always starting with ``/``.
        query: Raw query string (not decoded).
        client_address: Client's (ip, port) tuple.
    """

    raw_line: str
    scheme: str
    host: str
    path: str
    port: Optional[int] = None
    query: str = ""
    client_address: tuple = ("", 0)

    @property
    def client_ip(self) -> str:
        return self.client_address[0]


class RequestParser:
    """
    Turns a raw request line into a GeminiRequest.

    Usage:
        parser = RequestParser(host="example.org")
        request = parser.parse(b"gemini://example.org/\\r\\n", ("10.0.0.1", 50000))
    """

    SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")

    # Any whitespace (including Unicode spaces) or C0/DEL control character
    FORBIDDEN_CHARS = re.compile(r"[\s\x00-\x1f\x7f]")

    # A '%' that doesn't start a %XX escape
    INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

    def __init__(self, host: str, max_request_size: int = MAX_REQUEST_SIZE):
        """
        Args:
            host: The host this server answers for. Compared
                  case-insensitively, like DNS names.
            max_request_size: Longest accepted URL in bytes.
        """
        self.host = host.lower()
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple = ("", 0)) -> GeminiRequest:
        """
        Parse and validate a request line.

        Args:
            data: Bytes read from the connection, line ending included.
            client_address: Client's (ip, port) tuple.

        Returns:
            The validated request.

        Raises:
            MalformedRequest: Not a well-formed gemini:// URL.
            ProxyRefused: Well-formed URL for a host we don't serve.
        """
        # ─────────────────────────────────────────────────────────────────
        # STEP 1: Decode and trim
        # ─────────────────────────────────────────────────────────────────
        try:
            line = data.decode("utf-8").rstrip()
        except UnicodeDecodeError as e:
            raise MalformedRequest(f"Request is not valid UTF-8: {e}")

        if not line:
            raise MalformedRequest("Empty request")

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: Shape checks
        # ─────────────────────────────────────────────────────────────────
        if len(line.encode("utf-8")) > self.max_request_size:
            raise MalformedRequest(
                f"Request too long: more than {self.max_request_size} bytes"
            )

        if self.FORBIDDEN_CHARS.search(line):
            raise MalformedRequest("Request contains whitespace or control characters")

        # ─────────────────────────────────────────────────────────────────
        # STEP 3: Scheme
        # ─────────────────────────────────────────────────────────────────
        # urlsplit() lowercases the scheme, so we check the raw text first.
        scheme, separator, _ = line.partition("://")
        if not separator or not self.SCHEME_PATTERN.match(scheme):
            raise MalformedRequest(f"Not an absolute URL: {line!r}")

        if scheme != GEMINI_SCHEME:
            raise MalformedRequest(f"Unsupported scheme: {scheme!r}")

        try:
            parts = urlsplit(line)
            port = parts.port  # raises ValueError for a bad port
        except ValueError as e:
            raise MalformedRequest(f"Invalid URL: {e}")

        if parts.username is not None or parts.password is not None:
            raise MalformedRequest("URL must not contain userinfo")

        # ─────────────────────────────────────────────────────────────────
        # STEP 4: Host
        # ─────────────────────────────────────────────────────────────────
        host = parts.hostname
        if not host:
            raise MalformedRequest("URL has no host")

        if host != self.host:
            raise ProxyRefused(f"Host {host!r} is not served here")

        # ─────────────────────────────────────────────────────────────────
        # STEP 5: Path
        # ─────────────────────────────────────────────────────────────────
        path = self._decode_path(parts.path)

        return GeminiRequest(
            raw_line=line,
            scheme=scheme,
            host=host,
            port=port,
            path=path,
            query=parts.query,
            client_address=client_address,
        )

    def _decode_path(self, raw_path: str) -> str:
        """
        Strictly percent-decode a URL path.

        ``urllib.parse.unquote`` silently keeps broken escapes and replaces
        invalid UTF-8, so the checks are done by hand here.
        """
        if self.INVALID_ESCAPE.search(raw_path):
            raise MalformedRequest(f"Invalid percent-escape in path: {raw_path!r}")

        try:
            path = unquote_to_bytes(raw_path).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRequest(f"Path is not valid UTF-8 once decoded: {e}")

        if "\x00" in path:
            raise MalformedRequest("Path contains a NUL byte")

        return path or "/"


def parse_request(
    data: bytes,
    host: str = "localhost",
    client_address: tuple = ("", 0),
) -> GeminiRequest:
    """
    Convenience function to parse a request line.

    Example:
        request = parse_request(b"gemini://localhost/index.gmi\\r\\n")
        print(request.path)  # "/index.gmi"
    """
    return RequestParser(host).parse(data, client_address)
