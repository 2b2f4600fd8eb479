"""
=============================================================================
GEMINI RESPONSE BUILDING
=============================================================================

A Gemini response is much simpler than an HTTP one. There are no headers,
just a single status line, then (on success only) the body:

    ┌─────────────────────────────────────────────────────────────────┐
    │  STATUS LINE                                                     │
    │  ─────────────────────────────────────────────────────────────  │
    │  20 text/gemini; charset=utf-8; lang=en\r\n                      │
    │  └┘ └──────────────────────────────────┘                         │
    │ code              meta                                           │
    ├─────────────────────────────────────────────────────────────────┤
    │  BODY (status 20 only)                                           │
    │  ─────────────────────────────────────────────────────────────  │
    │  # Hello\n                                                       │
    │  => /about.gmi About\n                                           │
    └─────────────────────────────────────────────────────────────────┘

The end of the body is signalled by closing the connection, so there is
no Content-Length equivalent.

=============================================================================
META RULES
=============================================================================

    Native document     text/gemini[; charset=C][; lang=L]
    Any other file      the sniffed MIME type, verbatim
    Failure             fixed phrase, no body

A parameter is only added when its configured value is non-empty.

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional, Union

from .errors import GeminiError
from .status import GeminiStatus


GEMINI_MIME_TYPE = "text/gemini"

# Meta is limited to 1024 bytes by the protocol
MAX_META_LENGTH = 1024


@dataclass(frozen=True)
class GeminiResponse:
    """
    A response ready to be written to the client.

    Invariant: a body is only ever attached to a SUCCESS response.
    Failure responses are just the status line.
    """

    status: GeminiStatus
    meta: str
    body: Optional[bytes] = None

    def __post_init__(self):
        if self.body is not None and self.status != GeminiStatus.SUCCESS:
            raise ValueError(f"Status {self.status} responses cannot carry a body")
        if "\r" in self.meta or "\n" in self.meta:
            raise ValueError("Meta must be a single line")
        if len(self.meta.encode("utf-8")) > MAX_META_LENGTH:
            raise ValueError(f"Meta longer than {MAX_META_LENGTH} bytes")

    @property
    def header(self) -> str:
        """The status line, e.g. ``"51 Not found\\r\\n"``."""
        return f"{int(self.status)} {self.meta}\r\n"

    @property
    def body_size(self) -> int:
        return len(self.body) if self.body is not None else 0

    def to_bytes(self) -> bytes:
        """Serialize the status line and body for the wire."""
        data = self.header.encode("utf-8")
        if self.body is not None:
            data += self.body
        return data


class ResponseBuilder:
    """
    Fluent builder for GeminiResponse.

        response = (ResponseBuilder()
            .status(GeminiStatus.SUCCESS)
            .meta("image/png")
            .body(png_bytes)
            .build())

    Shortcuts cover the three shapes this server produces:

        ResponseBuilder().gemtext(text, charset="utf-8", lang="en").build()
        ResponseBuilder().file(data, "application/pdf").build()
        ResponseBuilder().error(NotFound()).build()
    """

    def __init__(self):
        self._status = GeminiStatus.SUCCESS
        self._meta = ""
        self._body: Optional[bytes] = None

    def status(self, status: GeminiStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def meta(self, meta: str) -> "ResponseBuilder":
        self._meta = meta
        return self

    def body(self, body: Union[str, bytes], encoding: str = "utf-8") -> "ResponseBuilder":
        """Attach a body. Strings are encoded with ``encoding``."""
        if isinstance(body, str):
            body = body.encode(encoding, errors="replace")
        self._body = body
        return self

    def gemtext(
        self,
        content: Union[str, bytes],
        charset: str = "",
        lang: str = "",
    ) -> "ResponseBuilder":
        """
        Success response carrying a native gemtext document.

        Args:
            content: Document body. Text is encoded with ``charset``
                     (UTF-8 when no charset is configured).
            charset: Value for the ``charset`` parameter, omitted if empty.
            lang: Value for the ``lang`` parameter, omitted if empty.
        """
        return (self
            .status(GeminiStatus.SUCCESS)
            .meta(gemtext_meta(charset, lang))
            .body(content, encoding=charset or "utf-8"))

    def file(self, content: bytes, mime_type: str) -> "ResponseBuilder":
        """Success response for a non-native file, meta is the MIME type."""
        return self.status(GeminiStatus.SUCCESS).meta(mime_type).body(content)

    def error(self, error: GeminiError) -> "ResponseBuilder":
        """Failure response built from an error of the taxonomy."""
        self._status = error.status
        self._meta = error.meta
        self._body = None
        return self

    def build(self) -> GeminiResponse:
        meta = self._meta
        if not meta and not self._status.is_success:
            meta = self._status.name.replace("_", " ").capitalize()
        return GeminiResponse(status=self._status, meta=meta, body=self._body)


def gemtext_meta(charset: str = "", lang: str = "") -> str:
    """
    Build the meta for a gemtext success response.

        >>> gemtext_meta()
        'text/gemini'
        >>> gemtext_meta("utf-8", "ru")
        'text/gemini; charset=utf-8; lang=ru'
    """
    parts = [GEMINI_MIME_TYPE]
    if charset:
        parts.append(f"charset={charset}")
    if lang:
        parts.append(f"lang={lang}")
    return "; ".join(parts)


def error_response(error: GeminiError) -> GeminiResponse:
    return ResponseBuilder().error(error).build()
