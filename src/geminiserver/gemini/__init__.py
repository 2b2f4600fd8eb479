"""
=============================================================================
GEMINI PROTOCOL COMPONENTS
=============================================================================

Everything that knows about the wire format, and nothing about sockets
or the filesystem layout:

    gemini/
    ├── status.py     # GeminiStatus enum (10-62)
    ├── errors.py     # GeminiError taxonomy, one class per failure status
    ├── request.py    # RequestParser: request line -> GeminiRequest
    ├── response.py   # GeminiResponse + ResponseBuilder
    └── mime.py       # MIME classification (libmagic) and gemtext detection

=============================================================================
"""

from .status import GeminiStatus
from .errors import (
    GeminiError,
    MalformedRequest,
    ProxyRefused,
    NotFound,
    FileAccessError,
    DirectoryAccessError,
)
from .request import GeminiRequest, RequestParser, parse_request
from .response import (
    GeminiResponse,
    ResponseBuilder,
    error_response,
    gemtext_meta,
)
from .mime import (
    Classifier,
    MagicClassifier,
    MimeInfo,
    NATIVE_EXTENSIONS,
    is_native_document,
)

__all__ = [
    "GeminiStatus",
    "GeminiError",
    "MalformedRequest",
    "ProxyRefused",
    "NotFound",
    "FileAccessError",
    "DirectoryAccessError",
    "GeminiRequest",
    "RequestParser",
    "parse_request",
    "GeminiResponse",
    "ResponseBuilder",
    "error_response",
    "gemtext_meta",
    "Classifier",
    "MagicClassifier",
    "MimeInfo",
    "NATIVE_EXTENSIONS",
    "is_native_document",
]
