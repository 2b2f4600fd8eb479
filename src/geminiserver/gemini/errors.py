"""
Request-level error taxonomy.

Each exception maps 1:1 to a status line. They are terminal for the
request that raised them: the connection handler turns them into a
failure response, writes it, logs it and closes the connection.

    MalformedRequest       59 Bad request
    ProxyRefused           53 Proxy request refused
    NotFound               51 Not found
    FileAccessError        50 File access error
    DirectoryAccessError   50 Directory access error
"""

from .status import GeminiStatus


class GeminiError(Exception):
    """
    Base class for errors that become a Gemini failure response.

    Attributes:
        status: Status code sent to the client.
        meta: Fixed phrase sent after the code.
        detail: Internal explanation, logged but never sent to the client.
    """

    status: GeminiStatus = GeminiStatus.TEMPORARY_FAILURE
    meta: str = "Temporary failure"

    def __init__(self, detail: str = ""):
        self.detail = detail or self.meta
        super().__init__(self.detail)


class MalformedRequest(GeminiError):
    """The request line is not a valid gemini:// URL for this server."""

    status = GeminiStatus.BAD_REQUEST
    meta = "Bad request"


class ProxyRefused(GeminiError):
    """The URL names a host this server does not serve."""

    status = GeminiStatus.PROXY_REQUEST_REFUSED
    meta = "Proxy request refused"


class NotFound(GeminiError):
    status = GeminiStatus.NOT_FOUND
    meta = "Not found"


class FileAccessError(GeminiError):
    """Reading or classifying a regular file failed."""

    status = GeminiStatus.PERMANENT_FAILURE
    meta = "File access error"


class DirectoryAccessError(GeminiError):
    status = GeminiStatus.PERMANENT_FAILURE
    meta = "Directory access error"
