"""
=============================================================================
GEMINI STATUS CODES
=============================================================================

Every Gemini response starts with a two-digit status code. The first digit
is the category, the second digit refines it:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    STATUS CODE CATEGORIES                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1x  INPUT               Server wants the client to prompt the user│
    │   2x  SUCCESS             Body follows the header                   │
    │   3x  REDIRECT            Meta is the new URL                       │
    │   4x  TEMPORARY FAILURE   Try again later                           │
    │   5x  PERMANENT FAILURE   Don't bother retrying                     │
    │   6x  CLIENT CERTIFICATE  Authentication with client certificates   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Unlike HTTP there are no headers: the META string after the code carries
the MIME type on success, and a human-readable message otherwise.

This server only emits 20, 40, 50, 51, 53 and 59, but the full table is
kept so logs and tests can name any code a client might see.

=============================================================================
"""

from enum import IntEnum


class GeminiStatus(IntEnum):
    """
    Gemini status codes.

    IntEnum, so codes compare equal to plain integers:

        >>> GeminiStatus.SUCCESS == 20
        True
        >>> GeminiStatus.NOT_FOUND.category
        5
    """

    # 1x INPUT
    INPUT = 10
    SENSITIVE_INPUT = 11

    # 2x SUCCESS
    SUCCESS = 20

    # 3x REDIRECT
    REDIRECT_TEMPORARY = 30
    REDIRECT_PERMANENT = 31

    # 4x TEMPORARY FAILURE
    TEMPORARY_FAILURE = 40
    SERVER_UNAVAILABLE = 41
    CGI_ERROR = 42
    PROXY_ERROR = 43
    SLOW_DOWN = 44

    # 5x PERMANENT FAILURE
    PERMANENT_FAILURE = 50
    NOT_FOUND = 51
    GONE = 52
    PROXY_REQUEST_REFUSED = 53
    BAD_REQUEST = 59

    # 6x CLIENT CERTIFICATE
    CLIENT_CERTIFICATE_REQUIRED = 60
    CERTIFICATE_NOT_AUTHORISED = 61
    CERTIFICATE_NOT_VALID = 62

    @property
    def category(self) -> int:
        """First digit of the code (1-6)."""
        return self.value // 10

    @property
    def is_success(self) -> bool:
        return self.category == 2

    @property
    def is_failure(self) -> bool:
        """True for temporary (4x) and permanent (5x) failures."""
        return self.category in (4, 5)

    def __str__(self) -> str:
        return str(self.value)
