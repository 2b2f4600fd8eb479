"""
=============================================================================
ACCESS LOGGING
=============================================================================

One log line per completed request, success or failure:

    127.0.0.1 - - [2024-06-15T10:00:00.123456+00:00] "gemini://localhost/" 20 1843

    ┌────────────┬──────────────────────────────────────────────────────┐
    │ client_ip  │ Peer address of the connection                       │
    │ timestamp  │ ISO 8601, UTC                                        │
    │ request    │ Request line as received (trimmed)                   │
    │ status     │ Two-digit Gemini status code                         │
    │ size       │ Body size in bytes (0 for failures)                  │
    └────────────┴──────────────────────────────────────────────────────┘

Records go to the "geminiserver.access" logger. Where they end up (stderr,
a file, a collector) is decided by whoever configures logging:

    logging.getLogger("geminiserver.access").addHandler(file_handler)

Each record is emitted with a single logger call, and logging handlers
hold a lock while writing, so lines from concurrent workers never
interleave.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .gemini.response import GeminiResponse


logger = logging.getLogger("geminiserver.access")


LOG_FORMATS = ("text", "json")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AccessLogRecord:
    """
    Structured log entry for one request.

    Fields:
        client_ip:    Client's IP address
        request_line: Raw request line, trimmed
        status:       Status code sent (or that would have been sent)
        body_size:    Response body size in bytes
        timestamp:    When the request completed (ISO 8601, UTC)
    """

    client_ip: str
    request_line: str
    status: int
    body_size: int
    timestamp: str = field(default_factory=_utc_now)

    @classmethod
    def for_response(
        cls,
        client_ip: str,
        request_line: str,
        response: GeminiResponse,
    ) -> "AccessLogRecord":
        return cls(
            client_ip=client_ip,
            request_line=request_line,
            status=int(response.status),
            body_size=response.body_size,
        )

    def to_dict(self) -> dict:
        return {
            "client_ip": self.client_ip,
            "request": self.request_line,
            "status": self.status,
            "size": self.body_size,
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """Apache-style access log line."""
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.request_line}" {self.status} {self.body_size}'
        )


class AccessLogger:
    """
    Emits AccessLogRecords on the access logger.

    Usage:
        access_log = AccessLogger(log_format="json")
        access_log.log(record)
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        """
        Args:
            log_format: "text" (Apache-like, human readable) or
                        "json" (one object per line, for collectors).
            log_level: Level used for access records.
        """
        if log_format not in LOG_FORMATS:
            raise ValueError(f"Unknown access log format: {log_format}")

        self.log_format = log_format
        self.log_level = log_level

    def format(self, record: AccessLogRecord) -> str:
        if self.log_format == "json":
            return json.dumps(record.to_dict(), ensure_ascii=False)
        return record.to_text()

    def log(self, record: AccessLogRecord) -> None:
        logger.log(self.log_level, self.format(record))
