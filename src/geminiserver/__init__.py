"""
=============================================================================
GEMINISERVER - Static Gemini Content Server
=============================================================================

Serves a directory tree over the Gemini protocol: one TLS connection, one
request line, one response, close.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      GEMINI SERVER ARCHITECTURE                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. NETWORKING                                                     │
    │      - TCP listener with accept loop                                │
    │      - TLS handshake per connection (stdlib ssl)                    │
    │      - Thread pool, one task per connection                        │
    │                                                                      │
    │   2. GEMINI PROTOCOL                                                │
    │      - Request line validation (scheme, host, path)                 │
    │      - Status line + body responses                                 │
    │                                                                      │
    │   3. CONTENT                                                        │
    │      - Path resolution confined to the content root                │
    │      - Index files and generated directory listings                 │
    │      - MIME sniffing with libmagic                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    geminiserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m geminiserver)
    ├── server.py            # GeminiServer orchestrator
    ├── config.py            # ServerConfig dataclass
    ├── tls.py               # SSL context from cert/key files
    ├── access_log.py        # One record per request
    ├── core/                # Protocol-agnostic networking
    │   ├── socket_server.py
    │   ├── connection.py
    │   └── thread_pool.py
    ├── gemini/              # Wire format
    │   ├── status.py
    │   ├── errors.py
    │   ├── request.py
    │   ├── response.py
    │   └── mime.py
    └── handlers/            # Content serving
        ├── resolver.py
        ├── directory.py
        └── content.py

=============================================================================
QUICK START
=============================================================================

    from geminiserver import GeminiServer, ServerConfig, load_tls_context

    config = ServerConfig(host="example.org", content_root="./capsule")
    server = GeminiServer(
        config,
        ssl_context=load_tls_context(config.cert_path, config.key_path),
    )
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import GeminiServer
from .config import ConfigError, ServerConfig
from .tls import TLSError, load_tls_context

__all__ = [
    "GeminiServer",
    "ServerConfig",
    "ConfigError",
    "TLSError",
    "load_tls_context",
    "__version__",
]
