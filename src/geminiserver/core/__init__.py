"""
=============================================================================
CORE NETWORKING COMPONENTS
=============================================================================

The protocol-agnostic plumbing under the Gemini handler:

    core/
    ├── socket_server.py  # TCP listener, accept loop, signal handling
    ├── connection.py     # One client connection: TLS, read line, write, close
    └── thread_pool.py    # Bounded worker pool, one task per connection

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = ["SocketServer", "Connection", "ConnectionState", "ThreadPool"]
