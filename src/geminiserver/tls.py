"""
TLS credential loading.

Gemini is TLS-only. The server takes an ``ssl.SSLContext`` built here from
a PEM certificate (chain) and private key. Self-signed certificates are
the norm in Gemini space: clients pin them on first use (TOFU) instead of
checking a CA, so no CA bundle is involved on the server side.

    openssl req -x509 -newkey rsa:4096 -nodes -days 3650 \\
        -keyout key.pem -out cert.pem -subj "/CN=example.org"
"""

import logging
import os
import ssl


logger = logging.getLogger(__name__)


class TLSError(Exception):
    """Certificate or key can't be loaded. Fatal at startup."""


def load_tls_context(cert_path: str, key_path: str) -> ssl.SSLContext:
    """
    Build a server-side SSL context.

    Args:
        cert_path: PEM certificate (optionally followed by its chain).
        key_path: PEM private key, unencrypted.

    Returns:
        Context ready for ``wrap_socket(sock, server_side=True)``.

    Raises:
        TLSError: Missing files, unreadable files, or a key that doesn't
                  match the certificate.
    """
    for label, path in (("certificate", cert_path), ("private key", key_path)):
        if not os.path.isfile(path):
            raise TLSError(f"TLS {label} not found: {path}")

    # Protocol requires TLS 1.2 or higher
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    try:
        context.load_cert_chain(
            certfile=cert_path, keyfile=key_path, password=_refuse_encrypted_key
        )
    except (ssl.SSLError, OSError) as e:
        raise TLSError(f"Cannot load TLS credentials ({cert_path}, {key_path}): {e}")

    logger.debug(f"Loaded TLS certificate {cert_path}")
    return context


def _refuse_encrypted_key():
    # Only called for an encrypted key; without it OpenSSL would prompt
    # on the terminal.
    raise TLSError("Encrypted private keys are not supported")
