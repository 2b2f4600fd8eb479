"""
Unit tests for TLS context loading.
"""

import ssl
from pathlib import Path

import pytest

from geminiserver.tls import TLSError, load_tls_context


class TestLoadTLSContext:
    def test_valid_credentials(self, tls_credentials):
        cert, key = tls_credentials

        context = load_tls_context(cert, key)

        assert isinstance(context, ssl.SSLContext)
        assert context.minimum_version >= ssl.TLSVersion.TLSv1_2

    def test_missing_certificate(self, tmp_path: Path, tls_credentials):
        _, key = tls_credentials
        with pytest.raises(TLSError, match="certificate"):
            load_tls_context(str(tmp_path / "missing.pem"), key)

    def test_missing_key(self, tmp_path: Path, tls_credentials):
        cert, _ = tls_credentials
        with pytest.raises(TLSError, match="private key"):
            load_tls_context(cert, str(tmp_path / "missing.pem"))

    def test_garbage_files(self, tmp_path: Path):
        cert = tmp_path / "cert.pem"
        key = tmp_path / "key.pem"
        cert.write_text("not a certificate")
        key.write_text("not a key")

        with pytest.raises(TLSError):
            load_tls_context(str(cert), str(key))

    def test_key_swapped_with_cert(self, tls_credentials):
        cert, key = tls_credentials
        with pytest.raises(TLSError):
            load_tls_context(key, cert)
