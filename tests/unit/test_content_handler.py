"""
Unit tests for the content handler: request path in, response out.
"""

from pathlib import Path

import pytest

from geminiserver.gemini.request import parse_request
from geminiserver.gemini.status import GeminiStatus
from geminiserver.handlers.content import ContentHandler


@pytest.fixture
def handler(content_root: Path, classifier) -> ContentHandler:
    return ContentHandler(content_root, classifier)


def get(handler: ContentHandler, path: str):
    return handler.handle(parse_request(f"gemini://localhost{path}\r\n".encode("utf-8")))


class TestFiles:
    """Tests for serving regular files."""

    def test_native_document(self, handler: ContentHandler):
        response = get(handler, "/about.gmi")

        assert response.to_bytes() == b"20 text/gemini\r\n# About\n"

    def test_native_document_with_parameters(self, content_root: Path, classifier):
        handler = ContentHandler(content_root, classifier, charset="utf-8", lang="en")

        response = get(handler, "/about.gmi")

        assert response.meta == "text/gemini; charset=utf-8; lang=en"
        assert response.body == b"# About\n"

    def test_plain_text(self, handler: ContentHandler):
        """Text without a native extension keeps its sniffed type."""
        response = get(handler, "/notes.txt")

        assert response.status == GeminiStatus.SUCCESS
        assert response.meta == "text/plain"
        assert response.body == b"plain notes\n"

    def test_binary_file(self, handler: ContentHandler, content_root: Path):
        response = get(handler, "/logo.png")

        assert response.meta == "image/png"
        assert response.body == (content_root / "logo.png").read_bytes()

    def test_binary_content_with_native_extension(self, content_root: Path, classifier):
        """The sniffed type wins over the .gmi extension."""
        (content_root / "photo.gmi").write_bytes(b"\x89PNG")
        classifier.TYPES = dict(classifier.TYPES, **{".gmi": "image/png"})
        handler = ContentHandler(content_root, classifier, charset="utf-8")

        response = get(handler, "/photo.gmi")

        assert response.meta == "image/png"

    def test_percent_encoded_name(self, handler: ContentHandler):
        response = get(handler, "/docs/release%20notes.txt")

        assert response.status == GeminiStatus.SUCCESS
        assert response.body == b"v1\n"

    def test_classification_failure(self, handler: ContentHandler, content_root: Path):
        (content_root / "broken.gmi").write_text("x")

        response = get(handler, "/broken.gmi")

        assert response.to_bytes() == b"50 File access error\r\n"

    def test_same_request_same_bytes(self, handler: ContentHandler):
        assert get(handler, "/docs/").to_bytes() == get(handler, "/docs/").to_bytes()


class TestDirectories:
    """Tests for directory requests."""

    def test_root_serves_index(self, handler: ContentHandler):
        response = get(handler, "/")

        assert response.meta == "text/gemini"
        assert response.body == b"# Welcome\n=> /docs/ Docs\n"

    def test_empty_path_serves_index(self, handler: ContentHandler):
        assert get(handler, "").body == b"# Welcome\n=> /docs/ Docs\n"

    def test_index_gemini(self, handler: ContentHandler):
        response = get(handler, "/blog/")

        assert response.meta == "text/gemini"
        assert response.body == b"# Blog\n"

    def test_directory_without_slash(self, handler: ContentHandler):
        """No redirect: the directory is served as-is."""
        assert get(handler, "/blog").body == b"# Blog\n"

    def test_generated_listing(self, handler: ContentHandler):
        response = get(handler, "/docs/")

        assert response.meta == "text/gemini"
        assert response.body == (
            b"# Index of /docs\n"
            b"\n"
            b"=> /docs/intro.gmi intro.gmi\n"
            b"=> /docs/release%20notes.txt release notes.txt\n"
        )

    def test_listing_has_parameters(self, content_root: Path, classifier):
        handler = ContentHandler(content_root, classifier, lang="fr")
        assert get(handler, "/docs/").meta == "text/gemini; lang=fr"

    def test_empty_directory(self, handler: ContentHandler):
        response = get(handler, "/empty/")
        assert response.body == b"# Index of /empty\n\nEmpty directory\n"


class TestNotFound:
    @pytest.mark.parametrize("path", [
        "/missing.gmi",
        "/docs/missing/",
        "/../secret.txt",
        "/docs/../../secret.txt",
        "/%2e%2e/secret.txt",
    ])
    def test_not_found(self, handler: ContentHandler, content_root: Path, path: str):
        (content_root.parent / "secret.txt").write_text("top secret")

        response = get(handler, path)

        assert response.to_bytes() == b"51 Not found\r\n"

    def test_classifier_not_called_for_missing(self, handler: ContentHandler, classifier):
        get(handler, "/missing.gmi")
        assert classifier.calls == []
