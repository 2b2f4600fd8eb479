"""
=============================================================================
CONTENT HANDLER
=============================================================================

Turns a validated GeminiRequest into a GeminiResponse by serving files
from the content root.

=============================================================================
FLOW
=============================================================================

    Request: gemini://localhost/docs/

    1. Resolve "/docs/" under the content root
    2. NOT_FOUND   → 51 Not found
    3. FILE        → read bytes, sniff MIME type
                     .gmi/.gemini + text/*  → 20 text/gemini; charset; lang
                     anything else          → 20 <sniffed type>
    4. DIRECTORY   → index.gmi / index.gemini if present (step 3)
                     otherwise a generated listing

    Errors from any step become failure responses here, so handle()
    always returns a response.

=============================================================================
"""

import logging
from pathlib import Path
from typing import Union

from ..gemini.errors import FileAccessError, GeminiError, NotFound
from ..gemini.mime import Classifier, is_native_document
from ..gemini.request import GeminiRequest
from ..gemini.response import GeminiResponse, ResponseBuilder, error_response
from .directory import DirectoryIndexer
from .resolver import ContentResolver, ResourceKind


logger = logging.getLogger(__name__)


class ContentHandler:
    """
    Serves files and directory listings from a content root.

    The handler keeps no per-request state, so one instance is shared by
    all worker threads and the same request always gives the same bytes
    for an unchanged filesystem.

    Usage:
        handler = ContentHandler(
            content_root="/srv/gemini",
            classifier=MagicClassifier(),
            charset="utf-8",
            lang="en",
        )
        response = handler.handle(request)
    """

    def __init__(
        self,
        content_root: Union[str, Path],
        classifier: Classifier,
        charset: str = "",
        lang: str = "",
    ):
        """
        Args:
            content_root: Directory exposed to clients.
            classifier: MIME classifier for regular files.
            charset: ``charset`` parameter for gemtext responses (optional).
            lang: ``lang`` parameter for gemtext responses (optional).
        """
        self.resolver = ContentResolver(content_root)
        self.indexer = DirectoryIndexer(self.resolver)
        self.classifier = classifier
        self.charset = charset
        self.lang = lang

    @property
    def content_root(self) -> Path:
        return self.resolver.root

    def handle(self, request: GeminiRequest) -> GeminiResponse:
        """Serve the resource named by the request path."""
        try:
            return self.serve_path(request.path)
        except GeminiError as e:
            logger.debug(f"{request.raw_line!r} failed: {e.detail}")
            return error_response(e)

    def serve_path(self, path: str) -> GeminiResponse:
        """
        Serve a decoded request path.

        Raises:
            NotFound, FileAccessError, DirectoryAccessError
        """
        resource = self.resolver.resolve(path)

        if resource.kind is ResourceKind.FILE:
            return self._serve_file(resource.path)

        if resource.kind is ResourceKind.DIRECTORY:
            return self._serve_directory(resource.path)

        raise NotFound(f"Nothing to serve at {path!r}")

    def _serve_file(self, path: Path) -> GeminiResponse:
        # One in-memory read: this server doesn't stream
        try:
            content = path.read_bytes()
        except OSError as e:
            logger.error(f"Error reading file {path}: {e}")
            raise FileAccessError(f"Cannot read {path}: {e}")

        info = self.classifier.classify(path)

        if is_native_document(path, info):
            return ResponseBuilder().gemtext(content, self.charset, self.lang).build()

        return ResponseBuilder().file(content, info.mime_type).build()

    def _serve_directory(self, directory: Path) -> GeminiResponse:
        index_file = self.indexer.find_index_file(directory)
        if index_file is not None:
            return self._serve_file(index_file)

        listing = self.indexer.render(directory)
        return ResponseBuilder().gemtext(listing, self.charset, self.lang).build()
