"""
=============================================================================
MIME TYPE CLASSIFICATION
=============================================================================

Gemini responses carry the MIME type in the status line, so every file we
serve has to be classified. We sniff the CONTENT (magic bytes) with libmagic
instead of trusting the file extension:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                  EXTENSION vs CONTENT SNIFFING                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   photo.gmi  (really a PNG)                                          │
    │     extension says:  text/gemini     ✗ wrong                         │
    │     libmagic says:   image/png       ✓                               │
    │                                                                      │
    │   notes.gmi  (empty file)                                            │
    │     extension says:  text/gemini                                     │
    │     libmagic says:   inode/x-empty                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A file is served as a native gemtext document only when BOTH agree: the
extension is .gmi/.gemini AND the sniffed top-level type is text/*.

The classifier is an interface so tests (and alternative deployments) can
swap libmagic out for something else.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .errors import FileAccessError


logger = logging.getLogger(__name__)


# Extensions of native gemtext documents. The first one is the primary
# extension used for index files.
NATIVE_EXTENSIONS = (".gmi", ".gemini")


@dataclass(frozen=True)
class MimeInfo:
    """
    Result of classifying a file.

    Attributes:
        mime_type: e.g. "text/plain", "image/png"
        encoding: libmagic's encoding hint, e.g. "utf-8", "binary"
    """

    mime_type: str
    encoding: str = ""

    @property
    def top_level_type(self) -> str:
        """"text" for "text/plain", "image" for "image/png"."""
        return self.mime_type.split("/", 1)[0].strip().lower()

    @property
    def is_text(self) -> bool:
        return self.top_level_type == "text"


class Classifier(ABC):
    """
    Capability to determine the MIME type of a file.

    Implementations must raise FileAccessError on any failure; the
    content handler turns that into "50 File access error".
    """

    @abstractmethod
    def classify(self, path: Union[str, Path]) -> MimeInfo:
        """Return the MIME type and encoding hint of the file at ``path``."""


class MagicClassifier(Classifier):
    """
    Content sniffing with libmagic, through the python-magic binding.

    This is the same database the ``file --mime`` command uses.

    Raises:
        ImportError: At construction time if python-magic or the libmagic
                     shared library is not installed. The CLI treats this
                     as a fatal startup error.
    """

    def __init__(self):
        import magic

        self._magic_module = magic
        # python-magic serializes calls on each Magic instance with a lock,
        # so both instances can be shared between worker threads.
        self._mime = magic.Magic(mime=True)
        self._encoding = magic.Magic(mime_encoding=True)

    def classify(self, path: Union[str, Path]) -> MimeInfo:
        filename = str(path)
        try:
            mime_type = self._mime.from_file(filename)
            encoding = self._encoding.from_file(filename)
        except (OSError, self._magic_module.MagicException) as e:
            logger.error(f"Cannot classify {filename}: {e}")
            raise FileAccessError(f"MIME sniffing failed for {filename}: {e}")

        if not mime_type:
            raise FileAccessError(f"libmagic returned no MIME type for {filename}")

        return MimeInfo(mime_type=mime_type.strip(), encoding=(encoding or "").strip())


def has_native_extension(path: Union[str, Path]) -> bool:
    """
    Check the extension only.

        >>> has_native_extension("intro.gmi")
        True
        >>> has_native_extension("intro.GMI")
        False
    """
    return Path(path).suffix in NATIVE_EXTENSIONS


def is_native_document(path: Union[str, Path], info: MimeInfo) -> bool:
    """
    Decide whether a file is served as text/gemini.

    Both conditions must hold:
        1. The extension is .gmi or .gemini
        2. libmagic sniffed a text/* type
    """
    return has_native_extension(path) and info.is_text
