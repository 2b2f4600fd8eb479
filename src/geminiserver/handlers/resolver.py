"""
=============================================================================
RESOURCE RESOLVER
=============================================================================

Maps a decoded request path onto the content root:

    content root:   /srv/gemini
    request path:   /docs/intro.gmi
    resolved:       /srv/gemini/docs/intro.gmi   → FILE

=============================================================================
SECURITY: STAYING INSIDE THE CONTENT ROOT
=============================================================================

A plain join is not enough:

    /srv/gemini / "../../etc/passwd"   → /etc/passwd          ✗
    /srv/gemini / "docs/link-to-root"  → wherever it points   ✗

So we:
1. Strip leading slashes (no absolute-path override)
2. resolve() the joined path (collapses .. and follows symlinks)
3. Require the result to still be relative to the resolved root

Anything that escapes is reported as NOT_FOUND. Answering "not found"
instead of "forbidden" doesn't tell a prober which paths exist.

=============================================================================
"""

import logging
import os
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union


logger = logging.getLogger(__name__)


class ResourceKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ResolvedResource:
    """Outcome of resolving a request path. ``path`` is None for NOT_FOUND."""

    kind: ResourceKind
    path: Optional[Path] = None

    @property
    def exists(self) -> bool:
        return self.kind is not ResourceKind.NOT_FOUND


NOT_FOUND = ResolvedResource(ResourceKind.NOT_FOUND)


class ContentResolver:
    """
    Resolves request paths against a fixed content root.

    Usage:
        resolver = ContentResolver("/srv/gemini")
        resource = resolver.resolve("/docs/")
        if resource.kind is ResourceKind.DIRECTORY:
            ...
    """

    def __init__(self, content_root: Union[str, Path]):
        """
        Args:
            content_root: Directory exposed to clients.

        Raises:
            ValueError: If the content root is not a directory.
        """
        self.root = Path(content_root).resolve()

        if not self.root.is_dir():
            raise ValueError(f"Content root is not a directory: {content_root}")

    def resolve(self, request_path: str) -> ResolvedResource:
        """
        Resolve a decoded request path (e.g. "/docs/intro.gmi").

        Never raises: every failure is NOT_FOUND.
        """
        relative = request_path.lstrip("/")
        return self.resolve_path(self.root / relative)

    def resolve_path(self, candidate: Path) -> ResolvedResource:
        """
        Resolve a filesystem path that is expected to live under the root.

        Also used for index-file lookups, so a symlinked index.gmi can't
        point outside the content root either.
        """
        try:
            full_path = candidate.resolve()
        except (OSError, RuntimeError, ValueError) as e:
            # RuntimeError: symlink loop on older Pythons
            logger.debug(f"Cannot resolve {candidate}: {e}")
            return NOT_FOUND

        if not self.contains(full_path):
            logger.warning(f"Path traversal attempt: {candidate}")
            return NOT_FOUND

        try:
            st = os.stat(full_path)
        except (OSError, ValueError):
            return NOT_FOUND

        if stat.S_ISREG(st.st_mode):
            return ResolvedResource(ResourceKind.FILE, full_path)
        if stat.S_ISDIR(st.st_mode):
            return ResolvedResource(ResourceKind.DIRECTORY, full_path)

        # Devices, sockets, FIFOs...
        return NOT_FOUND

    def contains(self, path: Path) -> bool:
        """True if the (already resolved) path is the root or below it."""
        try:
            path.relative_to(self.root)
        except ValueError:
            return False
        return True

    def relative_path(self, path: Path) -> str:
        """
        Path relative to the root with "/" separators, "" for the root.

            >>> resolver.relative_path(Path("/srv/gemini/docs/a"))
            'docs/a'
        """
        relative = path.relative_to(self.root).as_posix()
        return "" if relative == "." else relative
