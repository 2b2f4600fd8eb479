"""
Directory index generation.

When a directory is requested:

    1. index.gmi, then index.gemini    → served as if requested directly
    2. otherwise                       → a generated gemtext listing

A generated listing looks like:

    # Index of /docs

    => /docs/guides/ guides/
    => /docs/intro.gmi intro.gmi
    => /docs/release%20notes.txt release notes.txt

Entries are sorted by name so the same directory always produces the
same bytes.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from ..gemini.errors import DirectoryAccessError
from ..gemini.mime import NATIVE_EXTENSIONS
from .resolver import ContentResolver, ResourceKind


logger = logging.getLogger(__name__)


# index.gmi first, then index.gemini
INDEX_FILES = tuple(f"index{ext}" for ext in NATIVE_EXTENSIONS)

EMPTY_DIRECTORY_LINE = "Empty directory"


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    is_dir: bool

    @property
    def path_name(self) -> str:
        """The name as it goes into a link, before URL-encoding."""
        return f"{self.name}/" if self.is_dir else self.name

    @property
    def display_name(self) -> str:
        """Link label. CR/LF in a filename would start a new gemtext line."""
        return self.path_name.replace("\r", " ").replace("\n", " ")


class DirectoryIndexer:
    """
    Finds index files and renders listings for directories under a root.

    Args:
        resolver: The resolver for the content root. Listings are
                  rendered with paths relative to its root.
    """

    def __init__(self, resolver: ContentResolver):
        self.resolver = resolver

    def find_index_file(self, directory: Path) -> Optional[Path]:
        """
        Return the index file to serve for ``directory``, if any.

        Only regular files count: a sub-directory called index.gmi is
        ignored.
        """
        for name in INDEX_FILES:
            resource = self.resolver.resolve_path(directory / name)
            if resource.kind is ResourceKind.FILE:
                return resource.path
        return None

    def list_entries(self, directory: Path) -> List[DirectoryEntry]:
        """
        List a directory once, sorted by name.

        Raises:
            DirectoryAccessError: If the directory can't be read.
        """
        try:
            with os.scandir(directory) as scanner:
                entries = [
                    DirectoryEntry(name=entry.name, is_dir=self._is_dir(entry))
                    for entry in scanner
                ]
        except OSError as e:
            logger.error(f"Cannot list directory {directory}: {e}")
            raise DirectoryAccessError(f"Cannot list {directory}: {e}")

        return sorted(entries, key=lambda entry: entry.name)

    def render(self, directory: Path) -> str:
        """
        Render the gemtext listing for ``directory``.

        Raises:
            DirectoryAccessError: If the directory can't be read.
        """
        entries = self.list_entries(directory)
        relative = self.resolver.relative_path(directory)

        lines = [f"# Index of /{relative}", ""]

        if not entries:
            lines.append(EMPTY_DIRECTORY_LINE)

        for entry in entries:
            lines.append(f"=> {self.link_target(relative, entry)} {entry.display_name}")

        return "\n".join(lines) + "\n"

    @staticmethod
    def link_target(relative_dir: str, entry: DirectoryEntry) -> str:
        """
        URL-encoded absolute path of an entry, rooted at the content root.

            >>> DirectoryIndexer.link_target("docs", DirectoryEntry("a b.gmi", False))
            '/docs/a%20b.gmi'
            >>> DirectoryIndexer.link_target("", DirectoryEntry("sub", True))
            '/sub/'
        """
        parts = [relative_dir] if relative_dir else []
        parts.append(entry.path_name)
        return quote("/" + "/".join(parts), safe="/")

    @staticmethod
    def _is_dir(entry: os.DirEntry) -> bool:
        try:
            return entry.is_dir()
        except OSError:
            return False
