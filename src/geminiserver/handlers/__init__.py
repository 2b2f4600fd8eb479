"""
=============================================================================
REQUEST HANDLERS
=============================================================================

A handler takes a validated GeminiRequest and returns a GeminiResponse.
This server has a single one, the ContentHandler, built from three parts:

    ┌─────────────────────────────────────────────────────────────────┐
    │                       ContentHandler                             │
    │                                                                  │
    │   ContentResolver    request path → FILE / DIRECTORY / NOT_FOUND │
    │   DirectoryIndexer   index files and generated listings         │
    │   Classifier         MIME type of regular files                 │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .content import ContentHandler
from .directory import DirectoryEntry, DirectoryIndexer, INDEX_FILES
from .resolver import ContentResolver, ResolvedResource, ResourceKind

__all__ = [
    "ContentHandler",
    "ContentResolver",
    "ResolvedResource",
    "ResourceKind",
    "DirectoryIndexer",
    "DirectoryEntry",
    "INDEX_FILES",
]
