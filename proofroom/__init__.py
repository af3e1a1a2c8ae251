"""Capture web content into per-project namespaces and serve it back rewritten."""

from .canonical import canonicalize
from .errors import (
    BudgetExceeded,
    FetchTimeout,
    MalformedInput,
    PageNotFound,
    ProjectNotFound,
    ProofroomError,
    StorageError,
    TransientFetchError,
    UpstreamError,
)
from .ingest import ArchiveIngester, BatchUploader, ingest_images
from .mirror import SiteMirror
from .projects import Workspace
from .rewriter import find_references, rewrite
from .serve import ServeTimeResolver
from .settings import Settings

__version__ = "0.1.0"

__all__ = [
    "ArchiveIngester",
    "BatchUploader",
    "BudgetExceeded",
    "FetchTimeout",
    "MalformedInput",
    "PageNotFound",
    "ProjectNotFound",
    "ProofroomError",
    "ServeTimeResolver",
    "Settings",
    "SiteMirror",
    "StorageError",
    "TransientFetchError",
    "UpstreamError",
    "Workspace",
    "canonicalize",
    "find_references",
    "ingest_images",
    "rewrite",
]
