"""Document store layer.

Components:
- paths: path addressing and copy-on-write tree updates
- document: the canonical scenario document store
- arrays: CRUD over embedded array sections
"""

from .arrays import ArraySection
from .document import DocumentStore
from .paths import (
    IDENTITY_FIELDS,
    assoc_in,
    dissoc_in,
    get_in,
    has_path,
    identity_of,
    normalize_path,
    path_to_str,
)

__all__ = [
    "DocumentStore",
    "ArraySection",
    "IDENTITY_FIELDS",
    "assoc_in",
    "dissoc_in",
    "get_in",
    "has_path",
    "identity_of",
    "normalize_path",
    "path_to_str",
]
