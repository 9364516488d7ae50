"""View layer.

Components:
- registry: view id -> commit function
- dirty: per-view dirty flags and the aggregate unsaved-changes flag
- form: buffered editors (FormView, ArraySectionView)
"""

from .dirty import DirtyTracker
from .form import ArraySectionView, FormView
from .registry import CommitFn, ViewRecord, ViewRegistry

__all__ = [
    "ViewRegistry",
    "ViewRecord",
    "CommitFn",
    "DirtyTracker",
    "FormView",
    "ArraySectionView",
]
