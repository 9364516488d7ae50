"""Scenario Sync - State synchronization core for scenario editors.

Simple usage:
    from scenario_sync import ScenarioEditor

    editor = ScenarioEditor()
    await editor.init()
    editor.set("settings.general.projectLife", 25)
    await editor.save({"name": "Base case"})

Advanced usage:
    from scenario_sync import DocumentStore, ViewRegistry, DirtyTracker, CommitCoordinator
"""

__version__ = "0.1.0"

# =============================================================================
# SIMPLE API (start here)
# =============================================================================

from .client import ScenarioEditor
from .config import SyncConfig

# =============================================================================
# ADVANCED API
# =============================================================================

# Types
from .types import (
    ALL_VIEWS,
    ArrayOp,
    BatchOperation,
    ChangeEvent,
    ChangeKind,
    CommitResult,
    Document,
    DocumentVersion,
    Pagination,
    PathSegment,
    RemoteResponse,
    Result,
    ScenarioListing,
    ScenarioMetadata,
    ScenarioSummary,
    SimulationRequest,
    SimulationSettings,
)

# Exceptions
from .exceptions import (
    ArrayOperationError,
    CommitFailureError,
    NoActiveDocumentError,
    NoIdentityError,
    OperationInProgressError,
    PathError,
    RemoteFailureError,
    RetryExhaustedError,
    ScenarioSyncError,
    ValidationError,
)

# Store Layer
from .store import ArraySection, DocumentStore, assoc_in, get_in, normalize_path

# View Layer
from .views import ArraySectionView, DirtyTracker, FormView, ViewRegistry

# Sync Layer
from .sync import CommitCoordinator, InputSimulationRunner, ScenarioManager

# Remote Layer
from .remote import (
    DefaultsProvider,
    FileScenarioAdapter,
    HttpDefaultsProvider,
    HttpScenarioAdapter,
    HttpSimulationService,
    InMemoryScenarioAdapter,
    LocalSimulationService,
    ScenarioAdapter,
    SimulationService,
    StaticDefaultsProvider,
)

# Control
from .control import RetryConfig, RetryStrategy

# Utils
from .utils import StructuredLogger, configure_logging, get_logger

__all__ = [
    # Version
    "__version__",
    # Simple API
    "ScenarioEditor",
    "SyncConfig",
    # Types
    "ALL_VIEWS",
    "ArrayOp",
    "BatchOperation",
    "ChangeEvent",
    "ChangeKind",
    "CommitResult",
    "Document",
    "DocumentVersion",
    "Pagination",
    "PathSegment",
    "RemoteResponse",
    "Result",
    "ScenarioListing",
    "ScenarioMetadata",
    "ScenarioSummary",
    "SimulationRequest",
    "SimulationSettings",
    # Exceptions
    "ScenarioSyncError",
    "ArrayOperationError",
    "CommitFailureError",
    "NoActiveDocumentError",
    "NoIdentityError",
    "OperationInProgressError",
    "PathError",
    "RemoteFailureError",
    "RetryExhaustedError",
    "ValidationError",
    # Store
    "DocumentStore",
    "ArraySection",
    "assoc_in",
    "get_in",
    "normalize_path",
    # Views
    "ViewRegistry",
    "DirtyTracker",
    "FormView",
    "ArraySectionView",
    # Sync
    "CommitCoordinator",
    "ScenarioManager",
    "InputSimulationRunner",
    # Remote
    "ScenarioAdapter",
    "InMemoryScenarioAdapter",
    "FileScenarioAdapter",
    "HttpScenarioAdapter",
    "DefaultsProvider",
    "StaticDefaultsProvider",
    "HttpDefaultsProvider",
    "SimulationService",
    "HttpSimulationService",
    "LocalSimulationService",
    # Control
    "RetryConfig",
    "RetryStrategy",
    # Utils
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
