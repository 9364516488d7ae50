"""Core types and data models for scenario-sync."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import CommitFailureError, ScenarioSyncError

T = TypeVar("T")

# Path segments are keys into dicts or indices into lists.
PathSegment = str | int
Document = dict[str, Any]

# Sentinel view id that addresses every dirty entry at once.
ALL_VIEWS = "all"


# =============================================================================
# Enums
# =============================================================================


class ArrayOp(str, Enum):
    """Operations supported on embedded array sections."""

    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"
    REPLACE = "replace"


class ChangeKind(str, Enum):
    """Kinds of document change reported to store listeners."""

    SET = "set"
    ARRAY = "array"
    BATCH = "batch"
    METADATA = "metadata"
    REPLACE = "replace"
    CLEAR = "clear"


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a public operation.

    Operations return a Result rather than raising across the public
    boundary. ``error`` is set whenever ``success`` is False.
    """

    success: bool
    data: T | None = None
    error: ScenarioSyncError | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: ScenarioSyncError) -> "Result[T]":
        return cls(success=False, error=error)

    def __bool__(self) -> bool:
        return self.success


@dataclass
class CommitResult:
    """Outcome of one commit pass over the dirty views."""

    success: bool
    document: Document | None = None
    committed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    declined: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    error: CommitFailureError | None = None

    @property
    def data(self) -> Document | None:
        return self.document

    def __bool__(self) -> bool:
        return self.success


# =============================================================================
# Document Versions
# =============================================================================


class DocumentVersion(BaseModel):
    """Version information for the active document."""

    version: int
    timestamp: datetime = Field(default_factory=datetime.now)
    source: str | None = None
    changed_paths: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class ChangeEvent:
    """Notification sent to store listeners after every mutation."""

    kind: ChangeKind
    version: DocumentVersion
    previous: Document | None
    current: Document | None


# =============================================================================
# Array Sections
# =============================================================================


class BatchOperation(BaseModel):
    """One step of an array section batch."""

    type: ArrayOp
    id: str | None = None
    item: Any = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Element identities are compared as strings
        return None if value is None else str(value)


# =============================================================================
# Remote Envelope
# =============================================================================


class RemoteResponse(BaseModel):
    """Uniform envelope returned by every remote call."""

    success: bool
    data: Any = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def ok(cls, data: Any = None, status_code: int = 200) -> "RemoteResponse":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: int | None = None) -> "RemoteResponse":
        return cls(success=False, error=error, status_code=status_code)


class Pagination(BaseModel):
    """Paging block of a scenario listing."""

    total: int = 0
    page: int = 1
    limit: int = 100
    pages: int = 0


class ScenarioSummary(BaseModel):
    """Lightweight listing entry for a persisted scenario."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    description: str = ""
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return None if value is None else str(value)


class ScenarioListing(BaseModel):
    """A page of scenario summaries."""

    items: list[ScenarioSummary] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class ScenarioMetadata(BaseModel):
    """Name/description override applied at save time."""

    name: str | None = None
    description: str | None = None


# =============================================================================
# Simulation
# =============================================================================


class SimulationSettings(BaseModel):
    """Run configuration sent to the simulation service."""

    iterations: int = Field(default=10000, ge=1)
    seed: int = 42
    percentiles: list[Any] = Field(default_factory=list)
    years: int | None = None


class SimulationRequest(BaseModel):
    """A batch of distribution specifications plus run configuration."""

    distributions: list[dict[str, Any]]
    simulation_settings: SimulationSettings = Field(
        default_factory=SimulationSettings, alias="simulationSettings"
    )

    model_config = ConfigDict(populate_by_name=True)
