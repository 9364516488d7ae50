"""Remote collaborators.

Components:
- adapter: scenario persistence (in-memory, file, HTTP)
- defaults: default scenario bodies
- simulation: distribution simulation service
- http: shared httpx client and response envelope handling
"""

from .adapter import (
    FileScenarioAdapter,
    HttpScenarioAdapter,
    InMemoryScenarioAdapter,
    LocalScenarioAdapter,
    ScenarioAdapter,
    normalize_identity,
)
from .defaults import (
    DefaultsProvider,
    HttpDefaultsProvider,
    StaticDefaultsProvider,
    default_scenario,
)
from .http import RemoteClient, to_envelope
from .simulation import HttpSimulationService, LocalSimulationService, SimulationService

__all__ = [
    # Adapters
    "ScenarioAdapter",
    "LocalScenarioAdapter",
    "InMemoryScenarioAdapter",
    "FileScenarioAdapter",
    "HttpScenarioAdapter",
    "normalize_identity",
    # Defaults
    "DefaultsProvider",
    "StaticDefaultsProvider",
    "HttpDefaultsProvider",
    "default_scenario",
    # Simulation
    "SimulationService",
    "HttpSimulationService",
    "LocalSimulationService",
    # HTTP
    "RemoteClient",
    "to_envelope",
]
