"""Synchronization layer.

Components:
- coordinator: drains dirty views into the document store
- protocol: save/update/load/initialize/delete against the remote adapter
- simulation: routes simulation results into the document
"""

from .coordinator import CommitCoordinator
from .protocol import ScenarioManager
from .simulation import InputSimulationRunner, route_results

__all__ = [
    "CommitCoordinator",
    "ScenarioManager",
    "InputSimulationRunner",
    "route_results",
]
