"""Input simulation routing.

Collects the distributions configured in the document, sends them to the
simulation service and writes each keyed result back under
``simulation.inputSim.distributionAnalysis``.
"""

from typing import Any, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import NoActiveDocumentError, RemoteFailureError, ScenarioSyncError
from ..remote.simulation import SimulationService
from ..store.document import DocumentStore
from ..types import Document, PathSegment, Result, SimulationRequest, SimulationSettings
from ..utils.logging import get_logger

logger = get_logger("simulation")

RESULTS_PATH: tuple[str, ...] = ("simulation", "inputSim", "distributionAnalysis")

DEFAULT_DISTRIBUTION_PATHS: tuple[str, ...] = (
    "settings.modules.revenue.energyProduction",
    "settings.modules.revenue.electricityPrice",
    "settings.modules.cost.escalationRate",
    "settings.modules.revenue.downtimePerEvent",
    "settings.modules.revenue.windVariability",
)


class InputSimulationRunner:
    """Runs the input simulation for the active document.

    Example:
        runner = InputSimulationRunner(store, HttpSimulationService(endpoint))
        result = await runner.update_distributions()
        # result.data == ["energyProduction", "electricityPrice", ...]
    """

    def __init__(
        self,
        store: DocumentStore,
        service: SimulationService,
        distribution_paths: Sequence[str | Sequence[PathSegment]] = DEFAULT_DISTRIBUTION_PATHS,
    ):
        self._store = store
        self._service = service
        self._distribution_paths = list(distribution_paths)

    def build_request(self) -> SimulationRequest:
        """Request for the active document.

        Paths that are absent in the document are left out.

        Raises:
            NoActiveDocumentError: If no document is active.
        """
        document = self._store.require_document("simulate")

        distributions = []
        for path in self._distribution_paths:
            distribution = self._store.get_by_path(path)
            if distribution is not None:
                distributions.append(distribution)

        settings = self._store.get_by_path("settings.simulation", {}) or {}
        project_life = self._store.get_by_path("settings.general.projectLife")

        run = SimulationSettings(
            iterations=settings.get("iterations") or 10000,
            seed=settings.get("seed") or 42,
            percentiles=settings.get("percentiles") or [],
            years=project_life or 20,
        )
        logger.debug(
            f"Built request with {len(distributions)} distribution(s) for "
            f"scenario {document.get('id') or '<new>'}"
        )
        return SimulationRequest(distributions=distributions, simulation_settings=run)

    async def update_distributions(self) -> Result[list[str]]:
        """Simulate every configured distribution and store the results.

        All results land in one ``update_many`` call. Results without a
        distribution key are ignored.

        Returns:
            Result carrying the keys that were written.
        """
        try:
            request = self.build_request()
        except NoActiveDocumentError as e:
            return Result.fail(e)
        except PydanticValidationError as e:
            return Result.fail(ScenarioSyncError(f"Invalid simulation settings: {e}"))

        if not request.distributions:
            logger.info("No distributions configured; nothing to simulate")
            return Result.ok([])

        try:
            response = await self._service.simulate(request)
        except Exception as e:
            logger.exception("Simulation service raised")
            return Result.fail(RemoteFailureError("simulate", str(e)))

        if not response.success:
            return Result.fail(
                RemoteFailureError("simulate", response.error or "unknown error", response.status_code)
            )

        updates = route_results(_simulation_info(response.data))
        if not updates:
            logger.warning("Simulation returned no keyed results")
            return Result.ok([])

        written = self._store.update_many(
            [((*RESULTS_PATH, key), value) for key, value in updates.items()],
            source="simulation",
        )
        if not written.success:
            return Result.fail(written.error)

        logger.info(f"Stored {len(updates)} distribution result(s)")
        return Result.ok(list(updates))

    def get_results(self) -> Document:
        """Stored results keyed by distribution key."""
        return self._store.get_by_path(list(RESULTS_PATH), {}) or {}


def route_results(results: Sequence[Any]) -> dict[str, Any]:
    """Map each result to its distribution key; the last one wins on a repeat."""
    routed: dict[str, Any] = {}
    for result in results:
        if not isinstance(result, dict):
            continue
        distribution = result.get("distribution")
        key = distribution.get("key") if isinstance(distribution, dict) else None
        if key in (None, ""):
            continue
        routed[str(key)] = result
    return routed


def _simulation_info(data: Any) -> list[Any]:
    if isinstance(data, dict):
        data = data.get("simulationInfo", [])
    return data if isinstance(data, list) else []
