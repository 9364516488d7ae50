"""Scenario Sync - Simple API.

Usage:
    from scenario_sync import ScenarioEditor

    # Offline (in-memory persistence, built-in defaults)
    editor = ScenarioEditor()
    await editor.init()

    # Against the REST service (or set SCENARIO_SYNC_ENDPOINT)
    editor = ScenarioEditor(endpoint="http://localhost:5000")
"""

from typing import Any, Sequence

from .config import SyncConfig
from .remote.adapter import HttpScenarioAdapter, InMemoryScenarioAdapter, ScenarioAdapter
from .remote.defaults import DefaultsProvider, HttpDefaultsProvider, StaticDefaultsProvider
from .remote.http import RemoteClient
from .remote.simulation import HttpSimulationService, SimulationService
from .store.arrays import ArraySection
from .store.document import DocumentStore
from .sync.coordinator import CommitCoordinator
from .sync.protocol import MetadataInput, ScenarioManager
from .sync.simulation import InputSimulationRunner
from .types import CommitResult, Document, PathSegment, Result, ScenarioListing
from .utils.logging import configure_logging, get_logger
from .views.dirty import DirtyTracker
from .views.form import ArraySectionView, FormView, Transform
from .views.registry import ViewRegistry

logger = get_logger("client")


class ScenarioEditor:
    """One editing session over one scenario document.

    Wires the store, view registry, dirty tracker, commit coordinator and
    save/load protocol together. Collaborators passed explicitly win; the
    rest are built from the config (HTTP when an endpoint is set, in-memory
    otherwise).

    Usage:
        editor = ScenarioEditor()
        await editor.init()

        general = editor.form("general", "settings.general")
        general.on_mount()
        general.edit("projectLife", 25)

        result = await editor.save({"name": "Base case"})
        await editor.teardown()
    """

    def __init__(
        self,
        endpoint: str | None = None,
        config: SyncConfig | None = None,
        adapter: ScenarioAdapter | None = None,
        defaults: DefaultsProvider | None = None,
        simulation: SimulationService | None = None,
        configure_logs: bool = False,
    ):
        """Create an editor.

        Args:
            endpoint: REST service base URL (or set SCENARIO_SYNC_ENDPOINT).
            config: Full configuration; built from the environment if omitted.
            adapter: Persistence adapter override.
            defaults: Defaults provider override.
            simulation: Simulation service override.
            configure_logs: Configure package logging at ``config.log_level``.
        """
        self._config = config or SyncConfig.from_env(endpoint=endpoint)
        if configure_logs:
            configure_logging(self._config.log_level)

        self._remote: RemoteClient | None = None
        if self._config.endpoint and (adapter is None or defaults is None or simulation is None):
            self._remote = RemoteClient(
                self._config.endpoint,
                timeout=self._config.timeout,
                retry=self._config.retry,
            )

        if adapter is None:
            adapter = (
                HttpScenarioAdapter(client=self._remote)
                if self._remote
                else InMemoryScenarioAdapter()
            )
        if defaults is None:
            defaults = (
                HttpDefaultsProvider(client=self._remote)
                if self._remote
                else StaticDefaultsProvider()
            )
        if simulation is None and self._remote:
            simulation = HttpSimulationService(client=self._remote)

        self.store = DocumentStore()
        self.registry = ViewRegistry()
        self.tracker = DirtyTracker()
        self.coordinator = CommitCoordinator(self.store, self.registry, self.tracker)
        self.manager = ScenarioManager(
            self.store,
            self.coordinator,
            self.tracker,
            adapter,
            defaults,
            page_size=self._config.page_size,
            defaults_variant=self._config.defaults_variant,
        )
        self._adapter = adapter
        self._defaults = defaults
        self._simulation = simulation
        self._runner = InputSimulationRunner(self.store, simulation) if simulation else None

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def adapter(self) -> ScenarioAdapter:
        return self._adapter

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def init(self, scenario_id: str | None = None) -> Result[Document]:
        """Load ``scenario_id``, or install a fresh scenario from defaults."""
        if scenario_id is not None:
            return await self.manager.load(scenario_id)
        return await self.manager.initialize()

    async def teardown(self) -> None:
        """Drop the document, every view and every remote connection."""
        self.store.teardown()
        self.registry.clear()
        self.tracker.clear_all()

        closed: set[int] = set()
        for resource in (self._adapter, self._defaults, self._simulation):
            if resource is not None and id(resource) not in closed:
                closed.add(id(resource))
                await resource.close()
        if self._remote is not None:
            await self._remote.close()
            self._remote = None
        logger.info("Editor torn down")

    async def __aenter__(self) -> "ScenarioEditor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.teardown()

    # =========================================================================
    # DOCUMENT
    # =========================================================================

    @property
    def document(self) -> Document | None:
        return self.store.snapshot()

    @property
    def has_unsaved_changes(self) -> bool:
        return self.manager.has_unsaved_changes

    def get(self, path: str | Sequence[PathSegment], default: Any = None) -> Any:
        return self.store.get_by_path(path, default)

    def set(self, path: str | Sequence[PathSegment], value: Any) -> Result[Document]:
        return self.store.set_by_path(path, value, source="editor")

    def section(
        self,
        path: str | Sequence[PathSegment],
        id_field: str | None = None,
        id_prefix: str = "item",
    ) -> ArraySection:
        return ArraySection(self.store, path, id_field=id_field, id_prefix=id_prefix)

    # =========================================================================
    # VIEWS
    # =========================================================================

    def form(
        self,
        view_id: str,
        path: str | Sequence[PathSegment],
        schema: Any = None,
        transform_before_load: Transform | None = None,
        transform_before_save: Transform | None = None,
    ) -> FormView:
        """Create (but do not mount) a form bound to ``path``."""
        return FormView(
            view_id,
            self.store,
            self.registry,
            self.tracker,
            path,
            schema=schema,
            transform_before_load=transform_before_load,
            transform_before_save=transform_before_save,
        )

    def section_view(
        self,
        view_id: str,
        path: str | Sequence[PathSegment],
        id_field: str | None = None,
        id_prefix: str = "item",
    ) -> ArraySectionView:
        """Create (but do not mount) a buffered editor for an array section."""
        section = ArraySection(
            self.store,
            path,
            id_field=id_field,
            id_prefix=id_prefix,
            source=view_id,
        )
        return ArraySectionView(view_id, section, self.store, self.registry, self.tracker)

    async def submit_all_forms(self) -> CommitResult:
        return await self.coordinator.submit_all_forms()

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def save(self, metadata: MetadataInput = None) -> Result[Document]:
        return await self.manager.save(metadata)

    async def update(self, metadata: MetadataInput = None) -> Result[Document]:
        return await self.manager.update(metadata)

    async def load(self, scenario_id: str) -> Result[Document]:
        return await self.manager.load(scenario_id)

    async def initialize(self, variant: str | None = None) -> Result[Document]:
        return await self.manager.initialize(variant)

    async def delete_scenario(self, scenario_id: str) -> Result[str]:
        return await self.manager.delete_scenario(scenario_id)

    async def list_scenarios(
        self, page: int = 1, page_size: int | None = None, search: str | None = None
    ) -> Result[ScenarioListing]:
        return await self.manager.list_scenarios(page, page_size, search)

    # =========================================================================
    # SIMULATION
    # =========================================================================

    async def update_distributions(self) -> Result[list[str]]:
        """Run the input simulation and store its results."""
        if self._runner is None:
            raise RuntimeError("No simulation service configured")
        return await self._runner.update_distributions()
