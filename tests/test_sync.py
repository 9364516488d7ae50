"""Tests for the Sync layer: commit coordination, save/load and simulation routing."""

import asyncio

import pytest
from pydantic import BaseModel

from scenario_sync.exceptions import (
    CommitFailureError,
    NoActiveDocumentError,
    NoIdentityError,
    OperationInProgressError,
    RemoteFailureError,
)
from scenario_sync.remote import InMemoryScenarioAdapter, LocalSimulationService, StaticDefaultsProvider
from scenario_sync.store import DocumentStore
from scenario_sync.sync import CommitCoordinator, InputSimulationRunner, ScenarioManager, route_results
from scenario_sync.types import RemoteResponse, ScenarioListing
from scenario_sync.views import DirtyTracker, FormView, ViewRegistry


def make_coordinator(document=None):
    store = DocumentStore(document if document is not None else {"settings": {}})
    registry = ViewRegistry()
    tracker = DirtyTracker()
    return CommitCoordinator(store, registry, tracker), store, registry, tracker


def make_manager(adapter=None, defaults=None):
    store = DocumentStore()
    registry = ViewRegistry()
    tracker = DirtyTracker()
    coordinator = CommitCoordinator(store, registry, tracker)
    adapter = adapter if adapter is not None else InMemoryScenarioAdapter()
    defaults = defaults or StaticDefaultsProvider(
        {"default": {"name": "New Scenario", "settings": {"x": 1}}}
    )
    manager = ScenarioManager(store, coordinator, tracker, adapter, defaults)
    return manager, store, registry, tracker, adapter


class SlowAdapter(InMemoryScenarioAdapter):
    """Adapter whose create waits until released."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def create(self, payload):
        await self.release.wait()
        return await super().create(payload)


class RaisingAdapter(InMemoryScenarioAdapter):
    """Adapter whose get raises instead of returning a failure."""

    async def get(self, scenario_id):
        raise ConnectionError("socket closed")


class AnonymousCreateAdapter(InMemoryScenarioAdapter):
    """Adapter whose create succeeds without returning an id."""

    async def create(self, payload):
        self._begin("create")
        return RemoteResponse.ok({"name": payload.get("name")}, status_code=201)


class XSettings(BaseModel):
    x: int


class TestCommitCoordinator:
    """Tests for CommitCoordinator."""

    @pytest.mark.asyncio
    async def test_commit_order_is_registration_order(self):
        """Test dirty views commit exactly once each, in order."""
        coordinator, store, registry, tracker = make_coordinator()
        calls = []

        for view_id in ("A", "B", "C"):
            registry.register(view_id, lambda v=view_id: calls.append(v))

        # Marked dirty out of order
        tracker.set_dirty("C")
        tracker.set_dirty("A")
        tracker.set_dirty("B")

        result = await coordinator.submit_all_forms()

        assert result.success
        assert calls == ["A", "B", "C"]
        assert result.committed == ["A", "B", "C"]
        assert not tracker.has_unsaved_changes

    @pytest.mark.asyncio
    async def test_empty_pass(self):
        """Test no dirty views means immediate success and no pass."""
        coordinator, store, _, _ = make_coordinator({"x": 1})
        version = store.version

        result = await coordinator.submit_all_forms()

        assert result.success
        assert result.document == {"x": 1}
        assert store.version == version
        assert coordinator.pass_count == 0

    @pytest.mark.asyncio
    async def test_skip_missing_handler(self):
        """Test a view that unregistered after going dirty is skipped."""
        coordinator, _, registry, tracker = make_coordinator()
        calls = []

        registry.register("A", lambda: calls.append("A"))
        unregister_b = registry.register("B", lambda: calls.append("B"))
        registry.register("C", lambda: calls.append("C"))
        for view_id in ("A", "B", "C"):
            tracker.set_dirty(view_id)

        unregister_b()
        result = await coordinator.submit_all_forms()

        assert result.success
        assert calls == ["A", "C"]
        assert result.skipped == ["B"]
        assert not tracker.is_dirty("B")

    @pytest.mark.asyncio
    async def test_failure_aborts_pass(self):
        """Test the first raising commit stops the pass."""
        coordinator, _, registry, tracker = make_coordinator()
        calls = []

        def failing():
            calls.append("B")
            raise RuntimeError("bad buffer")

        registry.register("A", lambda: calls.append("A"))
        registry.register("B", failing)
        registry.register("C", lambda: calls.append("C"))
        for view_id in ("A", "B", "C"):
            tracker.set_dirty(view_id)

        result = await coordinator.submit_all_forms()

        assert not result.success
        assert result.document is None
        assert isinstance(result.error, CommitFailureError)
        assert result.error.view_id == "B"
        assert isinstance(result.error.original_error, RuntimeError)
        assert calls == ["A", "B"]
        assert result.committed == ["A"]
        assert result.pending == ["B", "C"]
        assert not tracker.is_dirty("A")
        assert tracker.is_dirty("B")
        assert tracker.is_dirty("C")

    @pytest.mark.asyncio
    async def test_declined_view_stays_dirty(self):
        """Test a commit returning False leaves its view dirty."""
        coordinator, _, registry, tracker = make_coordinator()

        registry.register("A", lambda: False)
        registry.register("B", lambda: True)
        tracker.set_dirty("A")
        tracker.set_dirty("B")

        result = await coordinator.submit_all_forms()

        assert result.success
        assert result.declined == ["A"]
        assert result.committed == ["B"]
        assert tracker.is_dirty("A")
        assert not tracker.is_dirty("B")

    @pytest.mark.asyncio
    async def test_async_commit_functions(self):
        """Test awaitable commit functions are awaited."""
        coordinator, store, registry, tracker = make_coordinator({"settings": {}})

        async def commit():
            await asyncio.sleep(0)
            store.set_by_path("settings.saved", True)

        registry.register("A", commit)
        tracker.set_dirty("A")

        result = await coordinator.submit_all_forms()

        assert result.success
        assert result.document["settings"]["saved"] is True

    @pytest.mark.asyncio
    async def test_edit_during_pass_stays_dirty(self):
        """Test a view re-dirtied while the pass runs is not cleared."""
        coordinator, _, registry, tracker = make_coordinator()

        def commit_a():
            # Another edit lands on A while its commit runs
            tracker.set_dirty("A")

        registry.register("A", commit_a)
        tracker.set_dirty("A")

        result = await coordinator.submit_all_forms()

        assert result.success
        assert tracker.is_dirty("A")

    @pytest.mark.asyncio
    async def test_passes_are_serialized(self):
        """Test overlapping passes never run commit functions concurrently."""
        coordinator, _, registry, tracker = make_coordinator()
        active = []
        overlaps = []

        async def commit():
            if active:
                overlaps.append(True)
            active.append(1)
            await asyncio.sleep(0.01)
            active.pop()

        registry.register("A", commit)
        tracker.set_dirty("A")

        async def dirty_then_submit():
            tracker.set_dirty("A")
            return await coordinator.submit_all_forms()

        results = await asyncio.gather(coordinator.submit_all_forms(), dirty_then_submit())

        assert all(r.success for r in results)
        assert overlaps == []

    @pytest.mark.asyncio
    async def test_unknown_dirty_ids_follow_registered(self):
        """Test ids the registry never saw are ordered after registered ones."""
        coordinator, _, registry, tracker = make_coordinator()
        tracker.set_dirty("ghost")
        tracker.set_dirty("B")
        tracker.set_dirty("A")
        registry.register("A", lambda: None)
        registry.register("B", lambda: None)

        assert coordinator.pending_views() == ["A", "B", "ghost"]


class TestScenarioManager:
    """Tests for the save/load protocol."""

    @pytest.mark.asyncio
    async def test_save_round_trip(self):
        """Test initialize, edit, save creates once and clears unsaved state."""
        manager, store, _, tracker, adapter = make_manager()

        result = await manager.initialize()
        assert result.success
        assert store.get_by_path("settings.x") == 1
        assert manager.is_new_scenario()

        store.set_by_path(["settings", "x"], 2)
        assert manager.has_unsaved_changes

        result = await manager.save({"name": "S1"})

        assert result.success
        assert adapter.get_stats() == {"create": 1}
        stored = (await adapter.get(store.identity)).data
        assert stored["settings"]["x"] == 2
        assert stored["name"] == "S1"

        assert store.identity is not None
        assert store.get_by_path("name") == "S1"
        assert store.get_by_path("createdAt") is not None
        assert not manager.has_unsaved_changes
        assert not manager.is_new_scenario()

    @pytest.mark.asyncio
    async def test_save_commits_views_first(self):
        """Test save drains dirty views into the payload."""
        manager, store, registry, tracker, adapter = make_manager()
        await manager.initialize()

        form = FormView("x-form", store, registry, tracker, "settings")
        form.on_mount()
        form.edit("x", 5)

        result = await manager.save()

        assert result.success
        assert (await adapter.get(store.identity)).data["settings"]["x"] == 5
        assert not tracker.has_unsaved_changes

    @pytest.mark.asyncio
    async def test_second_save_updates(self):
        """Test a persisted scenario goes through the update route."""
        manager, store, _, _, adapter = make_manager()
        await manager.initialize()
        await manager.save({"name": "S1"})
        scenario_id = store.identity

        store.set_by_path("settings.x", 3)
        result = await manager.save()

        assert result.success
        assert adapter.get_stats() == {"create": 1, "update": 1}
        assert store.identity == scenario_id
        assert store.get_by_path("updatedAt") is not None
        assert store.get_by_path("name") == "S1"

    @pytest.mark.asyncio
    async def test_update_without_identity(self):
        """Test update on a never-saved scenario fails without any call."""
        manager, store, registry, tracker, adapter = make_manager()
        await manager.initialize()

        calls = []
        registry.register("view", lambda: calls.append("view"))
        tracker.set_dirty("view")

        result = await manager.update()

        assert not result.success
        assert isinstance(result.error, NoIdentityError)
        assert adapter.get_stats() == {}
        assert calls == []
        assert tracker.is_dirty("view")

    @pytest.mark.asyncio
    async def test_update_with_identity(self):
        """Test update merges metadata after a successful round trip."""
        manager, store, _, _, adapter = make_manager()
        await manager.initialize()
        await manager.save({"name": "S1"})

        result = await manager.update({"description": "revised"})

        assert result.success
        assert store.get_by_path("description") == "revised"
        assert adapter.get_stats()["update"] == 1

    @pytest.mark.asyncio
    async def test_save_without_document(self):
        """Test save before initialize fails fast."""
        manager, _, _, _, adapter = make_manager()

        result = await manager.save()

        assert isinstance(result.error, NoActiveDocumentError)
        assert adapter.get_stats() == {}

    @pytest.mark.asyncio
    async def test_commit_failure_aborts_save(self):
        """Test a failing commit returns that failure and skips the network."""
        manager, store, registry, tracker, adapter = make_manager()
        await manager.initialize()

        def failing():
            raise ValueError("broken view")

        registry.register("broken", failing)
        tracker.set_dirty("broken")

        result = await manager.save({"name": "S1"})

        assert isinstance(result.error, CommitFailureError)
        assert adapter.get_stats() == {}
        assert store.identity is None
        assert tracker.is_dirty("broken")

    @pytest.mark.asyncio
    async def test_declined_view_stays_dirty_after_save(self):
        """Test save keeps edits that failed validation flagged as unsaved."""
        manager, store, registry, tracker, _ = make_manager()
        await manager.initialize()

        form = FormView("x-form", store, registry, tracker, "settings", schema=XSettings)
        form.on_mount()
        form.edit("x", "not a number")
        registry.register("other", lambda: True)
        tracker.set_dirty("other")

        result = await manager.save({"name": "S1"})

        assert result.success
        assert form.is_dirty
        assert not tracker.is_dirty("other")
        assert manager.has_unsaved_changes
        assert form.values["x"] == "not a number"
        assert store.get_by_path("settings.x") == 1

    @pytest.mark.asyncio
    async def test_create_without_id_fails(self):
        """Test a create response with no id is a failure, not a saved scenario."""
        manager, store, _, _, adapter = make_manager(AnonymousCreateAdapter())
        await manager.initialize()

        result = await manager.save({"name": "S1"})

        assert isinstance(result.error, RemoteFailureError)
        assert "no id" in str(result.error)
        assert adapter.get_stats() == {"create": 1}
        assert store.identity is None
        assert "id" not in store.snapshot()
        assert manager.is_new_scenario()

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_state(self):
        """Test a failed remote call leaves document and flags as they were."""
        manager, store, registry, tracker, adapter = make_manager()
        await manager.initialize()
        store.set_by_path("settings.x", 7)
        declined = []
        registry.register("declining", lambda: declined.append(1) or False)
        tracker.set_dirty("declining")

        adapter.inject_failure("create", "database down", 503)
        result = await manager.save({"name": "S1"})

        assert not result.success
        assert isinstance(result.error, RemoteFailureError)
        assert result.error.status_code == 503
        assert store.identity is None
        assert store.get_by_path("name") == "New Scenario"
        assert store.get_by_path("settings.x") == 7
        assert store.is_modified
        assert tracker.is_dirty("declining")
        assert manager.has_unsaved_changes

    @pytest.mark.asyncio
    async def test_load(self):
        """Test load replaces the document and leaves dirty flags alone."""
        adapter = InMemoryScenarioAdapter(
            {"abc": {"name": "Stored", "settings": {"x": 42}, "createdAt": "2024-01-01"}}
        )
        manager, store, _, tracker, _ = make_manager(adapter=adapter)
        await manager.initialize()
        tracker.set_dirty("some-view")

        result = await manager.load("abc")

        assert result.success
        assert store.identity == "abc"
        assert store.get_by_path("settings.x") == 42
        assert not store.is_modified
        assert tracker.is_dirty("some-view")

    @pytest.mark.asyncio
    async def test_load_failure_keeps_previous(self):
        """Test a failed load leaves the previous document active."""
        manager, store, _, _, _ = make_manager()
        await manager.initialize()
        before = store.snapshot()

        result = await manager.load("missing")

        assert not result.success
        assert isinstance(result.error, RemoteFailureError)
        assert result.error.status_code == 404
        assert store.snapshot() is before

    @pytest.mark.asyncio
    async def test_adapter_exception_becomes_failure(self):
        """Test an adapter that raises still yields a failure result."""
        manager, store, _, _, _ = make_manager(adapter=RaisingAdapter())
        await manager.initialize()

        result = await manager.load("abc")

        assert not result.success
        assert "socket closed" in str(result.error)

    @pytest.mark.asyncio
    async def test_delete_active(self):
        """Test deleting the active scenario re-initializes from defaults."""
        manager, store, _, _, adapter = make_manager()
        await manager.initialize()
        store.set_by_path("settings.x", 9)
        await manager.save({"name": "S1"})
        scenario_id = store.identity

        result = await manager.delete_scenario(scenario_id)

        assert result.success
        assert len(adapter) == 0
        assert store.is_active
        assert store.identity is None
        assert store.get_by_path("settings.x") == 1
        assert store.get_by_path("name") == "New Scenario"

    @pytest.mark.asyncio
    async def test_delete_other(self):
        """Test deleting another scenario leaves the active one alone."""
        adapter = InMemoryScenarioAdapter({"other": {"name": "Other", "settings": {}}})
        manager, store, _, _, _ = make_manager(adapter=adapter)
        await manager.initialize()
        await manager.save({"name": "Mine"})
        mine = store.identity

        result = await manager.delete_scenario("other")

        assert result.success
        assert store.identity == mine

    @pytest.mark.asyncio
    async def test_delete_missing(self):
        """Test deleting an unknown id fails."""
        manager, _, _, _, _ = make_manager()
        result = await manager.delete_scenario("nope")
        assert isinstance(result.error, RemoteFailureError)

    @pytest.mark.asyncio
    async def test_initialize_failure(self):
        """Test an unknown defaults variant fails and installs nothing."""
        manager, store, _, _, _ = make_manager()

        result = await manager.initialize("offshore")

        assert not result.success
        assert not store.is_active

    @pytest.mark.asyncio
    async def test_initialize_strips_server_fields(self):
        """Test defaults never carry an identity into a new scenario."""
        defaults = StaticDefaultsProvider(
            {"default": {"id": "x", "_id": "y", "createdAt": "t", "settings": {}}}
        )
        manager, store, _, _, _ = make_manager(defaults=defaults)

        await manager.initialize()

        assert store.identity is None
        assert store.get_by_path("createdAt") is None
        assert store.get_by_path("name") == "New Scenario"
        assert store.get_by_path("description") == ""

    @pytest.mark.asyncio
    async def test_overlapping_operations_rejected(self):
        """Test a second persistence call while one is in flight fails."""
        adapter = SlowAdapter()
        manager, store, _, _, _ = make_manager(adapter=adapter)
        await manager.initialize()

        first = asyncio.create_task(manager.save({"name": "S1"}))
        await asyncio.sleep(0)
        assert manager.running_operation == "save"

        second = await manager.save({"name": "S2"})
        blocked_load = await manager.load("anything")

        assert isinstance(second.error, OperationInProgressError)
        assert second.error.running == "save"
        assert isinstance(blocked_load.error, OperationInProgressError)

        adapter.release.set()
        result = await first

        assert result.success
        assert manager.running_operation is None
        assert adapter.get_stats() == {"create": 1}
        assert store.get_by_path("name") == "S1"

    @pytest.mark.asyncio
    async def test_list_scenarios(self):
        """Test paging and search."""
        adapter = InMemoryScenarioAdapter(
            {
                "1": {"name": "Base case", "createdAt": "2024-01-01"},
                "2": {"name": "High wind", "createdAt": "2024-02-01"},
                "3": {"name": "Low price", "description": "base price", "createdAt": "2024-03-01"},
            }
        )
        manager, _, _, _, _ = make_manager(adapter=adapter)

        result = await manager.list_scenarios(page=1, page_size=2)

        assert result.success
        assert isinstance(result.data, ScenarioListing)
        assert [s.id for s in result.data.items] == ["3", "2"]
        assert result.data.pagination.total == 3
        assert result.data.pagination.pages == 2

        result = await manager.list_scenarios(search="base")
        assert sorted(s.id for s in result.data.items) == ["1", "3"]

    @pytest.mark.asyncio
    async def test_prepare_payload(self):
        """Test payload defaults and metadata override."""
        manager, store, _, _, _ = make_manager()
        assert manager.prepare_payload() is None
        assert not manager.has_valid_scenario()

        store.init({"settings": {"x": 1}})
        payload = manager.prepare_payload({"description": "d"})

        assert manager.has_valid_scenario()
        assert payload == {
            "name": "New Scenario",
            "description": "d",
            "settings": {"x": 1},
            "simulation": {},
        }


def simulate_by_key(request):
    return [
        {"distribution": dist, "percentiles": {"P50": [1, 2, 3]}}
        for dist in request.distributions
    ]


class TestInputSimulationRunner:
    """Tests for simulation result routing."""

    def make_store(self):
        return DocumentStore(
            {
                "settings": {
                    "general": {"projectLife": 25},
                    "simulation": {"iterations": 500, "seed": 7, "percentiles": [50, 90]},
                    "modules": {
                        "revenue": {
                            "energyProduction": {"key": "energyProduction", "type": "normal"},
                            "electricityPrice": {"key": "electricityPrice", "type": "fixed"},
                        },
                        "cost": {"escalationRate": {"key": "escalationRate", "type": "normal"}},
                    },
                },
                "simulation": {"inputSim": {}},
            }
        )

    def test_build_request(self):
        """Test the request carries present distributions and run settings."""
        store = self.make_store()
        runner = InputSimulationRunner(store, LocalSimulationService(simulate_by_key))

        request = runner.build_request()

        assert [d["key"] for d in request.distributions] == [
            "energyProduction",
            "electricityPrice",
            "escalationRate",
        ]
        assert request.simulation_settings.iterations == 500
        assert request.simulation_settings.seed == 7
        assert request.simulation_settings.percentiles == [50, 90]
        assert request.simulation_settings.years == 25

    @pytest.mark.asyncio
    async def test_results_routed_in_one_update(self):
        """Test every keyed result lands under distributionAnalysis at once."""
        store = self.make_store()
        runner = InputSimulationRunner(store, LocalSimulationService(simulate_by_key))
        version = store.version

        result = await runner.update_distributions()

        assert result.success
        assert result.data == ["energyProduction", "electricityPrice", "escalationRate"]
        assert store.version == version + 1
        analysis = runner.get_results()
        assert analysis["energyProduction"]["percentiles"] == {"P50": [1, 2, 3]}
        assert store.get_by_path(
            ["simulation", "inputSim", "distributionAnalysis", "escalationRate", "distribution"]
        ) == {"key": "escalationRate", "type": "normal"}

    @pytest.mark.asyncio
    async def test_service_failure_leaves_document(self):
        """Test a failed simulation writes nothing."""
        store = self.make_store()

        def broken(request):
            raise RuntimeError("engine crashed")

        runner = InputSimulationRunner(store, LocalSimulationService(broken))
        version = store.version

        result = await runner.update_distributions()

        assert isinstance(result.error, RemoteFailureError)
        assert store.version == version

    @pytest.mark.asyncio
    async def test_without_document(self):
        """Test the runner needs an active document."""
        runner = InputSimulationRunner(DocumentStore(), LocalSimulationService(simulate_by_key))
        result = await runner.update_distributions()
        assert isinstance(result.error, NoActiveDocumentError)

    def test_route_results_ignores_unkeyed(self):
        """Test results without a distribution key are dropped."""
        routed = route_results(
            [
                {"distribution": {"key": "a"}, "v": 1},
                {"distribution": {}, "v": 2},
                {"v": 3},
                "garbage",
                {"distribution": {"key": "a"}, "v": 4},
            ]
        )
        assert routed == {"a": {"distribution": {"key": "a"}, "v": 4}}
