"""Example: Store Layer Features Demo.

This example shows the document store, array sections and the file
adapter without a remote service.
"""

import asyncio
import tempfile

from scenario_sync import (
    ArrayOp,
    ArraySection,
    BatchOperation,
    DocumentStore,
    FileScenarioAdapter,
    PathError,
)


def demo_paths():
    """Demonstrate path reads and copy-on-write writes."""
    print("\n" + "=" * 50)
    print("PATH UPDATES DEMO")
    print("=" * 50)

    def show(event):
        print(f"  change: {event.kind.value} {event.version.changed_paths}")

    store = DocumentStore(on_change=show)
    store.init({"settings": {"general": {"projectLife": 20}, "modules": {"cost": {}}}})

    before = store.snapshot()
    store.set_by_path("settings.general.projectLife", 25, source="demo")
    after = store.snapshot()

    print(f"\nprojectLife: {store.get_by_path('settings.general.projectLife')}")
    print(f"Old snapshot untouched: {before['settings']['general']['projectLife'] == 20}")
    print(f"Sibling shared: {before['settings']['modules'] is after['settings']['modules']}")

    # Several writes, one version
    store.update_many(
        [
            ("settings.modules.cost.escalationRate", {"key": "escalationRate"}),
            (["settings", "general", "projectName"], "North Ridge"),
        ]
    )
    print(f"Version after batch: {store.version}")

    rejected = store.set_by_path("", 1)
    print(f"\nRoot write rejected: {isinstance(rejected.error, PathError)}")

    print("\nHistory:")
    for record in store.get_history():
        print(f"  v{record.version} {record.source or '-'} {record.changed_paths}")


def demo_arrays():
    """Demonstrate keyed array sections."""
    print("\n" + "=" * 50)
    print("ARRAY SECTION DEMO")
    print("=" * 50)

    store = DocumentStore({"settings": {"locations": []}})
    locations = ArraySection(store, "settings.locations", id_prefix="loc")

    locations.add_item({"id": "north", "name": "North"})
    locations.add_item({"name": "South"})
    print(f"Items: {locations.items}")

    result = locations.update_item("missing", {"name": "?"})
    print(f"Update of unknown id succeeded: {result.success} ({result.error})")

    locations.batch(
        [
            BatchOperation(type=ArrayOp.UPDATE, id="north", item={"capacity": 50}),
            BatchOperation(type=ArrayOp.REMOVE, id=locations.items[-1]["id"]),
        ]
    )
    print(f"After batch: {locations.items}")


async def demo_file_adapter():
    """Demonstrate file persistence."""
    print("\n" + "=" * 50)
    print("FILE ADAPTER DEMO")
    print("=" * 50)

    with tempfile.TemporaryDirectory() as base_dir:
        adapter = FileScenarioAdapter(base_dir)
        created = await adapter.create({"name": "Offline case", "settings": {}})
        print(f"Created: {created.data}")

        listing = await adapter.list()
        print(f"Listed {listing.data.pagination.total} scenario(s)")

        missing = await adapter.get("nope")
        print(f"Missing: {missing.status_code} {missing.error}")
        print(f"Calls: {adapter.get_stats()}")


if __name__ == "__main__":
    demo_paths()
    demo_arrays()
    asyncio.run(demo_file_adapter())
