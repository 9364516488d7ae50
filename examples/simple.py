"""Scenario Sync examples.

Run offline:        python examples/simple.py
Against a service:  SCENARIO_SYNC_ENDPOINT=http://localhost:5000 python examples/simple.py
"""

import asyncio

from pydantic import BaseModel, Field

from scenario_sync import ScenarioEditor


class GeneralSettings(BaseModel):
    projectName: str = ""
    projectLife: int = Field(default=20, ge=1, le=50)


async def edit_and_save(editor: ScenarioEditor):
    """Example 1: Two views, one commit pass, one save."""
    print("\n" + "=" * 50)
    print("EXAMPLE 1: EDIT AND SAVE")
    print("=" * 50)

    await editor.init()

    # A form bound to a nested object
    general = editor.form("general", "settings.general", schema=GeneralSettings)
    general.on_mount()
    general.update({"projectName": "North Ridge", "projectLife": 25})

    # A buffered editor for a keyed array
    contracts = editor.section_view(
        "oem", "settings.modules.contracts.oemContracts", id_prefix="oem"
    )
    contracts.on_mount()
    contracts.add({"name": "Full service", "startYear": 1, "endYear": 5})

    print(f"Unsaved changes: {editor.has_unsaved_changes}")
    print(f"Dirty views: {editor.tracker.dirty_views()}")

    result = await editor.save({"name": "North Ridge base case"})
    if not result.success:
        print(f"Save failed: {result.error}")
        return

    print(f"Saved as {editor.store.identity}")
    print(f"Project life: {editor.get('settings.general.projectLife')}")
    print(f"Contracts: {editor.get('settings.modules.contracts.oemContracts')}")
    print(f"Unsaved changes: {editor.has_unsaved_changes}")


async def validation_declines(editor: ScenarioEditor):
    """Example 2: A form that fails validation stays dirty."""
    print("\n" + "=" * 50)
    print("EXAMPLE 2: VALIDATION")
    print("=" * 50)

    general = editor.form("general-strict", "settings.general", schema=GeneralSettings)
    general.on_mount()
    general.edit("projectLife", 120)

    result = await editor.submit_all_forms()

    print(f"Pass succeeded: {result.success}")
    print(f"Declined: {result.declined}")
    print(f"Errors: {general.errors}")

    general.reset()
    general.on_unmount()


async def browse(editor: ScenarioEditor):
    """Example 3: List, reload and delete."""
    print("\n" + "=" * 50)
    print("EXAMPLE 3: LIST / LOAD / DELETE")
    print("=" * 50)

    listing = await editor.list_scenarios()
    if not listing.success:
        print(f"List failed: {listing.error}")
        return

    for summary in listing.data.items:
        print(f"  {summary.id}  {summary.name}  ({summary.created_at})")

    scenario_id = editor.store.identity
    loaded = await editor.load(scenario_id)
    print(f"Reloaded: {loaded.success}")

    deleted = await editor.delete_scenario(scenario_id)
    print(f"Deleted: {deleted.success}; active scenario is new: {editor.store.identity is None}")


async def main():
    async with ScenarioEditor(configure_logs=True) as editor:
        await edit_and_save(editor)
        await validation_declines(editor)
        await browse(editor)


if __name__ == "__main__":
    asyncio.run(main())
