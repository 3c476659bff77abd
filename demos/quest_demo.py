"""
Quest Demo: Goal -> Skill Tree -> Progression

Demonstrates:
- Creating a goal and generating its skill tree
- Completing quests and watching unlocks cascade
- XP, level ups and streaks through the event bus
- Regenerating the tree without losing completed work
- Auto-save to a local state file

Uses the generation server from ``levelup.json`` when one is configured,
the offline demo generator otherwise.

Run: python -m demos.quest_demo
"""

import asyncio
import logging

from levelup.backend import DemoGenerationBackend, HttpGenerationBackend
from levelup.core import EngineConfig, ProgressionEvent, configure_logging
from levelup.core.events import Event
from levelup.progression import ProgressionEngine
from levelup.save import SaveManager


logger = logging.getLogger("QuestDemo")


# ============================================================================
# VIEW (Event handlers only)
# ============================================================================

class ConsoleView:
    """Prints progression events as they happen."""

    def __init__(self, engine: ProgressionEngine):
        self.engine = engine
        bus = engine.event_bus
        bus.subscribe(ProgressionEvent.NODE_COMPLETED, self.on_completed)
        bus.subscribe(ProgressionEvent.NODES_UNLOCKED, self.on_unlocked)
        bus.subscribe(ProgressionEvent.LEVEL_UP, self.on_level_up)
        bus.subscribe(ProgressionEvent.TREE_COMPLETED, self.on_tree_completed)

    def on_completed(self, event: Event) -> None:
        node = event["node"]
        print(f"  [done] {node.title} (+{node.xp_value} XP)")

    def on_unlocked(self, event: Event) -> None:
        tree = self.engine.store.require_tree(event["tree_id"])
        for node_id in event["node_ids"]:
            print(f"  [unlocked] {tree.node(node_id).title}")

    def on_level_up(self, event: Event) -> None:
        print(f"  *** LEVEL UP! Now level {event['level']} ***")

    def on_tree_completed(self, event: Event) -> None:
        print(f"  *** Tree complete: {event['tree'].title} ***")

    def show_tree(self, tree) -> None:
        print(f"\n{tree.title}  ({tree.progress_percentage:.0f}%)")
        for branch in tree.branches:
            print(f"  {branch.name}")
            for node_id in branch.node_ids:
                node = tree.node(node_id)
                print(f"    T{node.tier} [{node.status.value:>11}] {node.title} ({node.formatted_estimate})")

    def show_stats(self) -> None:
        stats = self.engine.stats
        print(
            f"\nLevel {stats.level} | {stats.total_xp} XP "
            f"({self.engine.xp_to_next_level()} to next) | "
            f"streak {stats.current_streak} (best {stats.longest_streak})"
        )


# ============================================================================
# MAIN
# ============================================================================

async def run(config: EngineConfig) -> None:
    if config.server_address:
        backend = HttpGenerationBackend.from_config(config)
    else:
        backend = DemoGenerationBackend()

    engine = ProgressionEngine(backend=backend, config=config)
    view = ConsoleView(engine)

    saves = SaveManager(engine.store, save_path=config.save_path)
    if saves.load():
        logger.info(f"Loaded {engine.store.goal_count} goals from {saves.state_path}")
    saves.enable_auto_save()

    try:
        goal = await engine.create_goal("Ship a side project", "Build and launch something small")
        engine.goals.auto_pin_if_needed()
        update = await engine.generate_tree(goal.id)
        tree = update.tree
        view.show_tree(tree)

        first = tree.available_nodes[0]
        engine.start_node(first.id)
        engine.complete_node(first.id, notes="Done in the demo")

        # Regenerate once; the finished quest survives the merge
        result = await engine.refresh_tree(tree.id)
        tree = result.tree
        print(f"  [refresh] +{result.nodes_added} ~{result.nodes_modified} -{result.nodes_removed}")

        # Work through the rest one available quest at a time
        while tree.available_nodes:
            engine.complete_node(tree.available_nodes[0].id)

        view.show_tree(tree)
        view.show_stats()
    finally:
        await engine.close()


def main():
    configure_logging(logging.INFO)
    config = EngineConfig.load("levelup.json")
    asyncio.run(run(config))


if __name__ == "__main__":
    main()
