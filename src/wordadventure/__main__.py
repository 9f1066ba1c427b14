"""Main entry point: a minimal terminal learning loop."""
import asyncio
import logging
import signal
import sys

from wordadventure.app import WordAdventureApp
from wordadventure.config import ensure_directories
from wordadventure.logging_config import setup_logging

logger = logging.getLogger(__name__)

PROMPT = "[y] remembered  [n] forgot  [s] stats  [c <category>] category  [d] dashboard  [q] quit > "


async def shutdown(sig, loop):
    """Cleanup tasks tied to the service's shutdown."""
    print()  # Print newline before logging
    logger.info(f"Received exit signal {sig.name}...")

    tasks = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
    for task in tasks:
        task.cancel()

    logger.info(f"Cancelling {len(tasks)} outstanding tasks")
    await asyncio.gather(*tasks, return_exceptions=True)


def print_stats(app: WordAdventureApp) -> None:
    summary = app.learning.summary()
    print(
        f"Accuracy {summary.accuracy}% | remembered {summary.remembered_count} | "
        f"forgotten {summary.forgotten_count} | completed {summary.words_completed} | "
        f"streak {summary.streak}"
    )
    for goal in summary.goals:
        print(f"  {goal.goal.type.value} goal: {goal.current}/{goal.goal.target}")
    info = app.learning.dashboard.progression_info(summary.words_completed)
    print(f"  {info.title}: {info.description} ({info.progress:.0f}% to {info.next_milestone})")


async def learn(app: WordAdventureApp) -> None:
    """Ask for answers until the learner quits."""
    learning = app.learning
    while True:
        word = learning.current_word()
        if word is None:
            print("No words available.")
            return

        print(f"\n{word.text}  ({word.category}, {word.difficulty_tier.value})")
        command = (await asyncio.to_thread(input, PROMPT)).strip()

        if command == "q":
            return
        if command == "s":
            print_stats(app)
        elif command == "d":
            learning.start_dashboard()
        elif command.startswith("c "):
            selection = learning.start_category(command[2:].strip())
            if selection.session_info.degraded:
                print("Category unavailable, showing random words.")
        elif command in ("y", "n"):
            result = learning.answer(word.id, command == "y")
            if result.regenerated:
                print("New words are ready!")
        else:
            print("Unknown command")


async def main() -> None:
    """Run the application."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown(s, loop)))

    app = WordAdventureApp()
    try:
        logger.info("Starting WordAdventure...")
        await app.start()
        await learn(app)
    except asyncio.CancelledError:
        pass
    finally:
        logger.info("Cleaning up...")
        await app.stop()


def run() -> None:
    """Console script entry point."""
    ensure_directories()
    setup_logging("Starting WordAdventure v0.1.0 ...")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        loop.run_until_complete(main())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        loop.close()
    sys.exit(0)


if __name__ == "__main__":
    run()
