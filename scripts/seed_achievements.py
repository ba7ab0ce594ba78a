"""
Script to seed achievement definitions into the database.
Run with: python -m scripts.seed_achievements [--force]
"""

import asyncio
import sys
from collections import Counter

from clevercourse.core.database import async_session_maker, init_db
from clevercourse.services.achievement_seeder import generate_all_achievements, seed_achievements


async def run(force: bool = False) -> None:
    """Create tables if needed, then insert missing achievement definitions."""
    await init_db()

    achievements = generate_all_achievements()
    print(f"Generated {len(achievements)} achievement definitions.")

    async with async_session_maker() as session:
        counts = await seed_achievements(session, force=force)

    action = "Seeded/overwrote" if force else "Seeded"
    print(f"{action} {counts['seeded']} achievements, skipped {counts['skipped']} existing.")

    print("\nSummary by category:")
    for category, count in sorted(Counter(a["category"].value for a in achievements).items()):
        print(f"  {category}: {count}")

    print("\nSummary by rarity:")
    for rarity, count in Counter(a["rarity"].value for a in achievements).items():
        print(f"  {rarity}: {count}")


def main():
    force = "--force" in sys.argv
    asyncio.run(run(force))


if __name__ == "__main__":
    main()
