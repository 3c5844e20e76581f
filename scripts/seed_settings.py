#!/usr/bin/env python3
"""
Seed the settings table with defaults.

Writes the default values of every category for keys that have no row
yet. Fields read from the environment (hosts, credentials, secrets) are
skipped so they keep following the environment. Existing rows are left
alone, so the script is safe to run on every deploy.

Usage:
    python scripts/seed_settings.py
"""

import asyncio
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from app.config import get_settings
from app.database import async_session_factory, engine
from app.models import Setting, SettingCategory
from app.schemas.settings import build_default_settings
from app.services.settings_store import get_settings_store


async def seed_settings() -> int:
    """Insert missing default rows. Returns the number of rows written."""
    defaults = build_default_settings(get_settings())
    store = get_settings_store()
    written = 0

    async with async_session_factory() as db:
        result = await db.execute(select(Setting.key))
        existing = set(result.scalars().all())

        for category in SettingCategory:
            category_settings = defaults.category(category)
            values = category_settings.seed_values()
            missing = {
                field: value
                for field, value in values.items()
                if Setting.build_key(category, field) not in existing
            }
            if not missing:
                print(f"  {category.value}: up to date")
                continue

            await store.save_category(db, category, missing)
            written += len(missing)
            print(f"  {category.value}: {len(missing)} settings added")

        await db.commit()

    return written


async def main():
    print("Seeding default settings...")
    written = await seed_settings()
    print(f"Done. {written} settings written.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
