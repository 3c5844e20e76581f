"""Persistence for admin-managed settings rows."""

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_context
from app.models.setting import PUBLIC_CATEGORIES, Setting, SettingCategory

logger = logging.getLogger(__name__)

MASKED = "********"


class SettingsStore:
    """Reads and writes rows of the ``settings`` table."""

    async def find_many(self) -> list[Setting]:
        """Read every settings row in its own session."""
        async with get_db_context() as db:
            result = await db.execute(select(Setting).order_by(Setting.key))
            return list(result.scalars().all())

    async def save_category(
        self,
        db: AsyncSession,
        category: SettingCategory,
        values: dict[str, Any],
    ) -> list[Setting]:
        """Upsert one category's values as JSON-encoded rows.

        A value equal to the masked placeholder keeps the stored secret.
        The caller commits and clears the settings cache.
        """
        keys = [Setting.build_key(category, field) for field in values]
        result = await db.execute(select(Setting).where(Setting.key.in_(keys)))
        existing = {row.key: row for row in result.scalars().all()}

        saved = []
        for field, value in values.items():
            key = Setting.build_key(category, field)
            row = existing.get(key)

            if value == MASKED:
                if row:
                    saved.append(row)
                continue

            encoded = json.dumps(value)
            if row:
                row.value = encoded
            else:
                row = Setting(
                    key=key,
                    value=encoded,
                    description=f"{category.value} setting: {field}",
                    is_public=category in PUBLIC_CATEGORIES,
                )
                db.add(row)
            saved.append(row)

        await db.flush()
        logger.info(f"Saved {len(saved)} {category.value} settings")
        return saved


# Singleton instance
_settings_store: SettingsStore | None = None


def get_settings_store() -> SettingsStore:
    """Get the settings store singleton."""
    global _settings_store
    if _settings_store is None:
        _settings_store = SettingsStore()
    return _settings_store
