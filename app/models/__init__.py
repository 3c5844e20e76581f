"""SQLAlchemy models for the BnOverseas platform."""

from app.models.base import Base, BaseModel, TimestampMixin
from app.models.setting import PUBLIC_CATEGORIES, Setting, SettingCategory

__all__ = [
    # Base
    "Base",
    "BaseModel",
    "TimestampMixin",
    # Settings
    "Setting",
    "SettingCategory",
    "PUBLIC_CATEGORIES",
]
