"""Setting model: admin-managed configuration rows."""

from enum import Enum

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class SettingCategory(str, Enum):
    """Groups that settings keys are namespaced under."""

    GENERAL = "general"
    BRANDING = "branding"
    EMAIL = "email"
    PAYMENTS = "payments"
    STORAGE = "storage"
    SECURITY = "security"
    NOTIFICATIONS = "notifications"
    INTEGRATIONS = "integrations"


PUBLIC_CATEGORIES = {SettingCategory.GENERAL, SettingCategory.BRANDING}


class Setting(BaseModel):
    """A single configuration entry.

    Keys are stored flat as ``{category}_{field}`` (e.g. ``email_smtpHost``),
    so the unique constraint on ``key`` is the (category, field) uniqueness.
    Values are JSON-encoded text.
    """

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(
        String(150),
        unique=True,
        nullable=False,
        index=True,
    )
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @staticmethod
    def build_key(category: SettingCategory | str, field: str) -> str:
        """Build the flat storage key for a category field."""
        category_value = category.value if isinstance(category, SettingCategory) else category
        return f"{category_value}_{field}"

    def __repr__(self) -> str:
        return f"<Setting(key={self.key})>"
