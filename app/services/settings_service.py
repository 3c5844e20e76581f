"""Settings resolution: defaults, stored overrides and a process-wide cache.

Resolution order, lowest to highest precedence:

1. Hard-coded defaults, with hosts and secrets seeded from the environment.
2. Rows from the ``settings`` table whose key names a known category and field.

The merged result is cached for ``settings_cache_seconds`` (5 minutes by
default) and dropped explicitly after every settings write. The cache is a
plain reference swap with no locking; concurrent requests may both refresh it
and the last one wins.
"""

import json
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from app.config import Settings, get_settings
from app.exceptions import SettingsUnavailableError
from app.models.setting import SettingCategory
from app.schemas.payment import PaymentMethod
from app.schemas.settings import (
    CATEGORY_MODELS,
    CategorySettings,
    ConfigCheckResult,
    EmailSettings,
    NotificationSettings,
    PaymentSettings,
    ResolvedSettings,
    SecuritySettings,
    StorageSettings,
    build_default_settings,
)
from app.services.settings_store import get_settings_store

logger = logging.getLogger(__name__)


class SettingsRow(Protocol):
    key: str
    value: Any


class SettingsSource(Protocol):
    async def find_many(self) -> Iterable[SettingsRow]: ...


@dataclass(frozen=True)
class CacheEntry:
    """Memoized settings and the clock reading they were resolved at."""

    settings: ResolvedSettings
    timestamp: float

    def is_fresh(self, now: float, duration: float) -> bool:
        return now - self.timestamp < duration


def decode_setting_value(raw: Any) -> Any:
    """Decode a stored value as JSON, keeping the raw string if it is not JSON."""
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def merge_settings(defaults: ResolvedSettings, rows: Iterable[SettingsRow]) -> ResolvedSettings:
    """Overlay stored rows onto the defaults.

    Keys split at the first underscore into category and field. Rows with an
    unknown category or field are ignored. A value that does not validate
    against the field's declared type leaves the default in place.
    """
    merged = {
        name: getattr(defaults, name).model_dump()
        for name in ResolvedSettings.model_fields
    }

    for row in rows:
        category, _, remainder = row.key.partition("_")
        if not remainder or category not in merged:
            continue

        model = CATEGORY_MODELS[SettingCategory(category)]
        field_name = model.field_for_key(remainder)
        if field_name is None:
            continue

        value = decode_setting_value(row.value)
        try:
            validated = model.model_validate({**merged[category], field_name: value})
        except ValidationError:
            logger.warning(f"Ignoring setting {row.key}: {value!r} is not a valid {field_name}")
            continue
        merged[category][field_name] = getattr(validated, field_name)

    return ResolvedSettings(
        **{
            name: CATEGORY_MODELS[SettingCategory(name)].model_validate(data)
            for name, data in merged.items()
        }
    )


class SettingsResolver:
    """Resolves settings from the store and caches the merged result."""

    def __init__(
        self,
        store: SettingsSource | None = None,
        cache_duration: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        env_loader: Callable[[], Settings] = get_settings,
    ):
        self._store = store or get_settings_store()
        self._env_loader = env_loader
        self._cache_duration = (
            cache_duration if cache_duration is not None
            else env_loader().settings_cache_seconds
        )
        self._clock = clock
        self._cache: CacheEntry | None = None

    @property
    def cache_entry(self) -> CacheEntry | None:
        return self._cache

    def defaults(self) -> ResolvedSettings:
        """Default settings seeded from the current environment."""
        return build_default_settings(self._env_loader())

    async def get_settings(self) -> ResolvedSettings:
        """Get the merged settings, reading the store at most once per cache window.

        Raises:
            SettingsUnavailableError: If the store cannot be read
        """
        now = self._clock()
        entry = self._cache
        if entry is not None and entry.is_fresh(now, self._cache_duration):
            return entry.settings

        try:
            rows = await self._store.find_many()
            resolved = merge_settings(self.defaults(), rows)
        except Exception as e:
            logger.error(f"Failed to fetch settings: {e}")
            raise SettingsUnavailableError() from e

        self._cache = CacheEntry(settings=resolved, timestamp=now)
        return resolved

    async def get_settings_or_defaults(self) -> ResolvedSettings:
        """Like ``get_settings`` but returns the defaults when the store is down."""
        try:
            return await self.get_settings()
        except SettingsUnavailableError:
            logger.warning("Settings store unavailable, serving default settings")
            return self.defaults()

    async def get_category(self, category: SettingCategory | str) -> CategorySettings:
        settings = await self.get_settings()
        return settings.category(category)

    async def get_setting(self, category: SettingCategory | str, field: str) -> Any:
        """Get a single value by category and field (snake_case or camelCase)."""
        category_settings = await self.get_category(category)
        field_name = type(category_settings).field_for_key(field)
        if field_name is None:
            raise KeyError(f"Unknown {SettingCategory(category).value} setting: {field}")
        return getattr(category_settings, field_name)

    def clear_cache(self) -> None:
        """Drop the cached settings unconditionally."""
        self._cache = None


# Singleton instance
_settings_resolver: SettingsResolver | None = None


def get_settings_resolver() -> SettingsResolver:
    """Get the settings resolver singleton."""
    global _settings_resolver
    if _settings_resolver is None:
        _settings_resolver = SettingsResolver()
    return _settings_resolver


def set_settings_resolver(resolver: SettingsResolver | None) -> None:
    """Replace the settings resolver singleton (None resets it)."""
    global _settings_resolver
    _settings_resolver = resolver


def clear_settings_cache() -> None:
    """Clear the settings cache (call after any settings write)."""
    get_settings_resolver().clear_cache()


async def get_resolved_settings() -> ResolvedSettings:
    return await get_settings_resolver().get_settings()


async def get_setting_category(category: SettingCategory | str) -> CategorySettings:
    return await get_settings_resolver().get_category(category)


async def get_setting(category: SettingCategory | str, field: str) -> Any:
    return await get_settings_resolver().get_setting(category, field)


async def get_email_settings() -> EmailSettings:
    return await get_setting_category(SettingCategory.EMAIL)


async def get_payment_settings() -> PaymentSettings:
    return await get_setting_category(SettingCategory.PAYMENTS)


async def get_storage_settings() -> StorageSettings:
    return await get_setting_category(SettingCategory.STORAGE)


async def get_security_settings() -> SecuritySettings:
    return await get_setting_category(SettingCategory.SECURITY)


async def get_notification_settings() -> NotificationSettings:
    return await get_setting_category(SettingCategory.NOTIFICATIONS)


async def resolve_category(category: SettingCategory | str) -> CategorySettings:
    """Resolve a category, falling back to environment-only configuration.

    Every integration factory goes through here, so a store outage degrades
    each of them the same way: to the defaults seeded from the environment.
    """
    resolver = get_settings_resolver()
    try:
        return await resolver.get_category(category)
    except SettingsUnavailableError:
        logger.warning(
            f"Using environment configuration for {SettingCategory(category).value} settings"
        )
        return resolver.defaults().category(category)


async def check_email_configuration() -> ConfigCheckResult:
    """Check that the SMTP settings are filled in."""
    try:
        email_settings = await get_email_settings()
    except SettingsUnavailableError:
        return ConfigCheckResult(success=False, error="Failed to test email configuration")

    if not email_settings.smtp_host or not email_settings.smtp_port:
        return ConfigCheckResult(success=False, error="SMTP host and port are required")

    if not email_settings.smtp_username or not email_settings.smtp_password:
        return ConfigCheckResult(success=False, error="SMTP username and password are required")

    return ConfigCheckResult(success=True, message="Email configuration appears valid")


async def check_storage_configuration() -> ConfigCheckResult:
    """Check that object storage credentials are filled in when S3 is the provider."""
    try:
        storage_settings = await get_storage_settings()
    except SettingsUnavailableError:
        return ConfigCheckResult(success=False, error="Failed to test storage configuration")

    if storage_settings.uses_object_storage:
        if not storage_settings.aws_access_key_id or not storage_settings.aws_secret_access_key:
            return ConfigCheckResult(success=False, error="AWS credentials are required")

        if not storage_settings.aws_s3_bucket:
            return ConfigCheckResult(success=False, error="S3 bucket name is required")

    return ConfigCheckResult(success=True, message="Storage configuration appears valid")


async def check_payment_configuration(gateway: PaymentMethod) -> ConfigCheckResult:
    """Check that the credentials for one payment gateway are filled in."""
    try:
        payment_settings = await get_payment_settings()
    except SettingsUnavailableError:
        return ConfigCheckResult(success=False, error=f"Failed to test {gateway.value} configuration")

    if gateway == PaymentMethod.RAZORPAY:
        if not payment_settings.razorpay_key_id or not payment_settings.razorpay_key_secret:
            return ConfigCheckResult(success=False, error="Razorpay credentials are required")
    elif gateway == PaymentMethod.STRIPE:
        if not payment_settings.stripe_public_key or not payment_settings.stripe_secret_key:
            return ConfigCheckResult(success=False, error="Stripe credentials are required")
    elif gateway == PaymentMethod.PAYPAL:
        if not payment_settings.paypal_client_id:
            return ConfigCheckResult(success=False, error="PayPal client ID is required")

    return ConfigCheckResult(success=True, message=f"{gateway.value} configuration appears valid")
