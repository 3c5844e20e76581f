"""Test settings resolution and caching"""

import pytest

from app.exceptions import SettingsUnavailableError
from app.models.setting import SettingCategory
from app.schemas.payment import PaymentMethod
from app.schemas.settings import CATEGORY_MODELS, ResolvedSettings
from app.services.settings_service import (
    check_email_configuration,
    check_payment_configuration,
    check_storage_configuration,
    clear_settings_cache,
    get_email_settings,
    get_setting,
    resolve_category,
)


async def test_defaults_with_no_rows(resolver):
    """Every category and field is populated when the table is empty"""
    settings = await resolver.get_settings()

    assert isinstance(settings, ResolvedSettings)
    for category in SettingCategory:
        category_settings = settings.category(category)
        assert isinstance(category_settings, CATEGORY_MODELS[category])
        for field_name in type(category_settings).model_fields:
            assert getattr(category_settings, field_name) is not None

    assert settings.general.site_name == "BnOverseas"
    assert settings.email.smtp_host == "smtp.gmail.com"
    assert settings.email.smtp_port == 587
    assert settings.payments.default_currency == "INR"
    assert settings.storage.max_file_size == 10


async def test_rows_override_defaults_with_declared_types(resolver, settings_store):
    settings_store.set("email_smtpHost", "mail.example.com")
    settings_store.set("email_smtpPort", 465)
    settings_store.set("payments_enableStripe", True)
    settings_store.set("storage_maxFileSize", 25)

    settings = await resolver.get_settings()

    assert settings.email.smtp_host == "mail.example.com"
    assert settings.email.smtp_port == 465
    assert settings.payments.enable_stripe is True
    assert settings.storage.max_file_size == 25
    # Untouched fields keep their defaults
    assert settings.email.from_name == "BnOverseas"


async def test_snake_case_and_irregular_aliases(resolver, settings_store):
    settings_store.set("email_smtp_username", "mailer")
    settings_store.set("branding_customCSS", "body { color: red; }")
    settings_store.set("notifications_enableSMSNotifications", True)

    settings = await resolver.get_settings()

    assert settings.email.smtp_username == "mailer"
    assert settings.branding.custom_css == "body { color: red; }"
    assert settings.notifications.enable_sms_notifications is True


async def test_non_json_value_is_used_as_raw_string(resolver, settings_store):
    settings_store.set_raw("general_siteName", "Study Abroad Hub")

    settings = await resolver.get_settings()

    assert settings.general.site_name == "Study Abroad Hub"


async def test_unknown_keys_are_ignored(resolver, settings_store):
    settings_store.set("email_unknownField", "x")
    settings_store.set("bogus_siteName", "x")
    settings_store.set("noprefix", "x")
    settings_store.set("general_", "x")

    settings = await resolver.get_settings()

    assert settings == resolver.defaults()


async def test_invalid_value_keeps_default(resolver, settings_store):
    settings_store.set("email_smtpPort", "not-a-port")
    settings_store.set("security_maxLoginAttempts", 10)

    settings = await resolver.get_settings()

    assert settings.email.smtp_port == 587
    assert settings.security.max_login_attempts == 10


async def test_cached_within_window(resolver, settings_store, clock):
    first = await resolver.get_settings()
    clock.advance(299)
    second = await resolver.get_settings()

    assert second is first
    assert settings_store.reads == 1


async def test_reread_after_window(resolver, settings_store, clock):
    await resolver.get_settings()
    settings_store.set("general_siteName", "Renamed")
    clock.advance(300)

    settings = await resolver.get_settings()

    assert settings_store.reads == 2
    assert settings.general.site_name == "Renamed"


async def test_clear_cache_forces_reread(resolver, settings_store):
    await resolver.get_settings()
    settings_store.set("general_siteName", "Renamed")

    clear_settings_cache()
    settings = await resolver.get_settings()

    assert settings_store.reads == 2
    assert settings.general.site_name == "Renamed"
    assert resolver.cache_entry is not None


async def test_store_failure_raises_unavailable(resolver, settings_store):
    settings_store.fail = True

    with pytest.raises(SettingsUnavailableError):
        await resolver.get_settings()
    with pytest.raises(SettingsUnavailableError):
        await get_email_settings()

    assert resolver.cache_entry is None


async def test_settings_or_defaults_never_fails(resolver, settings_store, env):
    env("SMTP_HOST", "smtp.env.example.com")
    settings_store.fail = True

    settings = await resolver.get_settings_or_defaults()

    assert settings.email.smtp_host == "smtp.env.example.com"
    assert settings.general.site_name == "BnOverseas"


async def test_resolve_category_falls_back_to_environment(resolver, settings_store, env):
    env("AWS_S3_BUCKET", "env-bucket")
    env("AWS_REGION", "ap-south-1")
    settings_store.fail = True

    storage = await resolve_category(SettingCategory.STORAGE)

    assert storage.aws_s3_bucket == "env-bucket"
    assert storage.aws_region == "ap-south-1"


async def test_stored_values_win_over_environment(resolver, settings_store, env):
    env("SMTP_HOST", "smtp.env.example.com")
    settings_store.set("email_smtpHost", "smtp.db.example.com")

    email = await resolve_category(SettingCategory.EMAIL)

    assert email.smtp_host == "smtp.db.example.com"


async def test_get_setting_by_camel_or_snake_name(settings_store):
    settings_store.set("payments_defaultCurrency", "USD")

    assert await get_setting(SettingCategory.PAYMENTS, "defaultCurrency") == "USD"
    assert await get_setting("payments", "default_currency") == "USD"

    with pytest.raises(KeyError):
        await get_setting(SettingCategory.PAYMENTS, "noSuchField")


async def test_masked_hides_only_filled_secrets(resolver, settings_store):
    settings_store.set("email_smtpPassword", "hunter2")

    settings = await resolver.get_settings()
    email = settings.email.masked("********")
    payments = settings.payments.masked("********")

    assert email["smtpPassword"] == "********"
    assert email["smtpHost"] == "smtp.gmail.com"
    assert payments["stripeSecretKey"] == ""


async def test_check_email_configuration(settings_store):
    result = await check_email_configuration()
    assert not result.success
    assert result.error == "SMTP username and password are required"

    settings_store.set("email_smtpUsername", "mailer")
    settings_store.set("email_smtpPassword", "secret")
    clear_settings_cache()

    result = await check_email_configuration()
    assert result.success


async def test_check_storage_configuration(settings_store):
    result = await check_storage_configuration()
    assert result.error == "AWS credentials are required"

    settings_store.set("storage_awsAccessKeyId", "AKIA")
    settings_store.set("storage_awsSecretAccessKey", "secret")
    clear_settings_cache()
    result = await check_storage_configuration()
    assert result.error == "S3 bucket name is required"

    settings_store.set("storage_provider", "local")
    clear_settings_cache()
    result = await check_storage_configuration()
    assert result.success


async def test_check_payment_configuration(settings_store):
    result = await check_payment_configuration(PaymentMethod.RAZORPAY)
    assert result.error == "Razorpay credentials are required"

    settings_store.set("payments_stripePublicKey", "pk_test")
    settings_store.set("payments_stripeSecretKey", "sk_test")
    clear_settings_cache()
    result = await check_payment_configuration(PaymentMethod.STRIPE)
    assert result.success


async def test_check_reports_unavailable_store(settings_store):
    settings_store.fail = True

    result = await check_email_configuration()

    assert not result.success
    assert result.error == "Failed to test email configuration"


def test_seed_values_leave_environment_fields_out(env):
    """Values read from the environment are never written as seed rows"""
    from app.config import get_settings
    from app.schemas.settings import build_default_settings

    env("AWS_ACCESS_KEY_ID", "AKIAENV")
    env("SMTP_HOST", "mail.example.com")
    defaults = build_default_settings(get_settings())

    storage = defaults.storage.seed_values()
    email = defaults.email.seed_values()
    payments = defaults.payments.seed_values()

    assert "awsAccessKeyId" not in storage
    assert "awsSecretAccessKey" not in storage
    assert storage["provider"] == "aws_s3"
    assert storage["maxFileSize"] == 10
    assert "smtpHost" not in email
    assert "smtpPassword" not in email
    assert email["fromName"] == "BnOverseas"
    assert "enableStripe" not in payments
    assert payments["defaultCurrency"] == "INR"
