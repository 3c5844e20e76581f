"""Typed settings schemas: one model per settings category.

Every field has a default, so a ``ResolvedSettings`` is always total. Field
aliases are the camelCase names used in stored keys (``email_smtpHost``) and
in the admin API.
"""

from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.setting import SettingCategory

if TYPE_CHECKING:
    from app.config import Settings


DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587
DEFAULT_FROM_EMAIL = "noreply@bnoverseas.com"
DEFAULT_AWS_REGION = "us-east-1"
DEFAULT_ADMIN_EMAIL = "admin@bnoverseas.com"

OBJECT_STORAGE_PROVIDERS = {"aws_s3", "s3"}


class CategorySettings(BaseModel):
    """Base class for a settings category."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    secret_fields: ClassVar[frozenset[str]] = frozenset()
    # Fields whose defaults are read from the environment
    env_fields: ClassVar[frozenset[str]] = frozenset()

    @classmethod
    def field_for_key(cls, name: str) -> str | None:
        """Map a stored field name (camelCase alias or snake_case) to the model field."""
        for field_name, info in cls.model_fields.items():
            if name == field_name or name == info.alias:
                return field_name
        return None

    def seed_values(self) -> dict[str, Any]:
        """Dump by alias, leaving out fields read from the environment and secrets."""
        return self.model_dump(by_alias=True, exclude=set(self.secret_fields | self.env_fields))

    def masked(self, placeholder: str) -> dict[str, Any]:
        """Dump by alias with non-empty secret fields replaced by ``placeholder``."""
        data = self.model_dump(by_alias=True)
        for field_name in self.secret_fields:
            alias = type(self).model_fields[field_name].alias or field_name
            if data.get(alias):
                data[alias] = placeholder
        return data


class GeneralSettings(CategorySettings):
    site_name: str = "BnOverseas"
    site_description: str = "Your Study Abroad Partner"
    contact_email: str = "info@bnoverseas.com"
    contact_phone: str = "+91 1234567890"
    business_address: str = "India"
    currency: str = "INR"
    timezone: str = "Asia/Kolkata"
    language: str = "en"


class BrandingSettings(CategorySettings):
    logo: str = ""
    favicon: str = ""
    primary_color: str = "#3B82F6"
    secondary_color: str = "#1E40AF"
    custom_css: str = Field("", alias="customCSS")


class EmailSettings(CategorySettings):
    secret_fields: ClassVar[frozenset[str]] = frozenset({"smtp_password"})
    env_fields: ClassVar[frozenset[str]] = frozenset(
        {"smtp_host", "smtp_port", "smtp_username", "smtp_password", "from_email"}
    )

    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_username: str = ""
    smtp_password: str = ""
    from_name: str = "BnOverseas"
    from_email: str = DEFAULT_FROM_EMAIL
    enable_email_notifications: bool = True


class PaymentSettings(CategorySettings):
    secret_fields: ClassVar[frozenset[str]] = frozenset(
        {"razorpay_key_secret", "stripe_secret_key", "stripe_webhook_secret"}
    )
    env_fields: ClassVar[frozenset[str]] = frozenset(
        {
            "razorpay_key_id",
            "razorpay_key_secret",
            "stripe_public_key",
            "stripe_secret_key",
            "stripe_webhook_secret",
            "paypal_client_id",
            "enable_stripe",
        }
    )

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    stripe_public_key: str = ""
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    paypal_client_id: str = ""
    default_currency: str = "INR"
    enable_razorpay: bool = True
    enable_stripe: bool = False
    enable_paypal: bool = False


class StorageSettings(CategorySettings):
    secret_fields: ClassVar[frozenset[str]] = frozenset({"aws_secret_access_key"})
    env_fields: ClassVar[frozenset[str]] = frozenset(
        {"aws_access_key_id", "aws_secret_access_key", "aws_region", "aws_s3_bucket"}
    )

    provider: str = "aws_s3"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = DEFAULT_AWS_REGION
    aws_s3_bucket: str = ""
    max_file_size: float = 10  # MB
    allowed_file_types: str = "image,video,document,audio"

    @property
    def uses_object_storage(self) -> bool:
        """Whether the configured provider is S3-compatible object storage."""
        return self.provider.strip().lower() in OBJECT_STORAGE_PROVIDERS

    @property
    def max_file_size_bytes(self) -> int:
        """Max upload size in bytes (``max_file_size`` is in MB)."""
        return int((self.max_file_size or 10) * 1024 * 1024)

    @property
    def allowed_types(self) -> list[str]:
        """Allowed file kinds as a list."""
        return [t.strip() for t in self.allowed_file_types.split(",") if t.strip()]


class SecuritySettings(CategorySettings):
    enable_two_factor: bool = False
    session_timeout: int = 24
    max_login_attempts: int = 5
    enable_captcha: bool = False
    maintenance_mode: bool = False
    allow_registration: bool = True


class NotificationSettings(CategorySettings):
    env_fields: ClassVar[frozenset[str]] = frozenset({"admin_email"})

    enable_email_notifications: bool = True
    enable_sms_notifications: bool = Field(False, alias="enableSMSNotifications")
    enable_push_notifications: bool = False
    admin_email: str = DEFAULT_ADMIN_EMAIL
    notify_on_new_user: bool = True
    notify_on_new_order: bool = True
    notify_on_appointment: bool = True


class IntegrationSettings(CategorySettings):
    secret_fields: ClassVar[frozenset[str]] = frozenset(
        {"zoom_api_secret", "twilio_auth_token"}
    )
    env_fields: ClassVar[frozenset[str]] = frozenset(
        {
            "google_analytics_id",
            "facebook_pixel_id",
            "zoom_api_key",
            "zoom_api_secret",
            "twilio_account_sid",
            "twilio_auth_token",
        }
    )

    google_analytics_id: str = ""
    facebook_pixel_id: str = ""
    zoom_api_key: str = ""
    zoom_api_secret: str = ""
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""


CATEGORY_MODELS: dict[SettingCategory, type[CategorySettings]] = {
    SettingCategory.GENERAL: GeneralSettings,
    SettingCategory.BRANDING: BrandingSettings,
    SettingCategory.EMAIL: EmailSettings,
    SettingCategory.PAYMENTS: PaymentSettings,
    SettingCategory.STORAGE: StorageSettings,
    SettingCategory.SECURITY: SecuritySettings,
    SettingCategory.NOTIFICATIONS: NotificationSettings,
    SettingCategory.INTEGRATIONS: IntegrationSettings,
}


class ResolvedSettings(BaseModel):
    """The merged view of all settings categories."""

    model_config = ConfigDict(frozen=True)

    general: GeneralSettings
    branding: BrandingSettings
    email: EmailSettings
    payments: PaymentSettings
    storage: StorageSettings
    security: SecuritySettings
    notifications: NotificationSettings
    integrations: IntegrationSettings

    def category(self, category: SettingCategory | str) -> CategorySettings:
        """Get one category's settings."""
        return getattr(self, SettingCategory(category).value)


def build_default_settings(env: "Settings") -> ResolvedSettings:
    """Build the default settings, seeding hosts and secrets from the environment.

    This is also the environment-only configuration the integrations fall
    back to when the settings store is unavailable.
    """
    return ResolvedSettings(
        general=GeneralSettings(),
        branding=BrandingSettings(),
        email=EmailSettings(
            smtp_host=env.smtp_host or DEFAULT_SMTP_HOST,
            smtp_port=env.smtp_port or DEFAULT_SMTP_PORT,
            smtp_username=env.smtp_user,
            smtp_password=env.smtp_pass,
            from_email=env.from_email or DEFAULT_FROM_EMAIL,
        ),
        payments=PaymentSettings(
            razorpay_key_id=env.razorpay_key_id,
            razorpay_key_secret=env.razorpay_key_secret,
            stripe_public_key=env.stripe_public_key,
            stripe_secret_key=env.stripe_secret_key,
            stripe_webhook_secret=env.stripe_webhook_secret,
            paypal_client_id=env.paypal_client_id,
            # Stripe is on by default only when a key is supplied through the environment
            enable_stripe=bool(env.stripe_secret_key),
        ),
        storage=StorageSettings(
            aws_access_key_id=env.aws_access_key_id,
            aws_secret_access_key=env.aws_secret_access_key,
            aws_region=env.aws_region or DEFAULT_AWS_REGION,
            aws_s3_bucket=env.aws_s3_bucket,
        ),
        security=SecuritySettings(),
        notifications=NotificationSettings(
            admin_email=env.admin_email or DEFAULT_ADMIN_EMAIL,
        ),
        integrations=IntegrationSettings(
            google_analytics_id=env.ga_tracking_id,
            facebook_pixel_id=env.fb_pixel_id,
            zoom_api_key=env.zoom_api_key,
            zoom_api_secret=env.zoom_api_secret,
            twilio_account_sid=env.twilio_account_sid,
            twilio_auth_token=env.twilio_auth_token,
        ),
    )


class SettingsUpdateRequest(BaseModel):
    """Admin request to save one category's settings."""

    category: SettingCategory
    settings: dict[str, Any] = Field(default_factory=dict)


class ConfigCheckResult(BaseModel):
    """Outcome of a configuration check."""

    success: bool
    message: str | None = None
    error: str | None = None
