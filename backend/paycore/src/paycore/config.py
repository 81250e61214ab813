"""Payment configuration registry.

Settings are read once from the environment into an immutable
``PaymentConfig`` value, which is passed explicitly to every service. Tests
build their own instances instead of mutating ``os.environ``.

Usage:
    config = PaymentConfig.from_env()
    if config.validate_amount(payment.amount, booking.price):
        ...
"""

import os
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from paycore.models.enums import PaymentMethod
from paycore.models.validation import FileUpload, FileValidation
from paycore.utils.money import to_decimal

MB = 1024 * 1024


class ManualAccountSettings(BaseModel):
    """Receiving account for a manual transfer method (GCash, Maya wallet)."""

    model_config = ConfigDict(frozen=True)

    account_name: str = ""
    account_number: str = ""


class BankSettings(BaseModel):
    """Receiving bank account for bank transfers."""

    model_config = ConfigDict(frozen=True)

    account_name: str = ""
    account_number: str = ""
    bank_name: str = ""


class MayaCheckoutSettings(BaseModel):
    """Maya Checkout API credentials."""

    model_config = ConfigDict(frozen=True)

    public_key: str = ""
    secret_key: str = ""
    webhook_secret: str = ""
    environment: str = "sandbox"

    @property
    def base_url(self) -> str:
        if self.environment == "production":
            return "https://pg.maya.ph"
        return "https://pg-sandbox.maya.ph"


class PayPalSettings(BaseModel):
    """PayPal REST API credentials."""

    model_config = ConfigDict(frozen=True)

    client_id: str = ""
    client_secret: str = ""
    environment: str = "sandbox"

    @property
    def base_url(self) -> str:
        if self.environment in ("production", "live"):
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"


class StripeSettings(BaseModel):
    """Stripe Checkout credentials."""

    model_config = ConfigDict(frozen=True)

    secret_key: str = ""
    webhook_secret: str = ""


class PaymentPolicy(BaseModel):
    """Global policy constants."""

    model_config = ConfigDict(frozen=True)

    amount_tolerance: Decimal = Field(
        default=Decimal("0.01"), description="Absolute tolerance in PHP"
    )
    session_timeout: timedelta = timedelta(minutes=15)
    booking_max_age: timedelta = timedelta(hours=24)
    duplicate_window: timedelta = timedelta(minutes=5)
    max_file_size: int = 5 * MB
    min_readable_file_size: int = 1024
    allowed_file_types: tuple[str, ...] = ("image/jpeg", "image/png", "image/webp")
    max_retry_attempts: int = 3
    retry_base_delay: float = Field(default=1.0, description="Seconds")
    retry_max_delay: float = Field(default=30.0, description="Seconds")
    gateway_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")


# Display names used in configuration error messages
METHOD_DISPLAY_NAMES: dict[PaymentMethod, str] = {
    PaymentMethod.GCASH: "GCash",
    PaymentMethod.MAYA: "Maya",
    PaymentMethod.BANK: "Bank transfer",
    PaymentMethod.MAYA_CHECKOUT: "Maya Checkout",
    PaymentMethod.PAYPAL: "PayPal",
    PaymentMethod.CARD: "Card",
}


class PaymentConfig(BaseModel):
    """Immutable, validated payment settings for one deployment."""

    model_config = ConfigDict(frozen=True)

    environment: str = "dev"
    app_url: str = "http://localhost:3000"
    bank: BankSettings = BankSettings()
    gcash: ManualAccountSettings = ManualAccountSettings()
    maya_wallet: ManualAccountSettings = ManualAccountSettings()
    maya: MayaCheckoutSettings = MayaCheckoutSettings()
    paypal: PayPalSettings = PayPalSettings()
    stripe: StripeSettings = StripeSettings()
    policy: PaymentPolicy = PaymentPolicy()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PaymentConfig":
        """Build the configuration from environment variables.

        Missing variables become empty strings; the per-gateway
        ``validate_*_config`` predicates report them instead of raising.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: str = "") -> str:
            return env.get(name, default).strip()

        return cls(
            environment=get("ENVIRONMENT", "dev"),
            app_url=get("APP_URL", "http://localhost:3000").rstrip("/"),
            bank=BankSettings(
                account_name=get("BANK_ACCOUNT_NAME"),
                account_number=get("BANK_ACCOUNT_NUMBER"),
                bank_name=get("BANK_NAME"),
            ),
            gcash=ManualAccountSettings(
                account_name=get("GCASH_ACCOUNT_NAME"),
                account_number=get("GCASH_ACCOUNT_NUMBER"),
            ),
            maya_wallet=ManualAccountSettings(
                account_name=get("MAYA_ACCOUNT_NAME"),
                account_number=get("MAYA_ACCOUNT_NUMBER"),
            ),
            maya=MayaCheckoutSettings(
                public_key=get("MAYA_PUBLIC_KEY"),
                secret_key=get("MAYA_SECRET_KEY"),
                webhook_secret=get("MAYA_WEBHOOK_SECRET"),
                environment=get("MAYA_ENVIRONMENT", "sandbox"),
            ),
            paypal=PayPalSettings(
                client_id=get("PAYPAL_CLIENT_ID"),
                client_secret=get("PAYPAL_CLIENT_SECRET"),
                environment=get("PAYPAL_ENVIRONMENT", "sandbox"),
            ),
            stripe=StripeSettings(
                secret_key=get("STRIPE_SECRET_KEY"),
                webhook_secret=get("STRIPE_WEBHOOK_SECRET"),
            ),
        )

    # Pure predicates

    def validate_amount(
        self,
        actual: Decimal | float | int,
        expected: Decimal | float | int,
    ) -> bool:
        """True iff the amounts differ by at most the absolute tolerance."""
        difference = abs(to_decimal(actual) - to_decimal(expected))
        return difference <= self.policy.amount_tolerance

    def validate_file_upload(self, file: FileUpload) -> FileValidation:
        """Check an upload against the size ceiling and MIME allow-list."""
        if file.size > self.policy.max_file_size:
            limit_mb = self.policy.max_file_size // MB
            return FileValidation(
                valid=False,
                error=f"File size exceeds {limit_mb}MB limit",
            )

        if file.mime_type.lower() not in self.policy.allowed_file_types:
            return FileValidation(
                valid=False,
                error="Invalid file type. Please upload a JPEG, PNG, or WebP image.",
            )

        return FileValidation(valid=True)

    def is_session_valid(self, created_at: datetime, now: datetime | None = None) -> bool:
        """True iff less than the session timeout has elapsed since ``created_at``."""
        current = now or datetime.now(timezone.utc)
        return current - created_at < self.policy.session_timeout

    def validate_bank_config(self) -> bool:
        return bool(
            self.bank.account_name and self.bank.account_number and self.bank.bank_name
        )

    def validate_gcash_config(self) -> bool:
        return bool(self.gcash.account_name and self.gcash.account_number)

    def validate_maya_wallet_config(self) -> bool:
        return bool(self.maya_wallet.account_name and self.maya_wallet.account_number)

    def validate_maya_config(self) -> bool:
        return bool(self.maya.public_key and self.maya.secret_key)

    def validate_paypal_config(self) -> bool:
        return bool(self.paypal.client_id and self.paypal.client_secret)

    def validate_stripe_config(self) -> bool:
        return bool(self.stripe.secret_key and self.stripe.webhook_secret)

    def is_method_configured(self, method: PaymentMethod) -> bool:
        """Dispatch to the predicate for ``method``."""
        checks = {
            PaymentMethod.GCASH: self.validate_gcash_config,
            PaymentMethod.MAYA: self.validate_maya_wallet_config,
            PaymentMethod.BANK: self.validate_bank_config,
            PaymentMethod.MAYA_CHECKOUT: self.validate_maya_config,
            PaymentMethod.PAYPAL: self.validate_paypal_config,
            PaymentMethod.CARD: self.validate_stripe_config,
        }
        return checks[method]()

    def describe_missing(self) -> dict[str, list[str]]:
        """Environment variables still missing, grouped by payment method.

        Methods that are fully configured are omitted.
        """
        required: dict[PaymentMethod, list[tuple[str, str]]] = {
            PaymentMethod.BANK: [
                ("BANK_ACCOUNT_NAME", self.bank.account_name),
                ("BANK_ACCOUNT_NUMBER", self.bank.account_number),
                ("BANK_NAME", self.bank.bank_name),
            ],
            PaymentMethod.GCASH: [
                ("GCASH_ACCOUNT_NAME", self.gcash.account_name),
                ("GCASH_ACCOUNT_NUMBER", self.gcash.account_number),
            ],
            PaymentMethod.MAYA: [
                ("MAYA_ACCOUNT_NAME", self.maya_wallet.account_name),
                ("MAYA_ACCOUNT_NUMBER", self.maya_wallet.account_number),
            ],
            PaymentMethod.MAYA_CHECKOUT: [
                ("MAYA_PUBLIC_KEY", self.maya.public_key),
                ("MAYA_SECRET_KEY", self.maya.secret_key),
            ],
            PaymentMethod.PAYPAL: [
                ("PAYPAL_CLIENT_ID", self.paypal.client_id),
                ("PAYPAL_CLIENT_SECRET", self.paypal.client_secret),
            ],
            PaymentMethod.CARD: [
                ("STRIPE_SECRET_KEY", self.stripe.secret_key),
                ("STRIPE_WEBHOOK_SECRET", self.stripe.webhook_secret),
            ],
        }
        missing: dict[str, list[str]] = {}
        for method, fields in required.items():
            names = [name for name, value in fields if not value]
            if names:
                missing[method.value] = names
        return missing
