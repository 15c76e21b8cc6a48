from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from functools import lru_cache

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from railpay.core.constants import (
    DEFAULT_CDP_SIGNATURE_HEADER,
    DEFAULT_ENV_FILE,
    SECRETS_DIR,
    USDC_BASE_CONTRACT,
)

DEFAULT_DESTINATION_ADDRESS = "0x4D884A7E2459bD7DDad48Ab7e125a528DfeE60Fd"

_PLACEHOLDER_CREDENTIALS = (
    "",
    "changeme",
    "change-me",
    "placeholder",
    "your-api-key",
    "your_api_key",
    "your_api_key_here",
    "xxx",
)


class Environment(StrEnum):
    """Deployment environments supported by the service."""

    DEVELOPMENT = "development"
    TEST = "test"
    STAGING = "staging"
    PRODUCTION = "production"


def _settings_config(env_prefix: str) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=env_prefix,
        env_file=DEFAULT_ENV_FILE,
        secrets_dir=SECRETS_DIR,
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )


class MerchantSettings(BaseSettings):
    """Where funds land and where customers are sent back to."""

    model_config = _settings_config("MERCHANT__")

    destination_address: str = Field(
        default=DEFAULT_DESTINATION_ADDRESS,
        validation_alias=AliasChoices(
            "MERCHANT__DESTINATION_ADDRESS",
            "DESTINATION_ADDRESS",
        ),
    )
    destination_asset: str = Field(
        default="USDC",
        validation_alias=AliasChoices("MERCHANT__DESTINATION_ASSET", "PURCHASE_CURRENCY"),
    )
    destination_network: str = Field(
        default="base",
        validation_alias=AliasChoices("MERCHANT__DESTINATION_NETWORK", "NETWORK"),
    )
    frontend_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("MERCHANT__FRONTEND_URL", "FRONTEND_URL"),
    )
    base_notification_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "MERCHANT__BASE_NOTIFICATION_URL",
            "BASE_NOTIFICATION_URL",
        ),
    )

    @model_validator(mode="after")
    def _normalise(self) -> MerchantSettings:
        self.destination_asset = self.destination_asset.strip().upper()
        self.destination_network = self.destination_network.strip().lower()
        self.frontend_url = self.frontend_url.rstrip("/")
        if self.base_notification_url is not None:
            self.base_notification_url = self.base_notification_url.rstrip("/")
        return self


class CommerceSettings(BaseSettings):
    """Credentials for the hosted-checkout charge service."""

    model_config = _settings_config("COMMERCE__")

    api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("COMMERCE__API_KEY", "COINBASE_API_KEY"),
    )
    webhook_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "COMMERCE__WEBHOOK_SECRET", "COINBASE_WEBHOOK_SECRET"
        ),
    )
    api_url: str = "https://api.commerce.coinbase.com"
    api_version: str = "2018-03-22"


class CdpSettings(BaseSettings):
    """Developer-platform credentials shared by the onramp and the chain monitor."""

    model_config = _settings_config("CDP__")

    api_key_id: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("CDP__API_KEY_ID", "CDP_API_KEY_ID"),
    )
    private_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("CDP__PRIVATE_KEY", "CDP_PRIVATE_KEY"),
    )
    webhook_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("CDP__WEBHOOK_SECRET", "CDP_WEBHOOK_SECRET"),
    )
    api_url: str = "https://api.cdp.coinbase.com/platform/v1"
    network_id: str = "base-mainnet"
    token_contract_address: str = USDC_BASE_CONTRACT
    signature_header: str = DEFAULT_CDP_SIGNATURE_HEADER
    jwt_ttl_seconds: int = Field(default=120, ge=10, le=600)


class OnrampSettings(BaseSettings):
    """Endpoint configuration for the fiat-to-crypto onramp."""

    model_config = _settings_config("ONRAMP__")

    api_url: str = "https://api.coinbase.com/v2"
    api_version: str = "2024-01-01"


class RailSettings(BaseSettings):
    """Behaviour shared by every outbound rail call."""

    model_config = _settings_config("RAILS__")

    timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    intent_ttl_seconds: int = Field(default=3_600, ge=60)
    placeholder_credentials: list[str] = Field(
        default_factory=lambda: list(_PLACEHOLDER_CREDENTIALS)
    )

    def has_credential(self, value: SecretStr | str | None) -> bool:
        """Return ``True`` when ``value`` holds a real (non-placeholder) credential."""

        if value is None:
            return False
        raw = value.get_secret_value() if isinstance(value, SecretStr) else value
        normalised = raw.strip().lower()
        placeholders = {item.strip().lower() for item in self.placeholder_credentials}
        return normalised not in placeholders


class SubscriptionPlan(BaseModel):
    """Definition for a purchasable subscription plan."""

    model_config = ConfigDict(extra="ignore")

    code: str = Field(..., min_length=2, max_length=64)
    name: str = Field(..., min_length=1, max_length=128)
    amount: Decimal = Field(..., gt=Decimal("0"))
    currency: str = Field(default="USD", min_length=3, max_length=3)
    description: str | None = None

    @model_validator(mode="after")
    def _normalise(self) -> SubscriptionPlan:
        self.code = self.code.strip().lower()
        self.currency = self.currency.upper()
        return self


def _default_plans() -> dict[str, SubscriptionPlan]:
    return {
        "premium": SubscriptionPlan(
            code="premium",
            name="Premium Membership",
            amount=Decimal("59"),
            currency="USD",
            description="Monthly premium membership",
        ),
    }


class PaymentsSettings(BaseModel):
    """Subscription plans and payment defaults."""

    model_config = ConfigDict(extra="ignore")

    default_currency: str = Field(default="USD", min_length=3, max_length=3)
    default_product_name: str = "Subscription"
    plans: dict[str, SubscriptionPlan] = Field(default_factory=_default_plans)

    @model_validator(mode="after")
    def _normalise(self) -> PaymentsSettings:
        self.default_currency = self.default_currency.upper()
        self.plans = {key.strip().lower(): plan for key, plan in self.plans.items()}
        return self

    def get_plan(self, code: str) -> SubscriptionPlan:
        normalised = code.strip().lower()
        if not normalised or normalised not in self.plans:
            raise KeyError(code)
        return self.plans[normalised]


class Settings(BaseSettings):
    """Application settings loaded from the environment or secret stores."""

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        secrets_dir=SECRETS_DIR,
        extra="ignore",
        validate_default=True,
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"

    project_name: str = "railpay"
    project_description: str = "Multi-rail payment orchestration service"
    project_version: str = "0.1.0"
    docs_url: str | None = "/docs"
    openapi_url: str = "/openapi.json"

    cors_allow_origins: list[str] = Field(default_factory=list)

    merchant: MerchantSettings = Field(default_factory=MerchantSettings)
    commerce: CommerceSettings = Field(default_factory=CommerceSettings)
    cdp: CdpSettings = Field(default_factory=CdpSettings)
    onramp: OnrampSettings = Field(default_factory=OnrampSettings)
    rails: RailSettings = Field(default_factory=RailSettings)
    payments: PaymentsSettings = Field(default_factory=PaymentsSettings)

    @model_validator(mode="after")
    def _normalize(self) -> Settings:
        self.log_level = self.log_level.upper()

        if self.environment in {Environment.DEVELOPMENT, Environment.TEST}:
            self.debug = True

        return self

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()
