"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BlockchainMode(str, Enum):
    """Blockchain operation mode."""

    MOCK = "mock"
    TESTNET = "testnet"
    MAINNET = "mainnet"


class CacheBackend(str, Enum):
    """Response cache backends."""

    MEMORY = "memory"
    REDIS = "redis"


class ProverSettings(BaseSettings):
    """External proving service configuration."""

    model_config = SettingsConfigDict(env_prefix="PROVER_")

    url: str = "http://localhost:3051"
    timeout_seconds: float = 60.0

    # Static verification keys (URL or filesystem path)
    verification_key: str = "verification_key.json"
    revoke_verification_key: str = "revoke_verification_key.json"


class BlockchainSettings(BaseSettings):
    """Ledger configuration."""

    model_config = SettingsConfigDict(env_prefix="BLOCKCHAIN_")

    mode: BlockchainMode = BlockchainMode.MOCK
    chain_id: int = 10
    rpc_url: str = ""
    alchemy_api_key: SecretStr = SecretStr("")
    timeout_seconds: float = 30.0

    # Attestation service (EAS predeploy on OP-stack chains)
    eas_contract_address: str = "0x4200000000000000000000000000000000000021"
    attestation_graphql_url: str = "https://optimism.easscan.org/graphql"

    # Agent identity registry
    identity_registry_address: str = ""

    @property
    def resolved_rpc_url(self) -> str:
        """RPC URL, derived from the Alchemy key when not set explicitly."""
        if self.rpc_url or self.mode == BlockchainMode.MOCK:
            return self.rpc_url
        key = self.alchemy_api_key.get_secret_value()
        if self.mode == BlockchainMode.TESTNET:
            return f"https://opt-sepolia.g.alchemy.com/v2/{key}"
        return f"https://opt-mainnet.g.alchemy.com/v2/{key}"


class BundlerSettings(BaseSettings):
    """ERC-4337 bundler and paymaster configuration."""

    model_config = SettingsConfigDict(env_prefix="BUNDLER_")

    url: str = ""
    paymaster_url: str = ""
    entry_point: str = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
    timeout_seconds: float = 30.0

    # Bundler simulation rejects zero limits
    min_call_gas_limit: int = 500_000
    min_pre_verification_gas: int = 100_000
    default_verification_gas_limit: int = 600_000

    receipt_timeout_seconds: float = 120.0
    receipt_poll_interval_seconds: float = 2.0


class AccountSettings(BaseSettings):
    """Smart account factory configuration."""

    model_config = SettingsConfigDict(env_prefix="ACCOUNT_")

    hybrid_factory: str = "0x69Aa2f9fe1572F1B640E1bbc512f5c3a734fc77c"
    hybrid_init_code_hash: str = "0x" + "11" * 32
    multisig_factory: str = "0x69Aa2f9fe1572F1B640E1bbc512f5c3a734fc77c"
    multisig_init_code_hash: str = "0x" + "22" * 32

    # Salt discovery
    discovery_attempts: int = 5
    individual_base_seed: int = 100
    organization_seed: int = 1

    # Read-after-write tolerance for registry lookups
    registry_read_attempts: int = 3
    registry_read_delay_seconds: float = 2.0


class CacheSettings(BaseSettings):
    """Response cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    backend: CacheBackend = CacheBackend.MEMORY
    capacity: int | None = None
    ttl_seconds: int | None = None
    namespace: str = "orgtrust"


class RedisSettings(BaseSettings):
    """Redis cache configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    db: int = 0

    @property
    def url(self) -> str:
        """Generate Redis connection URL."""
        pwd = self.password.get_secret_value()
        auth = f":{pwd}@" if pwd else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class CredentialSettings(BaseSettings):
    """Credential issuance configuration."""

    model_config = SettingsConfigDict(env_prefix="CREDENTIAL_")

    platform_prefix: str = "orgtrust-"
    store_dir: Path = Path(".credentials")
    issuer_private_key: SecretStr = SecretStr("")


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO

    prover: ProverSettings = Field(default_factory=ProverSettings)
    blockchain: BlockchainSettings = Field(default_factory=BlockchainSettings)
    bundler: BundlerSettings = Field(default_factory=BundlerSettings)
    account: AccountSettings = Field(default_factory=AccountSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    credential: CredentialSettings = Field(default_factory=CredentialSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
