from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ridedispatch.core.exceptions import ConfigurationError


class ServiceSettings(BaseSettings):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["text", "json"] = "text"
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    model_config = SettingsConfigDict(env_prefix="DISPATCH_")


class DatabaseSettings(BaseSettings):
    url: str = Field(
        default="sqlite:///ride_dispatch.db",
        description="SQLAlchemy database URL",
    )
    busy_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Seconds a SQLite connection waits on a locked database before failing",
    )
    echo: bool = False

    model_config = SettingsConfigDict(env_prefix="DB_")


class OSRMSettings(BaseSettings):
    base_url: str = "http://localhost:5000"
    timeout_seconds: float = Field(default=5.0, gt=0.0, le=60.0)
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=0.5, ge=0.0, le=5.0)
    retry_multiplier: float = Field(default=2.0, ge=1.0, le=5.0)

    model_config = SettingsConfigDict(env_prefix="OSRM_")

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("OSRM base URL must start with http:// or https://")
        return v.rstrip("/")


class RedisSettings(BaseSettings):
    host: str = "localhost"
    port: int = 6379
    password: str = ""
    ssl: bool = False
    socket_timeout_seconds: float = Field(
        default=2.0,
        gt=0.0,
        le=30.0,
        description="Bound on a single Redis connect or command",
    )

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    @model_validator(mode="after")
    def validate_credentials_provided(self) -> "RedisSettings":
        if not self.password:
            raise ValueError("Required credential not provided: REDIS_PASSWORD")
        return self


class APISettings(BaseSettings):
    key: str = ""

    model_config = SettingsConfigDict(env_prefix="API_")

    @model_validator(mode="after")
    def validate_credentials_provided(self) -> "APISettings":
        if not self.key:
            raise ValueError("Required credential not provided: API_KEY")
        return self


class CORSSettings(BaseSettings):
    origins: str = "http://localhost:5173,http://localhost:3000"

    model_config = SettingsConfigDict(env_prefix="CORS_")


class MatchingSettings(BaseSettings):
    """Driver discovery and offer fan-out configuration."""

    h3_resolution: int = Field(
        default=9,
        ge=5,
        le=12,
        description="H3 resolution used to bucket driver positions",
    )
    base_radius_km: float = Field(default=3.0, gt=0.0, le=50.0)
    escalation_factor: float = Field(default=2.0, ge=1.0, le=5.0)
    max_radius_escalations: int = Field(
        default=2,
        ge=0,
        le=5,
        description="Number of times the search radius may grow before giving up",
    )
    max_radius_km: float = Field(default=25.0, gt=0.0, le=100.0)
    min_candidates: int = Field(default=1, ge=1, le=50)
    max_candidates: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum number of drivers offered a single request",
    )
    presence_staleness_seconds: int = Field(
        default=60,
        ge=5,
        le=3600,
        description="Seconds after which an unrefreshed driver report is ignored",
    )

    model_config = SettingsConfigDict(env_prefix="MATCHING_")

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        if self.base_radius_km > self.max_radius_km:
            raise ValueError(
                f"Base radius {self.base_radius_km} km exceeds max radius {self.max_radius_km} km"
            )


class RequestSettings(BaseSettings):
    default_max_wait_seconds: int = Field(
        default=300,
        ge=10,
        le=3600,
        description="Seconds a rider waits for a match before the request expires",
    )
    default_ttl_seconds: int = Field(
        default=900,
        ge=60,
        le=86400,
        description="Hard lifetime of a ride request",
    )
    expiry_sweep_interval_seconds: float = Field(default=15.0, ge=1.0, le=600.0)
    nearby_radius_km: float = Field(default=5.0, gt=0.0, le=50.0)
    nearby_limit: int = Field(default=20, ge=1, le=100)

    model_config = SettingsConfigDict(env_prefix="REQUESTS_")


class FareSettings(BaseSettings):
    economy_base: float = Field(default=2.50, ge=0.0)
    economy_per_km: float = Field(default=1.20, ge=0.0)
    economy_per_minute: float = Field(default=0.25, ge=0.0)
    premium_base: float = Field(default=3.50, ge=0.0)
    premium_per_km: float = Field(default=1.80, ge=0.0)
    premium_per_minute: float = Field(default=0.35, ge=0.0)
    pool_base: float = Field(default=2.50, ge=0.0)
    pool_per_km: float = Field(default=1.20, ge=0.0)
    pool_per_minute: float = Field(default=0.25, ge=0.0)
    luxury_base: float = Field(default=5.00, ge=0.0)
    luxury_per_km: float = Field(default=2.50, ge=0.0)
    luxury_per_minute: float = Field(default=0.50, ge=0.0)
    suv_base: float = Field(default=4.00, ge=0.0)
    suv_per_km: float = Field(default=2.00, ge=0.0)
    suv_per_minute: float = Field(default=0.40, ge=0.0)
    estimate_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=120.0,
        description="Upper bound on a fare estimate, retries included",
    )

    model_config = SettingsConfigDict(env_prefix="FARE_")


class Settings(BaseSettings):
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    osrm: OSRMSettings = Field(default_factory=OSRMSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    api: APISettings = Field(default_factory=APISettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    requests: RequestSettings = Field(default_factory=RequestSettings)
    fare: FareSettings = Field(default_factory=FareSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables.

    Raises:
        ConfigurationError: a required setting is missing or a value is invalid.
    """
    try:
        return Settings()
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
