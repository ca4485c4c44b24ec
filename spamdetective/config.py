from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

from spamdetective.errors import ConfigError


class Settings(BaseSettings):
    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================
    environment: str = "dev"  # "dev", "prod"
    debug: bool = True

    # ==========================================================================
    # DATABASE
    # ==========================================================================
    database_url: str = "sqlite:///./spamdetective.db"

    # ==========================================================================
    # API SECURITY
    # ==========================================================================
    api_token: str = ""  # Required in production, optional in dev
    api_token_header: str = "X-API-Key"

    # ==========================================================================
    # CORS
    # ==========================================================================
    cors_origins: str = "*"  # Comma-separated origins, or "*" for all

    # ==========================================================================
    # CACHING
    # ==========================================================================
    cache_capacity: int = 10000  # Max cached items
    cache_ttl: int = 86400  # Cache TTL in seconds (24 hours)

    # ==========================================================================
    # EXTERNAL CHECKS
    # ==========================================================================
    external_timeout: float = 5.0  # Per-call timeout in seconds
    external_max_concurrency: int = 4  # Concurrent external lookups per batch
    stopforumspam_url: str = "https://api.stopforumspam.org/api"
    gravatar_url: str = "https://www.gravatar.com/avatar"
    dns_over_https_url: str = "https://dns.google/resolve"

    # ==========================================================================
    # BATCH ANALYSIS
    # ==========================================================================
    batch_workers: int = 4
    quick_scan_limit: int = 100
    similarity_candidate_cap: int = 500

    # ==========================================================================
    # USER PROTECTION
    # ==========================================================================
    protected_roles: str = "administrator,editor,shop_manager"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SPAMDETECTIVE_",
        extra="ignore",
    )

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "prod"

    @property
    def cors_origins_list(self) -> list:
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def protected_roles_list(self) -> List[str]:
        return [role.strip() for role in self.protected_roles.split(",") if role.strip()]


settings = Settings()


class DetectionSettings(BaseModel):
    """
    Detection toggles and risk thresholds.

    Stored in the settings table as flat key/value pairs and loaded into this
    model once per batch. Thresholds must be strictly ascending.
    """

    # Caching
    enable_caching: bool = True
    cache_duration_hours: int = Field(default=24, ge=1)
    batch_size: int = Field(default=100, ge=1)

    # Risk thresholds (low doubles as the is_suspicious cutoff)
    risk_threshold_low: int = 25
    risk_threshold_medium: int = 40
    risk_threshold_high: int = 70

    protect_users_with_orders: bool = True

    # External API checks (opt-in)
    enable_external_checks: bool = False
    enable_stopforumspam: bool = False
    enable_mx_check: bool = True
    enable_gravatar_check: bool = True

    # Advanced analysis
    enable_similarity_check: bool = False  # Expensive
    track_registration_ip: bool = True
    enable_entropy_check: bool = True
    enable_homoglyph_check: bool = True
    enable_disposable_check: bool = True

    model_config = {"frozen": True, "extra": "ignore"}

    @model_validator(mode="after")
    def _check_thresholds(self):
        thresholds = {
            "risk_threshold_low": self.risk_threshold_low,
            "risk_threshold_medium": self.risk_threshold_medium,
            "risk_threshold_high": self.risk_threshold_high,
        }
        for name, value in thresholds.items():
            if not 1 <= value <= 200:
                raise ConfigError(f"{name} must be between 1 and 200 (got {value})")
        if not (self.risk_threshold_low < self.risk_threshold_medium < self.risk_threshold_high):
            raise ConfigError(
                "Risk thresholds must be strictly ascending: "
                f"low={self.risk_threshold_low}, medium={self.risk_threshold_medium}, "
                f"high={self.risk_threshold_high}"
            )
        return self

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_duration_hours * 3600


DEFAULT_DETECTION_SETTINGS = DetectionSettings()
