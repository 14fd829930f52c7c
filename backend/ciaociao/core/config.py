from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "CiaoCiao Pricing API"
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"
    metrics_enabled: bool = True

    metalpriceapi_key: str = ""
    metalsdev_key: str = ""
    goldapi_key: str = ""
    freecurrencyapi_key: str = ""
    banxico_token: str = ""

    provider_timeout_seconds: float = 4.0
    request_timeout_seconds: float = 8.0

    breaker_failure_threshold: int = 3
    breaker_cooldown_seconds: float = 60.0
    breaker_backoff_multiplier: float = 2.0
    breaker_max_cooldown_seconds: float = 900.0

    rate_limit_window_seconds: float = 60.0
    rate_limit_requests_per_window: int = 10
    provider_rate_limits: dict[str, int] = {}

    metal_cache_ttl_seconds: float = 60.0
    fx_cache_ttl_seconds: float = 900.0
    cache_history_size: int = 20
    prefer_cache: bool = True

    metal_tolerance_ratio: float = 0.03
    fx_tolerance_ratio: float = 0.01
    metal_max_quote_age_seconds: float = 900.0
    fx_max_quote_age_seconds: float = 172800.0
    quorum_size: int = 2
    single_source_confidence: float = 0.6
    fallback_confidence_ceiling: float = 0.5
    cache_hit_confidence_cap: float = 0.95
    usd_mxn_min_rate: float = 15.0
    usd_mxn_max_rate: float = 25.0

    @model_validator(mode="after")
    def validate_resolution_policy(self) -> "Settings":
        if self.quorum_size < 1:
            raise ValueError("QUORUM_SIZE must be at least 1.")
        if self.breaker_failure_threshold < 1:
            raise ValueError("BREAKER_FAILURE_THRESHOLD must be at least 1.")
        if self.rate_limit_requests_per_window < 1:
            raise ValueError("RATE_LIMIT_REQUESTS_PER_WINDOW must be at least 1.")
        if not 0.0 < self.fallback_confidence_ceiling <= self.single_source_confidence <= 1.0:
            raise ValueError(
                "Confidence settings must satisfy 0 < FALLBACK_CONFIDENCE_CEILING <= SINGLE_SOURCE_CONFIDENCE <= 1."
            )
        if self.usd_mxn_min_rate >= self.usd_mxn_max_rate:
            raise ValueError("USD_MXN_MIN_RATE must be lower than USD_MXN_MAX_RATE.")
        if not 0.0 < self.cache_hit_confidence_cap < 1.0:
            raise ValueError("CACHE_HIT_CONFIDENCE_CAP must be within (0, 1).")
        if self.request_timeout_seconds <= 0 or self.provider_timeout_seconds <= 0:
            raise ValueError("Timeouts must be greater than zero.")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
