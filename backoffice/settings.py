from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "postgresql+psycopg://backoffice@localhost:5432/backoffice"

    etsy_api_base_url: str = "https://openapi.etsy.com/v3"
    etsy_api_key: str = ""  # app keystring, sent as x-api-key alongside OAuth tokens
    shopify_api_version: str = "2024-01"

    usps_api_base_url: str = "https://api.usps.com"
    usps_client_id: str = ""
    usps_client_secret: str = ""

    upstream_timeout_seconds: float = 30.0
    upstream_connect_timeout_seconds: float = 10.0
    upstream_detail_retry_count: int = 3  # tenacity attempts for per-order detail calls

    sync_page_size: int = 100
    sync_max_pages: int = 50
    initial_sync_lookback_days: int = 30  # first pass for a store without a watermark
    sync_error_summary_limit: int = 20
    sync_error_message_max_length: int = 300

    intake_allowed_file_types: list[str] = ["image/png", "image/jpeg", "image/jpg"]
    intake_max_file_bytes: int = 10 * 1024 * 1024

    cron_secret: str = ""

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if v and not v.startswith(("postgresql", "sqlite")):
            raise ValueError("database_url must start with 'postgresql' or 'sqlite'")
        return v

    @field_validator("etsy_api_base_url", "usps_api_base_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator("upstream_timeout_seconds", "upstream_connect_timeout_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be greater than 0")
        return v

    @field_validator("upstream_detail_retry_count")
    @classmethod
    def validate_retry_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("upstream_detail_retry_count must be at least 1")
        return v

    @field_validator("sync_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("sync_page_size must be between 1 and 100")
        return v

    @field_validator("initial_sync_lookback_days")
    @classmethod
    def validate_lookback(cls, v: int) -> int:
        if not 1 <= v <= 90:
            raise ValueError("initial_sync_lookback_days must be between 1 and 90")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
