from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database
    database_url: str = "sqlite:///./vault.db"

    # Logging
    log_level: str = "info"
    log_format: str = "console"  # "console" | "json"

    # Sessions
    session_ttl_seconds: int = 86400  # 24 hours

    # Encryption
    kdf_iterations: int = 100_000
    default_salt: str = "default-salt"  # Used when a user record is missing

    # Limits
    import_max_items: int = 1000

    # Rate Limiting
    rate_limit_auth: str = "10/minute"
    rate_limit_records: str = "120/minute"

    # Cleanup
    cleanup_interval_minutes: int = 30

    # CORS
    cors_origins: list[str] | str = ["http://localhost:5173", "http://127.0.0.1:5173"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


settings = Settings()
