from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from functools import lru_cache


DEFAULT_JWT_SECRET = "dev-only-banking-api-jwt-secret-change-me"


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Banking API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # CORS settings
    allowed_origins: List[str] = ["*"]
    allowed_methods: List[str] = ["GET", "POST", "OPTIONS"]
    allowed_headers: List[str] = ["*"]

    # Token settings
    jwt_secret_key: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Password hashing
    bcrypt_rounds: int = 12

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v):
        if not 4 <= v <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")
        return v

    @field_validator("access_token_expire_minutes")
    @classmethod
    def validate_token_lifetime(cls, v):
        if v <= 0:
            raise ValueError("access_token_expire_minutes must be positive")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Environment-specific configurations
class DevelopmentSettings(Settings):
    debug: bool = True
    log_level: str = "DEBUG"
    log_format: str = "text"


class ProductionSettings(Settings):
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: List[str] = []  # Must be specified in production

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_secret(cls, v):
        if v == DEFAULT_JWT_SECRET:
            raise ValueError("JWT_SECRET_KEY must be set in production")
        return v


class TestingSettings(Settings):
    debug: bool = True
    log_level: str = "WARNING"  # Reduce noise in tests
    bcrypt_rounds: int = 4


def get_settings_for_environment(env: str = "development") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()
