"""
Configuration management system using Pydantic Settings.
Supports environment-based configuration for different deployment environments.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from typing import Optional, Dict, Any, List
from enum import Enum


class Environment(str, Enum):
    """Supported deployment environments"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Supported log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ModelApiSettings(BaseSettings):
    """OpenAI-compatible model endpoint configuration"""

    base_url: str = Field(default="https://api.openai.com/v1")
    api_key: Optional[str] = Field(default=None, description="Bearer token for the model API")

    # Extraction (multimodal)
    extraction_model: str = Field(default="gpt-4.1-nano")
    extraction_timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    extraction_max_tokens: int = Field(default=16384, ge=256, le=65536)
    image_detail: str = Field(default="high")

    # Translation (text only)
    translation_model: str = Field(default="gpt-4.1-nano")
    translation_timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    translation_temperature: float = Field(default=0.2, ge=0.0, le=2.0)

    # Image generation
    image_model: str = Field(default="dall-e-2")
    image_size: str = Field(default="512x512")
    image_timeout_seconds: float = Field(default=60.0, ge=1.0, le=600.0)

    connect_timeout_seconds: float = Field(default=10.0, ge=1.0, le=60.0)

    @property
    def is_configured(self) -> bool:
        """Whether an API key is available for upstream calls"""
        return bool(self.api_key)

    model_config = {"env_prefix": "MODEL_API_"}


class RetrySettings(BaseSettings):
    """Retry policy for transient upstream failures"""

    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay_seconds: float = Field(default=0.5, ge=0.0, le=30.0)
    max_delay_seconds: float = Field(default=8.0, ge=0.0, le=120.0)
    jitter: bool = Field(default=True)

    model_config = {"env_prefix": "RETRY_"}


class ConcurrencySettings(BaseSettings):
    """Concurrency and performance configuration"""

    max_concurrent_upstream_calls: int = Field(default=8, ge=1, le=100)
    queue_timeout_seconds: float = Field(default=60.0, ge=1.0, le=600.0)

    model_config = {"env_prefix": "CONCURRENCY_"}


class IntakeSettings(BaseSettings):
    """Upload validation limits"""

    max_image_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    accepted_content_types: List[str] = Field(
        default_factory=lambda: [
            "image/jpeg",
            "image/png",
            "image/webp",
            "image/gif",
            "image/heic",
            "image/heif",
        ]
    )

    @field_validator('accepted_content_types', mode='before')
    @classmethod
    def parse_content_types(cls, v):
        """Parse accepted MIME types from environment variable or list"""
        if isinstance(v, str):
            v = v.split(",")
        return [str(t).strip().lower() for t in v if str(t).strip()]

    model_config = {"env_prefix": "INTAKE_"}


class DishImageCacheSettings(BaseSettings):
    """Dish image cache configuration"""

    success_ttl_seconds: int = Field(default=24 * 3600, ge=1)
    failure_ttl_seconds: int = Field(default=5 * 60, ge=1)
    max_entries: int = Field(default=1000, ge=1, le=1_000_000)
    use_redis: bool = Field(default=False, description="Share terminal entries across processes via Redis")

    @field_validator('failure_ttl_seconds')
    @classmethod
    def validate_failure_ttl(cls, v, info):
        """Negative cache must expire before the positive cache"""
        success_ttl = info.data.get('success_ttl_seconds')
        if success_ttl is not None and v >= success_ttl:
            raise ValueError("failure_ttl_seconds must be shorter than success_ttl_seconds")
        return v

    model_config = {"env_prefix": "DISH_IMAGE_"}


class RedisSettings(BaseSettings):
    """Redis cache configuration"""

    host: str = Field(default="redis")  # Default to docker service name
    port: int = Field(default=6379, ge=1, le=65535)
    password: Optional[str] = Field(default=None)
    db: int = Field(default=0, ge=0, le=15)
    socket_timeout: int = Field(default=5, ge=1, le=30)

    @property
    def url(self) -> str:
        """Generate Redis URL from configuration"""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"

    model_config = {"env_prefix": "REDIS_"}


class SecuritySettings(BaseSettings):
    """CORS configuration"""

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(
        default_factory=lambda: ["GET", "POST"]
    )
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from environment variable or list"""
        if isinstance(v, str):
            origin_list = v.split(",")
            return [origin.strip() for origin in origin_list if origin.strip()]
        return v or ["*"]

    model_config = {"env_prefix": "SECURITY_"}


class Settings(BaseSettings):
    """Main application settings"""

    # Application Configuration
    app_name: str = Field(default="Menu Scan Backend")
    app_version: str = Field(default="1.0.0")
    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    reload: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=16)

    # Logging Configuration
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: str = Field(default="json", description="json or text")

    # Nested Settings
    model_api: ModelApiSettings = Field(default_factory=ModelApiSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    concurrency: ConcurrencySettings = Field(
        default_factory=ConcurrencySettings
    )
    intake: IntakeSettings = Field(default_factory=IntakeSettings)
    dish_images: DishImageCacheSettings = Field(default_factory=DishImageCacheSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator('environment', mode='before')
    @classmethod
    def validate_environment(cls, v):
        """Validate and normalize environment setting"""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment == Environment.PRODUCTION

    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment == Environment.DEVELOPMENT

    def get_cors_config(self) -> Dict[str, Any]:
        """Get CORS configuration for FastAPI"""
        return {
            "allow_origins": self.security.cors_origins,
            "allow_credentials": self.security.cors_allow_credentials,
            "allow_methods": self.security.cors_allow_methods,
            "allow_headers": self.security.cors_allow_headers,
        }

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "protected_namespaces": (),
    }


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance"""
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment and files"""
    global settings
    settings = Settings()
    return settings
