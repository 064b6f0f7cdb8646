"""
Configuration loader utility for environment-specific settings.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .settings import Settings, Environment

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Utility class for loading environment-specific configurations"""

    @staticmethod
    def load_environment_config(environment: Optional[str] = None) -> Settings:
        """
        Load configuration for the specified environment.

        Args:
            environment: Target environment (development, staging, production, testing)
                        If None, uses ENVIRONMENT env var or defaults to development

        Returns:
            Settings instance with environment-specific configuration
        """
        if environment is None:
            environment = os.getenv("ENVIRONMENT", "development")

        env = Environment(environment.lower())
        env_file = Path(f".env.{env.value}")

        if env_file.exists():
            return Settings(_env_file=str(env_file), environment=env)

        logger.warning(f"Environment file {env_file} not found, using default settings")
        return Settings(environment=env)

    @staticmethod
    def get_available_environments() -> list[str]:
        """Get list of available environment configurations"""
        env_files = []
        for env_file in Path(".").glob(".env.*"):
            if env_file.name.endswith(".sample"):
                continue
            env_files.append(env_file.name.replace(".env.", ""))
        return sorted(env_files)

    @staticmethod
    def validate_environment_config(environment: str) -> bool:
        """
        Validate that an environment configuration exists and loads.

        Args:
            environment: Environment name to validate

        Returns:
            True if configuration is valid, False otherwise
        """
        try:
            env = Environment(environment.lower())
        except ValueError:
            return False

        if not Path(f".env.{env.value}").exists():
            return False

        try:
            settings = ConfigLoader.load_environment_config(env.value)
        except ValueError as e:
            logger.error(f"Invalid configuration for {env.value}: {e}")
            return False

        required_settings = [
            settings.app_name,
            settings.environment,
            settings.host,
            settings.port,
            settings.model_api.base_url,
        ]
        return all(setting is not None for setting in required_settings)

    @staticmethod
    def create_sample_env_file(environment: str, output_path: Optional[str] = None) -> str:
        """
        Create a sample .env file for the specified environment.

        Args:
            environment: Target environment
            output_path: Optional custom output path

        Returns:
            Path to the created sample file
        """
        env = Environment(environment.lower())

        if output_path is None:
            output_path = f".env.{env.value}.sample"

        defaults = Settings()

        sample_content = f"""# Sample configuration for {env.value} environment
# Copy this file to .env.{env.value} and modify as needed

# Application Configuration
APP_NAME={defaults.app_name}
APP_VERSION={defaults.app_version}
ENVIRONMENT={env.value}
DEBUG={'true' if env == Environment.DEVELOPMENT else 'false'}

# Server Configuration
HOST={defaults.host}
PORT={defaults.port}
RELOAD={'true' if env == Environment.DEVELOPMENT else 'false'}
WORKERS={1 if env == Environment.DEVELOPMENT else 4}

# Logging Configuration
LOG_LEVEL={defaults.log_level.value}
LOG_FORMAT={defaults.log_format}

# Model API Configuration
MODEL_API_BASE_URL={defaults.model_api.base_url}
MODEL_API_API_KEY=your-api-key-here
MODEL_API_EXTRACTION_MODEL={defaults.model_api.extraction_model}
MODEL_API_TRANSLATION_MODEL={defaults.model_api.translation_model}
MODEL_API_IMAGE_MODEL={defaults.model_api.image_model}
MODEL_API_EXTRACTION_TIMEOUT_SECONDS={defaults.model_api.extraction_timeout_seconds}

# Retry Policy
RETRY_MAX_ATTEMPTS={defaults.retry.max_attempts}
RETRY_BASE_DELAY_SECONDS={defaults.retry.base_delay_seconds}
RETRY_MAX_DELAY_SECONDS={defaults.retry.max_delay_seconds}

# Concurrency Configuration
CONCURRENCY_MAX_CONCURRENT_UPSTREAM_CALLS={defaults.concurrency.max_concurrent_upstream_calls}

# Upload Limits
INTAKE_MAX_IMAGE_BYTES={defaults.intake.max_image_bytes}

# Dish Image Cache
DISH_IMAGE_SUCCESS_TTL_SECONDS={defaults.dish_images.success_ttl_seconds}
DISH_IMAGE_FAILURE_TTL_SECONDS={defaults.dish_images.failure_ttl_seconds}
DISH_IMAGE_MAX_ENTRIES={defaults.dish_images.max_entries}
DISH_IMAGE_USE_REDIS={'true' if env == Environment.PRODUCTION else 'false'}

# Redis Configuration
REDIS_HOST={defaults.redis.host}
REDIS_PORT={defaults.redis.port}
REDIS_DB={defaults.redis.db}

# Security Configuration
SECURITY_CORS_ORIGINS=*
"""

        with open(output_path, "w") as f:
            f.write(sample_content)

        return output_path


def load_config_for_environment(environment: Optional[str] = None) -> Settings:
    """Convenience function to load configuration for an environment"""
    return ConfigLoader.load_environment_config(environment)
