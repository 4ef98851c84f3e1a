"""
Configuration module for loading environment variables.
All pricing, concurrency and usage-file settings are read from the environment.
"""
import os
from typing import Optional


class Config:
    """Application configuration loaded from environment variables."""

    # Pricing catalog (GraphQL endpoint)
    PRICING_API_ENDPOINT: str = os.getenv(
        "PRICING_API_ENDPOINT",
        "https://pricing.api.infracost.io/graphql"
    ).rstrip("/")
    PRICING_API_KEY: str = os.getenv("PRICING_API_KEY", "")
    PRICING_TIMEOUT_SECONDS: float = float(os.getenv("PRICING_TIMEOUT_SECONDS", "30"))

    # Optional local catalog dump (.json or .json.gz); takes precedence over the API
    PRICING_CATALOG_PATH: Optional[str] = os.getenv("PRICING_CATALOG_PATH") or None

    # Batching and concurrency for catalog queries
    PRICING_BATCH_SIZE: int = int(os.getenv("PRICING_BATCH_SIZE", "50"))
    PRICING_MAX_CONCURRENCY: int = int(os.getenv("PRICING_MAX_CONCURRENCY", "4"))

    # Run-wide deadline in seconds (0 disables it)
    ESTIMATE_TIMEOUT_SECONDS: float = float(os.getenv("ESTIMATE_TIMEOUT_SECONDS", "0"))

    # Cost calculation
    HOURS_PER_MONTH: int = 730  # Standard assumption: 24/7 operation
    CURRENCY: str = os.getenv("CURRENCY", "USD")

    # Usage file
    USAGE_FILE_VERSION: str = "0.1"

    # Region fallbacks used by builders when a resource carries no region
    DEFAULT_AWS_REGION: str = os.getenv("DEFAULT_AWS_REGION", "us-east-1")
    DEFAULT_AZURE_REGION: str = os.getenv("DEFAULT_AZURE_REGION", "eastus")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # HTTP API request limits
    MAX_REQUEST_BODY_BYTES: int = int(os.getenv("MAX_REQUEST_BODY_BYTES", str(10 * 1024 * 1024)))
    MAX_GRAPH_RESOURCES: int = int(os.getenv("MAX_GRAPH_RESOURCES", "5000"))

    @classmethod
    def validate(cls) -> None:
        """
        Validates that configuration values are usable.

        Raises:
            ValueError: If any configuration value is missing or invalid.
        """
        if cls.PRICING_BATCH_SIZE < 1:
            raise ValueError("PRICING_BATCH_SIZE must be at least 1")
        if cls.PRICING_MAX_CONCURRENCY < 1:
            raise ValueError("PRICING_MAX_CONCURRENCY must be at least 1")
        if cls.PRICING_TIMEOUT_SECONDS <= 0:
            raise ValueError("PRICING_TIMEOUT_SECONDS must be positive")
        if cls.ESTIMATE_TIMEOUT_SECONDS < 0:
            raise ValueError("ESTIMATE_TIMEOUT_SECONDS must not be negative")
        if cls.MAX_REQUEST_BODY_BYTES < 1:
            raise ValueError("MAX_REQUEST_BODY_BYTES must be positive")

        # The endpoint is only needed when no local catalog is configured
        if not cls.PRICING_CATALOG_PATH:
            if not cls.PRICING_API_ENDPOINT.startswith(("http://", "https://")):
                raise ValueError(
                    f"PRICING_API_ENDPOINT must be a valid URL (got: {cls.PRICING_API_ENDPOINT})"
                )


config = Config()
