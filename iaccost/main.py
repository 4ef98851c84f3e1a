"""
Main FastAPI application bootstrap.
Configures logging and middleware and includes routers.
"""
import logging

from fastapi import FastAPI

from iaccost.core.config import config
from iaccost.api.estimate import router as estimate_router
from iaccost.middleware.request_size_limiter import RequestSizeLimiterMiddleware


logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Validate configuration on startup
try:
    config.validate()
except ValueError as error:
    # Fail fast with a clear, non-secret-bearing message
    raise RuntimeError(f"Configuration error: {error}") from error

if config.PRICING_CATALOG_PATH:
    logger.info("Pricing from local catalog %s", config.PRICING_CATALOG_PATH)
else:
    logger.info(
        "Pricing from %s (api key %s)",
        config.PRICING_API_ENDPOINT,
        "set" if config.PRICING_API_KEY else "MISSING",
    )


app = FastAPI(
    title="iaccost",
    description="Cost estimation for infrastructure-as-code plans",
)

app.add_middleware(RequestSizeLimiterMiddleware)

app.include_router(estimate_router)


@app.get("/health")
async def health() -> dict:
    """Liveness probe."""
    return {"status": "ok"}
