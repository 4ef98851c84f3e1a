"""
Request size limiting middleware for FastAPI.
Protects the estimation endpoints from oversized plans.
"""
from typing import Any, Dict, Optional, Set
import json
import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from iaccost.core.config import config


logger = logging.getLogger(__name__)


# Endpoints that require size limiting
PROTECTED_ENDPOINTS: Set[str] = {
    "/api/estimate",
    "/api/estimate/scenario",
    "/api/usage/sync",
}


def _too_large(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "status": "error",
            "error": "request_too_large",
            "message": message,
        }
    )


def count_plan_resources(plan: Dict[str, Any]) -> int:
    """Number of resources in a plan, state, or generic graph document."""
    if isinstance(plan.get("resources"), list):
        return len(plan["resources"])

    values = plan.get("planned_values") or plan.get("values")
    if not isinstance(values, dict):
        # Malformed documents are rejected later by the plan loader
        return 0

    pending = [values.get("root_module")]
    total = 0
    while pending:
        module = pending.pop()
        if not isinstance(module, dict):
            continue
        resources = module.get("resources")
        if isinstance(resources, list):
            total += len(resources)
        child_modules = module.get("child_modules")
        if isinstance(child_modules, list):
            pending.extend(child_modules)
    return total


class RequestSizeLimiterMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for request size limiting.

    Applies limits only to the estimation endpoints.
    Other routes pass through untouched.
    """

    async def dispatch(self, request: Request, call_next: ASGIApp):
        path = request.url.path

        if path not in PROTECTED_ENDPOINTS:
            return await call_next(request)

        limit = config.MAX_REQUEST_BODY_BYTES

        content_length = request.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > limit:
            logger.info(f"Request body size exceeded for {path}: {content_length} bytes (limit: {limit})")
            return _too_large(f"Request body size exceeds allowed limit of {limit} bytes.")

        body_bytes = await request.body()
        if len(body_bytes) > limit:
            logger.info(f"Request body size exceeded for {path}: {len(body_bytes)} bytes (limit: {limit})")
            return _too_large(f"Request body size exceeds allowed limit of {limit} bytes.")

        if body_bytes:
            validation_error = self._validate_payload(body_bytes)
            if validation_error:
                logger.info(f"Payload validation failed for {path}: {validation_error}")
                return _too_large(validation_error)

        return await call_next(request)

    def _validate_payload(self, body_bytes: bytes) -> Optional[str]:
        """
        Check the plan's resource count.

        Returns:
            Error message if validation fails, None if valid
        """
        try:
            body_json = json.loads(body_bytes.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            # Invalid JSON - let FastAPI report it
            return None

        plan = body_json.get("plan") if isinstance(body_json, dict) else None
        if not isinstance(plan, dict):
            return None

        resource_count = count_plan_resources(plan)
        if resource_count > config.MAX_GRAPH_RESOURCES:
            return f"Too many resources in plan: {resource_count} (limit: {config.MAX_GRAPH_RESOURCES})"
        return None
