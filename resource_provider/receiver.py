"""
Consumer-side endpoints for resources pushed by a provider.

The same routes are served with and without the ``/backend`` prefix:

    POST   /api/resources/{klass}/{uuid}   create
    PUT    /api/resources/{klass}/{uuid}   update
    DELETE /api/resources/{klass}/{uuid}   destroy

Create and update bodies are authenticated by recomputing the envelope
signature with the shared secret. What a consumer does with the data is up
to the injected :class:`ResourceHandler`.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from resource_provider.models import SignedEnvelope
from resource_provider.signing import Signer

logger = logging.getLogger(__name__)

ROUTE_PREFIXES = ("", "/backend")

_HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_SERVER_ERROR",
}


class ResourceHandler(ABC):
    """Applies provider notifications to the consumer's own storage."""

    @abstractmethod
    async def create(self, klass: str, uuid: str, attributes: Dict[str, Any], realm: str) -> None:
        """Store a newly provided resource."""

    @abstractmethod
    async def update(self, klass: str, uuid: str, attributes: Dict[str, Any], realm: str) -> None:
        """Replace the stored copy of a resource."""

    @abstractmethod
    async def destroy(self, klass: str, uuid: str) -> bool:
        """Delete the stored copy. Returns False if there was none."""


def _error_response(
    status: int,
    code: str,
    message: str,
    details: Optional[List[Dict[str, Any]]] = None,
) -> JSONResponse:
    """Create a standardized error JSONResponse."""
    body: Dict[str, Any] = {
        "error": {
            "code": code,
            "status": status,
            "message": message,
        }
    }
    if details is not None:
        body["error"]["details"] = details
    return JSONResponse(status_code=status, content=body)


async def _read_envelope(request: Request, signer: Signer) -> tuple[Dict[str, Any], str]:
    """Parse and authenticate a create/update body. Returns (attributes, realm)."""
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    try:
        envelope = SignedEnvelope.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422, detail=f"Malformed envelope: {exc.error_count()} invalid field(s)"
        ) from exc
    if not signer.verify(envelope.model_dump(), envelope.sign):
        logger.warning(f"Rejected envelope from service {envelope.service}: bad signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
    try:
        attributes = json.loads(envelope.resource)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Resource field must be JSON-encoded") from exc
    if not isinstance(attributes, dict):
        raise HTTPException(status_code=400, detail="Resource field must encode an object")
    return attributes, envelope.realm


def build_router(signer: Signer, handler: ResourceHandler) -> APIRouter:
    """Return a router serving the resource routes under every prefix."""
    router = APIRouter()

    async def create_resource(klass: str, uuid: str, request: Request) -> Response:
        attributes, realm = await _read_envelope(request, signer)
        await handler.create(klass, uuid, attributes, realm)
        logger.info(f"Created {klass}/{uuid} for realm {realm}")
        return Response(status_code=201)

    async def update_resource(klass: str, uuid: str, request: Request) -> Response:
        attributes, realm = await _read_envelope(request, signer)
        await handler.update(klass, uuid, attributes, realm)
        logger.info(f"Updated {klass}/{uuid} for realm {realm}")
        return Response(status_code=200)

    async def destroy_resource(klass: str, uuid: str) -> Response:
        if not await handler.destroy(klass, uuid):
            raise HTTPException(status_code=404, detail=f"Resource {klass}/{uuid} not found")
        logger.info(f"Destroyed {klass}/{uuid}")
        return Response(status_code=200)

    for prefix in ROUTE_PREFIXES:
        path = f"{prefix}/api/resources/{{klass}}/{{uuid}}"
        router.add_api_route(path, create_resource, methods=["POST"])
        router.add_api_route(path, update_resource, methods=["PUT"])
        router.add_api_route(path, destroy_resource, methods=["DELETE"])
    return router


def create_app(signer: Signer, handler: ResourceHandler) -> FastAPI:
    """FastAPI application exposing the consumer-side resource routes."""
    app = FastAPI(title="Resource Consumer")
    app.include_router(build_router(signer, handler))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        code = _HTTP_ERROR_CODES.get(exc.status_code, "ERROR")
        return _error_response(exc.status_code, code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = []
        for err in exc.errors():
            field = ".".join(str(loc) for loc in err.get("loc", []))
            details.append({
                "field": field,
                "message": err.get("msg", ""),
                "type": err.get("type", ""),
            })
        return _error_response(422, "VALIDATION_ERROR", "Request validation failed", details)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(500, "INTERNAL_SERVER_ERROR", "An unexpected error occurred")

    return app
