"""Server-side field validation endpoint."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from okrsview.access.context import AccessContext
from okrsview.validation.rules import FieldRule
from okrsview.validation.validator import validate
from okrsview.web.auth.rbac import get_access_context
from okrsview.web.dependencies import Services, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/validate", tags=["validation"])


@router.post("")
async def validate_payload(
    request: Request,
    _context: AccessContext = Depends(get_access_context),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Validate ``data`` for ``entity`` using custom ``rules`` or the registered set.

    200 when valid, 400 with the field errors otherwise.
    """
    try:
        body: Any = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}

    entity = body.get("entity")
    data = body.get("data")
    if not entity or not isinstance(data, dict):
        return JSONResponse({"error": "Missing entity or data"}, status_code=400)

    custom = body.get("rules")
    rules = None
    if isinstance(custom, list) and custom:
        try:
            rules = [FieldRule.from_dict(r) for r in custom]
        except (AttributeError, KeyError, TypeError, ValueError):
            return JSONResponse({"error": "Invalid rules"}, status_code=400)

    result = validate(str(entity), data, rules=rules, registry=services.rules)
    return JSONResponse(result.to_dict(), status_code=200 if result.valid else 400)
