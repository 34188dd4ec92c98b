"""
Uniform JSON envelope for every HTTP response.

Success: {"success": true,  "code", "message", "data"?,    "meta"}
Error:   {"success": false, "code", "message", "details"?, "meta"}
meta:    {"request_id", "timestamp", "authenticated"?}

`code` values are stable identifiers clients branch on; `message` is prose.
"""
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def build_meta(request: Request, authenticated: bool | None = None) -> dict:
    meta = {
        "request_id": getattr(request.state, "request_id", None) or "unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if authenticated is not None:
        meta["authenticated"] = authenticated
    return meta


def respond_success(
    request: Request,
    *,
    code: str,
    message: str,
    data: Any = None,
    status: int = 200,
    authenticated: bool | None = None,
) -> JSONResponse:
    payload = {"success": True, "code": code, "message": message}
    if data is not None:
        payload["data"] = jsonable_encoder(data)
    payload["meta"] = build_meta(request, authenticated)
    return JSONResponse(status_code=status, content=payload)


def respond_error(
    request: Request,
    *,
    status: int,
    code: str,
    message: str,
    details: Any = None,
    authenticated: bool | None = None,
) -> JSONResponse:
    payload = {"success": False, "code": code, "message": message}
    if details is not None:
        payload["details"] = jsonable_encoder(details)
    payload["meta"] = build_meta(request, authenticated)
    return JSONResponse(status_code=status, content=payload)
