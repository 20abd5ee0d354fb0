"""
Uniform success envelope.

Every 2xx body is {"status": "success", "status_code", "message", "data"}.
"""

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(status_code: int, message: str, data: Optional[Any] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "success",
            "status_code": status_code,
            "message": message,
            "data": jsonable_encoder(data) if data is not None else None,
        },
    )


def auth_response(status_code: int, message: str, access_token: str, data: Any) -> JSONResponse:
    """Success envelope carrying a bearer token alongside the user profile."""
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "success",
            "status_code": status_code,
            "message": message,
            "access_token": access_token,
            "token_type": "bearer",
            "data": jsonable_encoder(data),
        },
    )
