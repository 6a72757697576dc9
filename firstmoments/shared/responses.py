"""
Response envelope helpers.
"""
from typing import Any, Optional, Tuple

from fastapi import Request
from fastapi.encoders import jsonable_encoder


def success_response(data: Any = None, message: Optional[str] = None) -> dict:
    return {
        "success": True,
        "message": message,
        "data": jsonable_encoder(data),
    }


def error_body(message: str, errors: Any = None) -> dict:
    body = {"success": False, "message": message}
    if errors is not None:
        body["errors"] = jsonable_encoder(errors)
    return body


def client_info(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """User agent and remote address of the caller"""
    user_agent = request.headers.get("user-agent")
    ip_address = request.client.host if request.client else None
    return user_agent, ip_address
