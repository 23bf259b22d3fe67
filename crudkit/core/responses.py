"""
Success envelope helpers.

Every successful operation answers with::

    {"status": "success", "cookie": bool, "description": str,
     "results": ..., "toast": str, "meta": {...}?}
"""

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from crudkit.core.config import settings


def serialize(data: Any) -> Any:
    """Turn ORM rows (or lists / dicts of them) into plain JSON-ready data."""
    if data is None:
        return None
    if hasattr(data, "to_dict"):
        return data.to_dict()
    if isinstance(data, (list, tuple)):
        return [serialize(item) for item in data]
    if isinstance(data, dict):
        return {key: serialize(value) for key, value in data.items()}
    return data


def send_response(
    data: Dict[str, Any],
    status_code: int = 200,
    content_type: Optional[str] = None,
    with_cookie: bool = False,
    token: Optional[str] = None,
    cookie_options: Optional[Dict[str, Any]] = None,
    clear_cookie: bool = False,
) -> JSONResponse:
    """
    Build the HTTP response for an envelope.

    Args:
        data: Envelope body (description, results, toast, meta)
        status_code: HTTP status code
        content_type: Optional explicit Content-Type header
        with_cookie: Set the auth token cookie (requires ``token``)
        token: Signed token stored in the cookie
        cookie_options: Extra ``set_cookie`` keyword arguments
        clear_cookie: Remove the auth token cookie
    """
    sets_cookie = with_cookie and token is not None
    body = {"status": "success", "cookie": sets_cookie, **data}
    if body.get("meta") is None:
        body.pop("meta", None)

    headers = {"Content-Type": content_type} if content_type else None
    response = JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)

    if clear_cookie:
        response.delete_cookie(settings.TOKEN_COOKIE_NAME)
    elif sets_cookie:
        options = {"httponly": True, "samesite": "lax"}
        options.update(cookie_options or {})
        response.set_cookie(settings.TOKEN_COOKIE_NAME, token, **options)
    return response


def emit_success(
    data: Any,
    name: str,
    description: Optional[str] = None,
    toast: Optional[str] = None,
    status: int = 200,
    meta: Optional[Dict[str, Any]] = None,
    envelope: Optional[Dict[str, Any]] = None,
    **response_kwargs: Any,
) -> JSONResponse:
    """
    Wrap ``data`` in the success envelope and send it.

    ``envelope`` entries replace body fields (``results``, ``status``,
    ``cookie`` included). ``status`` is the HTTP status code.
    """
    body = {
        "description": description or f"{name} updated successfully",
        "results": serialize(data),
        "meta": meta,
        "toast": toast or f"{name} updated successfully",
    }
    body.update(serialize(envelope or {}))
    return send_response(data=body, status_code=status, **response_kwargs)
