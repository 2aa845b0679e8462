"""
Request bodies and the response envelope.

Every response is ``{"success": true, ...}`` or ``{"success": false, "error": ...}``.
Bodies use camelCase field names, like the rest of the wire format.
"""

from typing import Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def envelope(data: Any = None, *, message: Optional[str] = None, status_code: int = 200, **extra) -> JSONResponse:
    """Build a success response."""
    content: dict[str, Any] = {"success": True}
    if message is not None:
        content["message"] = message
    content.update({k: _jsonable(v) for k, v in extra.items()})
    if data is not None:
        content["data"] = _jsonable(data)
    return JSONResponse(status_code=status_code, content=content)


def error_envelope(error: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


class RequestBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Subscriptions
# =============================================================================

class CategorySubscribeRequest(RequestBody):
    user_id: str
    user_email: str
    user_name: str = ""
    category_id: str
    category_name: str


class CategoryUnsubscribeRequest(RequestBody):
    user_id: str
    category_id: str


class BookSubscribeRequest(RequestBody):
    user_id: str
    user_email: str
    user_name: str = ""
    book_id: str
    book_title: str
    book_category: str = ""


class BookUnsubscribeRequest(RequestBody):
    user_id: str
    book_id: str


# =============================================================================
# Notifications
# =============================================================================

class UserRequest(RequestBody):
    """Body of the notification mutations: the acting user."""
    user_id: str
