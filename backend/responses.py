"""
Response envelope: every endpoint returns {success, data?, message?, count?, pagination?}.
"""
from typing import Any, Optional

from bson.objectid import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from models import Pagination

# ObjectId is not known to the default encoders
ENCODERS = {ObjectId: str}


def encode(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder=ENCODERS)


def respond(data: Any = None, message: Optional[str] = None, status_code: int = 200,
            count: Optional[int] = None, pagination: Optional[Pagination] = None) -> JSONResponse:
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if count is not None:
        body["count"] = count
    if pagination is not None:
        body["pagination"] = pagination.model_dump()
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=encode(body))


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})
