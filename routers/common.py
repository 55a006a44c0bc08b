from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from database import serialize
from schemas import ApiResponse


class Payload(BaseModel):
    """Base for request bodies."""

    model_config = ConfigDict(use_enum_values=True, str_strip_whitespace=True)


def ok(data: Any = None, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(data=serialize(data), message=message)
