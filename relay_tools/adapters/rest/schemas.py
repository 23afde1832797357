"""REST adapter Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, Field


class RestResponse(BaseModel):
    """A completed REST exchange."""

    status_code: int
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300
