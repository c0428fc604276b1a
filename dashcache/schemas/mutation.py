import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateSubmission(BaseModel):
    """One logical create, as submitted by a form.

    The client token is generated once, when the submission is built, so
    resubmitting the same object after a failure resends the same token and the
    server can recognize the retry.
    """
    model_config = ConfigDict(frozen=True)

    resource_type: str
    fields: Dict[str, Any] = Field(default_factory=dict)
    client_token: str = Field(default_factory=lambda: str(uuid.uuid4()))


class APIErrorBody(BaseModel):
    """Error object as the core API returns it, standalone or inside a batch."""
    model_config = ConfigDict(extra="allow")

    code: Optional[str] = None
    message: str = "unknown error"
    detail: Optional[str] = None
    temporary: bool = False
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def is_error(cls, body: Any) -> bool:
        return isinstance(body, dict) and "code" in body and "message" in body
