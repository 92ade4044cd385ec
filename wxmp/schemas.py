"""
Pydantic schemas for the HTTP endpoints.

Domain messages live in messages.py (requests) and replies.py (replies);
this module only holds request/response bodies of the JSON endpoints.
"""

from typing import Optional

from pydantic import BaseModel, Field

from wxmp.replies import ContentReply


class StageReplyRequest(BaseModel):
    """
    Reply prepared for a pushed message.

    Addressing (to/from/time) is filled in from the message when served.
    """
    reply: ContentReply = Field(..., description="Reply body, discriminated by msg_type")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"reply": {"msg_type": "text", "content": "Hello"}},
                {"reply": {"msg_type": "news", "articles": [{"title": "Weekly", "url": "https://example.com/w"}]}},
            ]
        }
    }


class StageReplyResponse(BaseModel):
    status: str = Field(default="staged", description="Operation status")
    replaced: bool = Field(default=False, description="An earlier staged reply was replaced")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")
    code: Optional[str] = Field(None, description="Error code")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
