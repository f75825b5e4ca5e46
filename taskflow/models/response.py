"""
Response models for actions and API endpoints
"""

from typing import List, Optional
from pydantic import BaseModel


class ActionResult(BaseModel):
    """Result of a mutation action"""
    success: bool = True
    message: Optional[str] = None
    affected: int = 0
    job_id: Optional[str] = None
    data: Optional[dict] = None

    @classmethod
    def failure(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message)


class ErrorResponse(BaseModel):
    """Error response model"""
    message: str
    error_code: Optional[str] = None
    details: Optional[dict] = None


class RateLimitResult(BaseModel):
    """Outcome of consuming one token from a usage bucket"""
    success: bool
    limit: int
    remaining: int
    reset_at_ms: int
    error: Optional[str] = None


class RateLimitStatus(BaseModel):
    """Read-only view of a usage bucket"""
    limit: int
    remaining: int
    reset_at_ms: int


class RateLimitedResponse(BaseModel):
    """Returned instead of performing a metered action when the bucket is empty"""
    success: bool = False
    status_code: int = 429
    message: str = "Message limit reached. Upgrade your plan or try again later."
    remaining: int = 0
    reset_at_ms: int


class ChatReply(BaseModel):
    """Assistant reply to a chat turn"""
    success: bool = True
    message: str
    tool_calls: int = 0
    remaining: Optional[int] = None


class GeneratedDescription(BaseModel):
    """AI-generated todo description with clarifying questions"""
    description: str
    questions: List[str] = []
