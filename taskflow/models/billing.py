"""
Subscription plan models
"""

from typing import Optional
from pydantic import BaseModel


class Plan(BaseModel):
    """Subscription plan and the limits it grants"""
    id: str
    price_id: Optional[str] = None
    message_limit: int
    issue_limit: Optional[int] = None


class Subscription(BaseModel):
    """Billing provider subscription state for a user"""
    status: str
    price_id: Optional[str] = None
    customer_id: Optional[str] = None
