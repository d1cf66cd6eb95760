from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

KNOWN_STATUSES = ("created", "processing", "shipped", "delivered", "cancelled", "late")
PENDING_STATUSES = ("created", "assigned", "pending")


class Order(BaseModel):
    """Order record as held by the order store."""
    id: str
    tracking_id: str
    customer_name: Optional[str] = None
    address: Optional[str] = None
    item: str
    items: List[str] = Field(default_factory=list)
    qty: int = 1
    status: str = "created"
    pickup_time: Optional[datetime] = None
    assigned_to: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    amount: float = 200
    expenses: float = 50
    created_at: datetime
    updated_at: datetime


class OrderFields(BaseModel):
    """Fields pulled out of an utterance that describes a new order."""
    customer_name: Optional[str] = None
    address: Optional[str] = None
    item: str
    qty: int = 1
    pickup_time: Optional[datetime] = None


class OrderCreate(BaseModel):
    """Request payload for creating an order through the REST API."""
    customer_name: Optional[str] = None
    address: Optional[str] = None
    item: str
    items: List[str] = Field(default_factory=list)
    qty: int = 1
    pickup_time: Optional[datetime] = None
    assigned_to: Optional[str] = None


class OrderUpdate(BaseModel):
    """Partial update payload; only fields that were sent are applied."""
    customer_name: Optional[str] = None
    address: Optional[str] = None
    item: Optional[str] = None
    items: Optional[List[str]] = None
    qty: Optional[int] = None
    status: Optional[str] = None
    pickup_time: Optional[datetime] = None
    assigned_to: Optional[str] = None

    @field_validator("item", "items", "qty", "status")
    @classmethod
    def _required_fields_not_null(cls, value: Any) -> Any:
        # Defaults are not validated, so only explicit nulls reach this check.
        if value is None:
            raise ValueError("must not be null")
        return value


class Turn(BaseModel):
    """One entry of a user's conversation transcript."""
    role: str
    content: str
    name: Optional[str] = None
    timestamp: float = 0.0


class ChatRequest(BaseModel):
    """Request payload for the assistant endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    text: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    lang: Optional[str] = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be empty")
        return value.strip()


class ChatResponse(BaseModel):
    """Response payload returned by the assistant endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    reply: str
    action: str
    order: Optional[Order] = None
    orders: Optional[List[Order]] = None
    module: Optional[Dict[str, Any]] = None
    guide: Optional[Dict[str, Any]] = None
    tracking_id: Optional[str] = Field(default=None, serialization_alias="trackingId")


class DeleteResult(BaseModel):
    success: bool
