from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from db.order import OrderStatus


class OrderRead(BaseModel):
    id: UUID
    record_id: UUID
    quantity: int
    status: OrderStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderCreate(BaseModel):
    record_id: UUID
    quantity: int = Field(..., ge=1)
