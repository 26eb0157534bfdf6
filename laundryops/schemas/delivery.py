from pydantic import BaseModel, Field
from typing import List
from laundryops.schemas.order import OrderItemCreate


class DriverItemsAdd(BaseModel):
    items: List[OrderItemCreate] = Field(..., min_length=1)
    mark_as_picked_up: bool = True


class DriverStatsOut(BaseModel):
    pending_pickups: int
    pending_deliveries: int
    completed_today: int
    total_completed: int
