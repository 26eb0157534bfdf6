from pydantic import BaseModel, Field
from typing import Optional, List
from laundryops.core.enums import WorkshopAction, OrderStatus, OrderPriority
from laundryops.schemas.order import OrderItemOut


class WorkshopSend(BaseModel):
    item_ids: List[int] = Field(..., min_length=1)
    partner_name: Optional[str] = None
    notes: Optional[str] = None


class WorkshopSendResult(BaseModel):
    order_id: int
    order_status: OrderStatus
    items_requested: int
    items_updated: int
    skipped_item_ids: List[int]
    items: List[OrderItemOut]


class WorkshopItemAction(BaseModel):
    action: WorkshopAction
    notes: Optional[str] = None


class WorkshopItemOut(OrderItemOut):
    order_number: str
    order_status: OrderStatus
    priority: OrderPriority
    store_id: int


class WorkshopStats(BaseModel):
    at_workshop: int
    returned: int
    returned_today: int


class WorkshopListOut(BaseModel):
    items: List[WorkshopItemOut]
    stats: WorkshopStats
