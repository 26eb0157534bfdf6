from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from laundryops.core.enums import OrderStatus, ItemStatus, PaymentStatus, OrderPriority


class OrderItemCreate(BaseModel):
    item_name: str = Field(..., min_length=1, max_length=120)
    service_name: Optional[str] = None
    quantity: int = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    color: Optional[str] = None
    brand: Optional[str] = None
    notes: Optional[str] = None


class OrderCreate(BaseModel):
    store_id: int
    customer_id: int
    priority: OrderPriority = OrderPriority.NORMAL
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[OrderItemCreate] = Field(default_factory=list)


class CustomerOrderCreate(BaseModel):
    store_id: int
    priority: OrderPriority = OrderPriority.NORMAL
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[OrderItemCreate] = Field(default_factory=list)


class OrderItemsAdd(BaseModel):
    items: List[OrderItemCreate] = Field(..., min_length=1)


class ReorderRequest(BaseModel):
    pickup_date: datetime
    pickup_time_slot: str = Field(..., min_length=1, max_length=50)
    pickup_address: Optional[str] = None


class StatusChange(BaseModel):
    expected_status: OrderStatus
    status: OrderStatus
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    expected_status: Optional[OrderStatus] = None
    reason: Optional[str] = None


class DriverAssignment(BaseModel):
    driver_id: Optional[int] = None


class OrderItemOut(BaseModel):
    id: int
    order_id: int
    tag_number: str
    item_name: str
    service_name: Optional[str] = None
    quantity: int
    unit_price: float
    subtotal: float
    status: ItemStatus
    sent_to_workshop: bool
    workshop_partner_name: Optional[str] = None
    workshop_sent_at: Optional[datetime] = None
    workshop_returned_at: Optional[datetime] = None
    workshop_notes: Optional[str] = None
    color: Optional[str] = None
    brand: Optional[str] = None
    notes: Optional[str] = None


class StatusHistoryOut(BaseModel):
    id: int
    from_status: OrderStatus
    to_status: OrderStatus
    changed_by: str
    actor_kind: str
    actor_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime


class OrderOut(BaseModel):
    id: int
    business_id: int
    store_id: int
    customer_id: int
    driver_id: Optional[int] = None
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    priority: OrderPriority
    total_amount: float
    paid_amount: float
    due_amount: float
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[OrderItemOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None


class OrderStatsOut(BaseModel):
    status_counts: dict
    active_total: int
    workshop_items: int
    today_orders: int
    today_revenue: float
