from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from laundryops.core.enums import PaymentMode, PaymentStatus


class PaymentCreate(BaseModel):
    amount: float = Field(..., gt=0)
    mode: PaymentMode = PaymentMode.CASH
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    id: int
    amount: float
    mode: PaymentMode
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class PaymentSummaryOut(BaseModel):
    order_id: int
    order_number: str
    total_amount: float
    paid_amount: float
    due_amount: float
    payment_status: PaymentStatus
    payments: List[PaymentOut]
