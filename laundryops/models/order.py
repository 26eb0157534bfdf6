from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, DateTime, ForeignKey, Enum, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from laundryops.models.base import BaseModel
from laundryops.core.enums import (
    OrderStatus, ItemStatus, PaymentStatus, PaymentMode, OrderPriority, ActorKind,
)

MONEY = Numeric(12, 2)


class Order(BaseModel):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("business_id", "order_number", name="uq_orders_business_order_number"),
    )

    business_id = Column(Integer, nullable=False, index=True)
    store_id = Column(ForeignKey("stores.id"), nullable=False)
    customer_id = Column(ForeignKey("customers.id"), nullable=False)
    driver_id = Column(ForeignKey("drivers.id"), nullable=True)

    store = relationship("Store")
    customer = relationship("Customer")
    driver = relationship("Driver")
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    status_history = relationship(
        "OrderStatusHistory", back_populates="order", order_by="OrderStatusHistory.id"
    )
    payments = relationship("Payment", back_populates="order", order_by="Payment.id")

    order_number = Column(String(32), nullable=False)
    status = Column(Enum(OrderStatus), default=OrderStatus.PICKUP, nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.UNPAID, nullable=False)
    priority = Column(Enum(OrderPriority), default=OrderPriority.NORMAL, nullable=False)

    total_amount = Column(MONEY, nullable=False, default=0)
    paid_amount = Column(MONEY, nullable=False, default=0)

    pickup_date = Column(DateTime(timezone=True), nullable=True)
    delivery_date = Column(DateTime(timezone=True), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    completed_date = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)


class OrderItem(BaseModel):
    __tablename__ = "order_items"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    order = relationship("Order", back_populates="items")

    tag_number = Column(String(48), nullable=False)
    item_name = Column(String(120), nullable=False)
    service_name = Column(String(120), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    subtotal = Column(MONEY, nullable=False)
    status = Column(Enum(ItemStatus), default=ItemStatus.RECEIVED, nullable=False)

    sent_to_workshop = Column(Boolean, default=False, nullable=False)
    workshop_partner_name = Column(String(120), nullable=True)
    workshop_sent_at = Column(DateTime(timezone=True), nullable=True)
    workshop_returned_at = Column(DateTime(timezone=True), nullable=True)
    workshop_notes = Column(Text, nullable=True)

    color = Column(String(40), nullable=True)
    brand = Column(String(80), nullable=True)
    notes = Column(Text, nullable=True)


class OrderStatusHistory(BaseModel):
    __tablename__ = "order_status_history"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    order = relationship("Order", back_populates="status_history")

    from_status = Column(Enum(OrderStatus), nullable=False)
    to_status = Column(Enum(OrderStatus), nullable=False)
    actor_kind = Column(Enum(ActorKind), nullable=False)
    actor_id = Column(Integer, nullable=True)
    actor_name = Column(String(120), nullable=True)
    notes = Column(Text, nullable=True)


class Payment(BaseModel):
    __tablename__ = "payments"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    order = relationship("Order", back_populates="payments")

    amount = Column(MONEY, nullable=False)
    mode = Column(Enum(PaymentMode), nullable=False)
    reference = Column(String(120), nullable=True)
    notes = Column(Text, nullable=True)
    actor_kind = Column(Enum(ActorKind), nullable=False)
    actor_id = Column(Integer, nullable=True)
