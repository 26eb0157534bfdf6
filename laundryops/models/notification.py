from sqlalchemy import Column, String, Integer, Boolean, DateTime, Enum, Text, JSON
from laundryops.models.base import BaseModel
from laundryops.core.enums import NotificationType


class Notification(BaseModel):
    __tablename__ = "notifications"

    business_id = Column(Integer, nullable=False, index=True)
    # NULL means every user of the business sees it
    user_id = Column(Integer, nullable=True, index=True)

    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    # "metadata" is reserved on declarative classes
    data = Column("metadata", JSON, nullable=True)


class UserPreferences(BaseModel):
    __tablename__ = "user_preferences"

    user_id = Column(Integer, unique=True, nullable=False)
    notify_new_orders = Column(Boolean, default=True, nullable=False)
    notify_order_complete = Column(Boolean, default=True, nullable=False)
    notify_low_stock = Column(Boolean, default=True, nullable=False)
    notify_marketing = Column(Boolean, default=True, nullable=False)
