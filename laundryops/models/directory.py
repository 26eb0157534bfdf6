"""Reference records owned by the catalog/settings modules; the order core only reads them."""
from sqlalchemy import Column, String, Integer, Boolean
from laundryops.models.base import BaseModel


class Store(BaseModel):
    __tablename__ = "stores"
    business_id = Column(Integer, nullable=False, index=True)
    name = Column(String(120), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Customer(BaseModel):
    __tablename__ = "customers"
    business_id = Column(Integer, nullable=False, index=True)
    full_name = Column(String(120), nullable=False)
    phone = Column(String(40))
    push_token = Column(String(255), nullable=True)
    push_enabled = Column(Boolean, default=True, nullable=False)


class Driver(BaseModel):
    __tablename__ = "drivers"
    business_id = Column(Integer, nullable=False, index=True)
    full_name = Column(String(120), nullable=False)
    phone = Column(String(40))
    is_active = Column(Boolean, default=True, nullable=False)
