from sqlalchemy import Column, String, Integer, Enum
from laundryops.models.base import BaseModel
from laundryops.core.enums import ActorKind


class Audit(BaseModel):
    __tablename__ = "audits"

    business_id = Column(Integer, nullable=False, index=True)
    actor_kind = Column(Enum(ActorKind), nullable=False)
    actor_id = Column(Integer, nullable=True)

    endpoint = Column(String(255), nullable=False)
    payload_hash = Column(String(128), nullable=False)
