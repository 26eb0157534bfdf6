from pydantic import BaseModel
from typing import Optional
from laundryops.core.enums import PrincipalRole, ActorKind


class Actor(BaseModel):
    kind: ActorKind
    id: Optional[int] = None
    name: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(kind=ActorKind.SYSTEM)

    def label(self) -> str:
        if self.kind == ActorKind.SYSTEM:
            return "system"
        prefix = self.kind.value.capitalize()
        if self.name:
            return f"{prefix}: {self.name}"
        return f"{prefix} #{self.id}"


class Principal(BaseModel):
    subject: str
    business_id: int
    role: PrincipalRole
    user_id: Optional[int] = None
    driver_id: Optional[int] = None
    customer_id: Optional[int] = None
    name: Optional[str] = None
    is_super_admin: bool = False
    can_write: bool = True

    def as_actor(self) -> Actor:
        if self.role == PrincipalRole.DRIVER:
            return Actor(kind=ActorKind.DRIVER, id=self.driver_id, name=self.name)
        if self.role == PrincipalRole.CUSTOMER:
            return Actor(kind=ActorKind.CUSTOMER, id=self.customer_id, name=self.name)
        return Actor(kind=ActorKind.STAFF, id=self.user_id, name=self.name)
