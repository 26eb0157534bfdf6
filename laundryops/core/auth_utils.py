"""Tenant scoping utilities"""
from laundryops.core.errors import NotFoundOrConflict
from laundryops.core.enums import PrincipalRole
from laundryops.models.order import Order
from laundryops.schemas.principal import Principal


def filter_by_principal(query, principal: Principal):
    """Restrict an Order query to what the principal may see."""
    query = query.where(Order.business_id == principal.business_id)
    if principal.role == PrincipalRole.DRIVER:
        return query.where(Order.driver_id == principal.driver_id)
    if principal.role == PrincipalRole.CUSTOMER:
        return query.where(Order.customer_id == principal.customer_id)
    return query


def check_not_found(item, resource_name: str = "Resource") -> None:

    if not item:
        raise NotFoundOrConflict(resource_name)
