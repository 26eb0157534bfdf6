from datetime import datetime, timezone, timedelta
from typing import Optional
from jose import jwt, JWTError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from laundryops.core.config import settings
from laundryops.core.enums import PrincipalRole
from laundryops.core.errors import AuthError, ForbiddenError
from laundryops.schemas.principal import Principal

bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = {PrincipalRole.OWNER, PrincipalRole.STAFF}


def create_access_token(
    subject: str,
    role: str,
    business_id: int,
    *,
    user_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    name: Optional[str] = None,
    is_super_admin: bool = False,
    can_write: bool = True,
    expires_minutes: int | None = None,
) -> str:
    expires = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire_dt = datetime.now(timezone.utc) + timedelta(minutes=expires)
    to_encode = {
        "sub": str(subject),
        "role": str(role),
        "business_id": business_id,
        "user_id": user_id,
        "driver_id": driver_id,
        "customer_id": customer_id,
        "name": name,
        "is_super_admin": is_super_admin,
        "can_write": can_write,
        "exp": expire_dt,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_principal(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise AuthError("Invalid token")
    if payload.get("sub") is None or payload.get("business_id") is None:
        raise AuthError("Invalid token")
    try:
        return Principal(
            subject=payload["sub"],
            business_id=payload["business_id"],
            role=payload.get("role"),
            user_id=payload.get("user_id"),
            driver_id=payload.get("driver_id"),
            customer_id=payload.get("customer_id"),
            name=payload.get("name"),
            is_super_admin=bool(payload.get("is_super_admin", False)),
            can_write=bool(payload.get("can_write", True)),
        )
    except ValueError:
        raise AuthError("Invalid token")


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    if credentials is None:
        raise AuthError("Not authenticated")
    principal = decode_principal(credentials.credentials)
    if principal.is_super_admin:
        # Platform operators do not act inside a tenant's order flow.
        raise ForbiddenError("Super admin accounts cannot access business resources")
    return principal


def require_staff(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role not in STAFF_ROLES:
        raise ForbiddenError("Staff access required")
    return principal


def require_driver(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role != PrincipalRole.DRIVER or principal.driver_id is None:
        raise ForbiddenError("Driver access required")
    return principal


def require_customer(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role != PrincipalRole.CUSTOMER or principal.customer_id is None:
        raise ForbiddenError("Customer access required")
    return principal


def require_write_access(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.can_write:
        raise ForbiddenError("Subscription does not allow changes for this business")
    return principal
