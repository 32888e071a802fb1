"""
FastAPI dependencies for authentication, authorization and the per-request
service objects.

Endpoints receive the authenticated `User` from here and pass it explicitly
into the service layer.
"""
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.entitlement_service import EntitlementResolver
from app.core.payment_gateway import get_payment_gateway
from app.core.supabase_auth import get_current_user_from_supabase
from app.models.user import User

__all__ = [
    "get_current_user",
    "require_admin",
    "get_entitlement_resolver",
    "get_payment_gateway",
]


async def get_current_user(
    request: Request,
    jwt_user: User | None = Depends(get_current_user_from_supabase),
) -> User:
    """
    Authentication dependency used by every protected endpoint.

    Usage in endpoints:
        @router.get("/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id, "email": user.email}

    The user is also stored on request.state for the rate limiter key.

    Raises:
        HTTPException 401: If no valid JWT was provided
    """
    if jwt_user:
        request.state.user = jwt_user
        return jwt_user

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing or invalid authentication credentials. Provide a JWT token (Authorization: Bearer)",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_admin(
    user: User = Depends(get_current_user)
) -> User:
    """
    Authorization dependency that requires admin privileges.

    Raises:
        HTTPException 403: If user does not have admin role
    """
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This endpoint requires admin privileges"
        )
    return user


async def get_entitlement_resolver(
    db: AsyncSession = Depends(get_db)
) -> EntitlementResolver:
    """
    One resolver per request, so every entitlement check made while
    handling the request sees the same subscription.
    """
    return EntitlementResolver(db)
