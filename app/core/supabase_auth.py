"""
Utilities for validating Supabase JWT tokens and synchronizing users.
"""
import logging

import requests
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core import config
from app.core.database import get_db
from app.models.user import User

logger = logging.getLogger(__name__)

# Security scheme for FastAPI
security = HTTPBearer(auto_error=False)

# Cache for JWKS (public keys)
_jwks_cache = None


def get_jwks():
    """
    Fetch public keys (JWKS) from Supabase for validating ES256 tokens.

    Caches the keys to avoid repeated network calls.
    """
    global _jwks_cache

    if _jwks_cache is not None:
        return _jwks_cache

    try:
        jwks_url = f"{config.SUPABASE_URL}/auth/v1/.well-known/jwks.json"
        response = requests.get(jwks_url, timeout=5)
        response.raise_for_status()
        _jwks_cache = response.json()
        return _jwks_cache
    except requests.RequestException as e:
        logger.warning("[AUTH] Failed to fetch JWKS from Supabase: %s", e)
        return None


def decode_supabase_jwt(token: str) -> dict:
    """
    Decode and validate a JWT issued by Supabase Auth.

    Supports both HS256 (legacy) and ES256 (current) algorithms.

    Args:
        token: JWT token string

    Returns:
        dict: Token payload with fields like 'sub', 'email', 'user_metadata'

    Raises:
        HTTPException: If token is invalid or expired
    """
    # Try HS256 first (legacy, for compatibility)
    if config.SUPABASE_JWT_SECRET:
        try:
            return jwt.decode(
                token,
                config.SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                options={"verify_aud": False}
            )
        except JWTError as e:
            logger.debug("[AUTH] HS256 validation failed: %s, trying JWKS", e)

    try:
        # Get header without validation to extract 'kid'
        unverified_header = jwt.get_unverified_header(token)
        algorithm = unverified_header.get("alg", "ES256")
        kid = unverified_header.get("kid")

        jwks = get_jwks() if config.SUPABASE_URL else None
        if not jwks:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate authentication token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        public_key = None
        for key in jwks.get("keys", []):
            if key.get("kid") == kid:
                public_key = key
                break

        if not public_key:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Could not find public key for kid: {kid}",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return jwt.decode(
            token,
            public_key,
            algorithms=[algorithm],
            options={"verify_aud": False}
        )

    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_or_create_user_from_jwt(
    payload: dict,
    db: AsyncSession
) -> User:
    """
    Fetch or create user from JWT payload (lazy sync).

    Searches for user by supabase_user_id and creates if not found. The
    display name is taken from the token's user_metadata when present so
    checkout can prefill the billing contact.

    Raises:
        HTTPException: If payload is missing required fields
    """
    supabase_user_id = payload.get("sub")
    email = payload.get("email")

    if not supabase_user_id or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload: missing sub or email"
        )

    result = await db.execute(
        select(User).where(User.supabase_user_id == supabase_user_id)
    )
    user = result.scalar_one_or_none()

    if not user:
        metadata = payload.get("user_metadata") or {}
        user = User(
            supabase_user_id=supabase_user_id,
            email=email,
            full_name=metadata.get("full_name") or metadata.get("name"),
            role="user",
            is_active=True,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)

        logger.info("[AUTH] User created via lazy sync: %s (ID: %s)", email, user.id)

    return user


async def get_current_user_from_supabase(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User | None:
    """
    Dependency to get current user from Supabase JWT.

    Returns None if no token is present.

    Raises:
        HTTPException 401: If token is present but invalid
        HTTPException 403: If the account is inactive
    """
    if not credentials:
        return None

    payload = decode_supabase_jwt(credentials.credentials)

    user = await get_or_create_user_from_jwt(payload, db)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user
