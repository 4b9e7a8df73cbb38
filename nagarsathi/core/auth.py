import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from nagarsathi.core.database import get_db_dependency
from nagarsathi.services.clerk_service import ClerkClient, ClerkError
from nagarsathi.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)


def get_clerk(request: Request) -> ClerkClient:
    """The Clerk client constructed in the application lifespan."""
    return request.app.state.clerk


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


async def _resolve_user(token: str, db, clerk: ClerkClient) -> Dict[str, Any]:
    claims = clerk.verify_token(token)
    return await get_or_create_user(db, clerk, claims["sub"])


async def require_auth(
    authorization: Optional[str] = Header(None),
    db=Depends(get_db_dependency),
    clerk: ClerkClient = Depends(get_clerk),
) -> Dict[str, Any]:
    """
    Validates the Clerk session token from the Authorization header.
    Returns the local user document, provisioning it on first sight.
    """
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please sign in.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await _resolve_user(token, db, clerk)
    except ClerkError as e:
        logger.warning(f"Clerk verification error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed. Please sign in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def optional_auth(
    authorization: Optional[str] = Header(None),
    db=Depends(get_db_dependency),
    clerk: ClerkClient = Depends(get_clerk),
) -> Optional[Dict[str, Any]]:
    """Attach the user when a valid token is sent; anonymous otherwise."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        return await _resolve_user(token, db, clerk)
    except ClerkError as e:
        logger.debug(f"Optional auth ignored invalid token: {e}")
        return None
    except Exception as e:
        # Public reads must still be served when provisioning breaks
        logger.warning(f"⚠️ Optional auth failed to resolve user, continuing anonymously: {e!r}")
        return None


async def require_admin(current_user: Dict[str, Any] = Depends(require_auth)) -> Dict[str, Any]:
    """Admin-only authentication dependency"""
    if current_user.get("role") != "admin":
        logger.warning(f"Admin access denied for user {current_user.get('_id')}")
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user
