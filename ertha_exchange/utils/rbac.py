# ertha_exchange/utils/rbac.py
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ertha_exchange import models
from ertha_exchange.database import get_db
from ertha_exchange.utils import security

bearer_scheme = HTTPBearer(auto_error=False, description="Paste JWT from /auth/login")

INSUFFICIENT_PERMISSIONS = "Insufficient permissions"


def _user_from_token(token: str, db: Session) -> models.User:
    payload = security.decode_token(token)

    jti = payload.get("jti")
    if jti and db.get(models.RevokedToken, jti) is not None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has been revoked")

    user_id = payload.get("sub")
    user = db.get(models.User, str(user_id)) if user_id else None
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """Decoded claims of the bearer token (used by logout to revoke the jti)."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    return security.decode_token(credentials.credentials)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")

    user = _user_from_token(credentials.credentials, db)
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account suspended")
    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[models.User]:
    """Like get_current_user, but anonymous (None) instead of failing."""
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    try:
        user = _user_from_token(credentials.credentials, db)
    except HTTPException:
        return None
    return user if user.status == "active" else None


def require_roles(*allowed_roles: str) -> Callable:
    """
    Dependency factory for role checks.

    Usage:
        @router.get("/admin/dashboard")
        def dashboard(user=Depends(require_roles("admin"))):
            ...
    Returns the authenticated user row.
    """
    allowed_set = set(allowed_roles)

    def _dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in allowed_set:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=INSUFFICIENT_PERMISSIONS)
        return user

    return _dependency


require_admin = require_roles("admin")
require_org = require_roles("org")
require_user = require_roles("user")
require_org_or_admin = require_roles("org", "admin")


def check_ownership(user: models.User, owner_id: Optional[str]) -> None:
    """Admins pass universally; everyone else only for their own resource id."""
    if user.role == "admin":
        return
    if owner_id is None or str(owner_id) != str(user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=INSUFFICIENT_PERMISSIONS)
