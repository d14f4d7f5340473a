from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from uuid import UUID
import logging

import jwt

from app.core.config import settings
from app.common.exceptions import UnauthenticatedError
from app.modules.auth.schemas import AuthContext

logger = logging.getLogger(__name__)

SECRET_KEY = settings.APP_SECRET_STRING
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES


def create_access_token(
    tenant_id: Union[UUID, str],
    user_id: Optional[str] = None,
    role: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token scoped to one shop (tenant).
    If expires_delta is not provided, it defaults to ACCESS_TOKEN_EXPIRE_MINUTES.

    Token issuance belongs to the identity provider; this helper exists for
    tooling (seed scripts) and tests.
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "tenant_id": str(tenant_id),
        "type": "access",
        "exp": expire,
    }
    if user_id:
        to_encode["sub"] = str(user_id)
    if role:
        to_encode["role"] = role
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def resolve_tenant(token: Optional[str]) -> AuthContext:
    """
    Verify a bearer token and return the tenant it is scoped to.

    Any failure (missing token, bad signature, expiry, missing or malformed
    tenant claim) raises UnauthenticatedError. There is no anonymous or default
    tenant.
    """
    if not token:
        raise UnauthenticatedError()

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise UnauthenticatedError("Token expired")
    except jwt.PyJWTError as e:
        logger.info(f"Rejected invalid token: {e}")
        raise UnauthenticatedError("Invalid token")

    if payload.get("type", "access") != "access":
        raise UnauthenticatedError("Invalid token type")

    raw_tenant = payload.get("tenant_id")
    if not raw_tenant:
        raise UnauthenticatedError("Token is not scoped to a shop")
    try:
        tenant_id = UUID(str(raw_tenant))
    except ValueError:
        raise UnauthenticatedError("Token is not scoped to a shop")

    return AuthContext(
        tenant_id=tenant_id,
        user_id=payload.get("sub"),
        user_role=payload.get("role")
    )
