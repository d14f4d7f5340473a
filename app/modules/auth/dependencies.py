"""
Dependencias de autenticación para FastAPI.
"""
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import resolve_tenant

# auto_error=False: a missing header must become our 401 envelope, not FastAPI's default
security = HTTPBearer(auto_error=False)


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> AuthContext:
    """
    Obtener el contexto autenticado desde el token JWT.
    Falla cerrado: sin token válido no hay tenant.
    """
    token = credentials.credentials if credentials else None
    return resolve_tenant(token)


def get_tenant_id(auth_context: AuthContext = Depends(get_auth_context)) -> UUID:
    """Tenant (tienda) del token; cualquier shopId/tenantId del body se ignora."""
    return auth_context.tenant_id


AuthContextDep = Annotated[AuthContext, Depends(get_auth_context)]
TenantId = Annotated[UUID, Depends(get_tenant_id)]
