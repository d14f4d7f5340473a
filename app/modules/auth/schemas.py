from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class AuthContext(BaseModel):
    """Contexto autenticado de la petición. ``tenant_id`` sale siempre del token."""
    tenant_id: UUID
    user_id: Optional[str] = None
    user_role: Optional[str] = None
