"""
Tests para la resolución de tienda (tenant) desde el token
"""

import pytest
import jwt
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from app.common.exceptions import UnauthenticatedError
from app.core.config import settings
from app.modules.auth.utils import create_access_token, resolve_tenant


def encode(payload, secret=None):
    return jwt.encode(payload, secret or settings.APP_SECRET_STRING, algorithm=settings.ALGORITHM)


class TestResolveTenant:
    def test_valid_token(self):
        tenant_id = uuid4()
        context = resolve_tenant(create_access_token(tenant_id, user_id="u-1", role="CASHIER"))
        assert context.tenant_id == tenant_id
        assert context.user_id == "u-1"
        assert context.user_role == "CASHIER"

    @pytest.mark.parametrize("token", [None, "", "garbage"])
    def test_missing_or_malformed(self, token):
        with pytest.raises(UnauthenticatedError):
            resolve_tenant(token)

    def test_expired(self):
        token = create_access_token(uuid4(), expires_delta=timedelta(seconds=-5))
        with pytest.raises(UnauthenticatedError) as exc:
            resolve_tenant(token)
        assert exc.value.message == "Token expired"

    def test_wrong_signature(self):
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        token = encode({"tenant_id": str(uuid4()), "type": "access", "exp": exp}, secret="otra-clave")
        with pytest.raises(UnauthenticatedError):
            resolve_tenant(token)

    def test_refresh_token_is_not_accepted(self):
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        with pytest.raises(UnauthenticatedError):
            resolve_tenant(encode({"tenant_id": str(uuid4()), "type": "refresh", "exp": exp}))

    @pytest.mark.parametrize("claims", [{}, {"tenant_id": ""}, {"tenant_id": "shop-1"}])
    def test_tenant_claim_required(self, claims):
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        with pytest.raises(UnauthenticatedError):
            resolve_tenant(encode({"type": "access", "exp": exp, **claims}))


@pytest.mark.anyio
class TestAuthenticationEnvelope:
    async def test_401_envelope(self, client):
        response = await client.get("/customers")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json() == {
            "success": False, "error": "UNAUTHENTICATED", "message": "Authentication required"
        }

    async def test_public_routes(self, client):
        assert (await client.get("/health")).json()["status"] == "healthy"
        response = await client.get("/")
        assert response.status_code == 200
        assert "X-Request-ID" in response.headers
