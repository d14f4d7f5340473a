"""
Tests para el módulo de Clientes
"""

import pytest
from decimal import Decimal
from uuid import uuid4


async def create_customer(client, headers, name="Cliente Crédito"):
    response = await client.post("/customers", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def create_invoice(client, headers, **fields):
    body = {"items": [{"description": "Reparación de pantalla", "quantity": 1, "unitPrice": 10000}], **fields}
    response = await client.post("/invoices", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def get_customer(client, headers, customer_id):
    response = await client.get(f"/customers/{customer_id}", headers=headers)
    assert response.status_code == 200
    return response.json()["data"]


@pytest.mark.anyio
class TestCustomers:
    async def test_create_and_get(self, client, headers_a):
        response = await client.post("/customers", json={"name": "  María López ", "email": "maria@correo.com"},
                                     headers=headers_a)
        assert response.status_code == 201
        customer = response.json()["data"]
        assert customer["name"] == "María López"

        response = await client.get(f"/customers/{customer['id']}", headers=headers_a)
        assert response.status_code == 200
        assert response.json()["data"]["email"] == "maria@correo.com"

    async def test_blank_name_is_rejected(self, client, headers_a):
        response = await client.post("/customers", json={"name": "   "}, headers=headers_a)
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_ARGUMENT"

    async def test_list_is_scoped_and_searchable(self, client, headers_a, headers_b, tenant_b):
        await client.post("/customers", json={"name": "Beto", "shopId": str(tenant_b)}, headers=headers_a)
        await client.post("/customers", json={"name": "Ana"}, headers=headers_a)
        await client.post("/customers", json={"name": "Ajeno"}, headers=headers_b)

        names = [c["name"] for c in (await client.get("/customers", headers=headers_a)).json()["data"]]
        assert names == ["Ana", "Beto"]

        found = (await client.get("/customers", params={"search": "bet"}, headers=headers_a)).json()["data"]
        assert [c["name"] for c in found] == ["Beto"]

    async def test_other_tenant_customer(self, client, headers_a, headers_b):
        customer = (await client.post("/customers", json={"name": "Ajeno"}, headers=headers_b)).json()["data"]
        assert (await client.get(f"/customers/{customer['id']}", headers=headers_a)).status_code == 403
        assert (await client.get(f"/customers/{uuid4()}", headers=headers_a)).status_code == 404


@pytest.mark.anyio
class TestCustomerCredit:
    """Acumulados de compras y saldo a crédito mantenidos por las facturas"""

    async def test_new_customer_is_clear(self, client, headers_a):
        customer = await create_customer(client, headers_a)
        assert customer["totalOrders"] == 0
        assert Decimal(customer["creditBalance"]) == Decimal("0")
        assert customer["creditStatus"] == "CLEAR"
        assert customer["lastPurchase"] is None

    async def test_invoice_with_due_amount_opens_credit(self, client, headers_a):
        customer = await create_customer(client, headers_a)
        await create_invoice(client, headers_a, customerId=customer["id"], paidAmount=4000)

        customer = await get_customer(client, headers_a, customer["id"])
        assert customer["totalOrders"] == 1
        assert Decimal(customer["totalSpent"]) == Decimal("4000")
        assert Decimal(customer["creditBalance"]) == Decimal("6000")
        assert customer["creditStatus"] == "ACTIVE"
        assert customer["lastPurchase"] is not None

    async def test_payments_reduce_credit(self, client, headers_a):
        customer = await create_customer(client, headers_a)
        invoice = await create_invoice(client, headers_a, customerId=customer["id"])

        await client.post(f"/invoices/{invoice['number']}/payments", json={"amount": 4000}, headers=headers_a)
        partial = await get_customer(client, headers_a, customer["id"])
        assert Decimal(partial["totalSpent"]) == Decimal("4000")
        assert Decimal(partial["creditBalance"]) == Decimal("6000")
        assert partial["creditStatus"] == "ACTIVE"

        # El sobrepago cuenta como gasto, pero el saldo no baja de cero
        await client.post(f"/invoices/{invoice['number']}/payments", json={"amount": 6500}, headers=headers_a)
        settled = await get_customer(client, headers_a, customer["id"])
        assert Decimal(settled["totalSpent"]) == Decimal("10500")
        assert Decimal(settled["creditBalance"]) == Decimal("0")
        assert settled["creditStatus"] == "CLEAR"

    async def test_delete_reverts_totals(self, client, headers_a):
        customer = await create_customer(client, headers_a)
        await create_invoice(client, headers_a, customerId=customer["id"], paidAmount=10000)
        invoice = await create_invoice(client, headers_a, customerId=customer["id"], paidAmount=2500)

        response = await client.delete(f"/invoices/{invoice['id']}", headers=headers_a)
        assert response.status_code == 200

        customer = await get_customer(client, headers_a, customer["id"])
        assert customer["totalOrders"] == 1
        assert Decimal(customer["totalSpent"]) == Decimal("10000")
        assert Decimal(customer["creditBalance"]) == Decimal("0")
        assert customer["creditStatus"] == "CLEAR"

    async def test_update_moves_balance(self, client, headers_a):
        first = await create_customer(client, headers_a, name="Primero")
        second = await create_customer(client, headers_a, name="Segundo")
        invoice = await create_invoice(client, headers_a, customerId=first["id"], paidAmount=1000)

        response = await client.patch(f"/invoices/{invoice['id']}", json={"tax": 500}, headers=headers_a)
        assert response.status_code == 200
        assert Decimal((await get_customer(client, headers_a, first["id"]))["creditBalance"]) == Decimal("9500")

        response = await client.patch(f"/invoices/{invoice['id']}", json={"customerId": second["id"]},
                                      headers=headers_a)
        assert response.status_code == 200

        first = await get_customer(client, headers_a, first["id"])
        second = await get_customer(client, headers_a, second["id"])
        assert first["totalOrders"] == 0
        assert Decimal(first["creditBalance"]) == Decimal("0")
        assert first["creditStatus"] == "CLEAR"
        assert second["totalOrders"] == 1
        assert Decimal(second["totalSpent"]) == Decimal("1000")
        assert Decimal(second["creditBalance"]) == Decimal("9500")

    async def test_walk_in_invoice_touches_no_customer(self, client, headers_a):
        customer = await create_customer(client, headers_a)
        await create_invoice(client, headers_a)

        customer = await get_customer(client, headers_a, customer["id"])
        assert customer["totalOrders"] == 0
        assert customer["creditStatus"] == "CLEAR"
