"""
Tests para el módulo de GRN

Valorización de ítems con descuentos, numeración por tienda, pagos al
proveedor y aislamiento multi-tenant.
"""

import pytest
from datetime import date
from decimal import Decimal

from app.modules.grn.models import GoodsReceivedNote


def grn_payload(**overrides):
    payload = {
        "supplierName": "Distribuidora Central",
        "referenceNo": "FAC-8891",
        "items": [
            {"description": "Cargador USB-C", "quantity": 10, "originalUnitPrice": 1000,
             "discountType": "PERCENTAGE", "discountValue": 10, "sellingPrice": 1500},
        ],
    }
    payload.update(overrides)
    return payload


async def create_grn(client, headers, **overrides):
    response = await client.post("/grns", json=grn_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.anyio
class TestGRNCreation:
    async def test_items_priced_like_invoices(self, client, headers_a):
        grn = await create_grn(client, headers_a)
        item = grn["items"][0]

        assert Decimal(item["unitPrice"]) == Decimal("900.00")
        assert Decimal(item["lineTotal"]) == Decimal("9000.00")
        assert Decimal(grn["subtotal"]) == Decimal("10000")
        assert Decimal(grn["discountAmount"]) == Decimal("1000")
        assert Decimal(grn["totalAmount"]) == Decimal("9000")
        assert grn["paymentStatus"] == "UNPAID"

    async def test_number_is_per_tenant(self, client, headers_a, headers_b):
        year = date.today().year
        first_a = await create_grn(client, headers_a)
        second_a = await create_grn(client, headers_a)
        first_b = await create_grn(client, headers_b)

        assert first_a["number"] == f"GRN-{year}-0001"
        assert second_a["number"] == f"GRN-{year}-0002"
        assert first_b["number"] == f"GRN-{year}-0001"

    async def test_numbering_restarts_each_year(self, db_session, client, headers_a, tenant_a):
        year = date.today().year
        db_session.add(GoodsReceivedNote(tenant_id=tenant_a, number=f"GRN-{year - 1}-0007",
                                         supplier_name="Distribuidora Central", received_date=date(year - 1, 12, 20)))
        await db_session.commit()

        first = await create_grn(client, headers_a)
        second = await create_grn(client, headers_a)
        assert first["number"] == f"GRN-{year}-0001"
        assert second["number"] == f"GRN-{year}-0002"

    async def test_initial_payment(self, client, headers_a):
        grn = await create_grn(client, headers_a, paidAmount=4000, tax=500, discount=500)
        assert Decimal(grn["totalAmount"]) == Decimal("9000")
        assert Decimal(grn["dueAmount"]) == Decimal("5000")
        assert grn["paymentStatus"] == "PARTIALLY_PAID"
        assert len(grn["payments"]) == 1


@pytest.mark.anyio
class TestGRNPayments:
    async def test_payments_settle_grn(self, client, headers_a):
        grn = await create_grn(client, headers_a)

        response = await client.post(f"/grns/{grn['id']}/payments", json={"amount": 5000}, headers=headers_a)
        assert response.status_code == 201
        assert response.json()["data"]["grn"]["paymentStatus"] == "PARTIALLY_PAID"

        response = await client.post(f"/grns/{grn['number']}/payments",
                                     json={"amount": 4500, "method": "BANK_TRANSFER"}, headers=headers_a)
        data = response.json()["data"]
        assert data["payment"]["method"] == "BANK_TRANSFER"
        assert data["grn"]["paymentStatus"] == "FULLY_PAID"
        assert Decimal(data["grn"]["paidAmount"]) == Decimal("9500")
        assert Decimal(data["grn"]["dueAmount"]) == Decimal("0")

    async def test_invalid_amount(self, client, headers_a):
        grn = await create_grn(client, headers_a)
        response = await client.post(f"/grns/{grn['id']}/payments", json={"amount": 0}, headers=headers_a)
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_AMOUNT"


@pytest.mark.anyio
class TestGRNLookup:
    async def test_lookup_by_id_number_and_suffix(self, client, headers_a):
        grn = await create_grn(client, headers_a)
        suffix = grn["number"].replace("GRN-", "")
        for identifier in (grn["id"], grn["number"], suffix):
            response = await client.get(f"/grns/{identifier}", headers=headers_a)
            assert response.status_code == 200, identifier
            assert response.json()["data"]["id"] == grn["id"]

    async def test_other_tenant_is_forbidden(self, client, headers_a, headers_b):
        grn = await create_grn(client, headers_a)
        response = await client.get(f"/grns/{grn['id']}", headers=headers_b)
        assert response.status_code == 403
        response = await client.post(f"/grns/{grn['id']}/payments", json={"amount": 10}, headers=headers_b)
        assert response.status_code == 403

    async def test_number_held_only_by_other_tenant_is_forbidden(self, client, headers_a, headers_b):
        await create_grn(client, headers_a)
        second_a = await create_grn(client, headers_a)
        await create_grn(client, headers_b)

        response = await client.get(f"/grns/{second_a['number']}", headers=headers_b)
        assert response.status_code == 403
        assert response.json()["message"] == "GRN no encontrado"

    async def test_same_number_in_two_tenants(self, client, headers_a, headers_b):
        grn_a = await create_grn(client, headers_a)
        grn_b = await create_grn(client, headers_b, supplierName="Tecno Partes")
        assert grn_a["number"] == grn_b["number"]
        suffix = grn_b["number"].replace("GRN-", "")

        for headers, own in ((headers_a, grn_a), (headers_b, grn_b)):
            for identifier in (own["number"], suffix):
                response = await client.get(f"/grns/{identifier}", headers=headers)
                assert response.status_code == 200, identifier
                assert response.json()["data"]["id"] == own["id"]

            response = await client.post(f"/grns/{own['number']}/payments", json={"amount": 9000}, headers=headers)
            assert response.status_code == 201
            paid = response.json()["data"]["grn"]
            assert paid["id"] == own["id"]
            assert paid["paymentStatus"] == "FULLY_PAID"

        # El GRN del otro sigue intacto
        response = await client.get(f"/grns/{grn_a['id']}", headers=headers_a)
        assert len(response.json()["data"]["payments"]) == 1

    async def test_unknown_number_in_any_tenant(self, client, headers_a):
        response = await client.get("/grns/GRN-1999-0001", headers=headers_a)
        assert response.status_code == 404
        assert response.json()["message"] == "GRN no encontrado"

    async def test_list_and_search(self, client, headers_a, headers_b):
        await create_grn(client, headers_a)
        await create_grn(client, headers_a, supplierName="Importadora Norte", referenceNo=None)
        await create_grn(client, headers_b)

        body = (await client.get("/grns", headers=headers_a)).json()
        assert body["pagination"]["total"] == 2

        found = (await client.get("/grns", params={"search": "norte"}, headers=headers_a)).json()["data"]
        assert [g["supplierName"] for g in found] == ["Importadora Norte"]
