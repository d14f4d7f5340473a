"""
Tests para el módulo de Facturación

Cubren:
- Calculadora monetaria (descuentos, redondeo, totales)
- Derivación de estado y libro de pagos
- Resolución de identificadores (id, número, número sin prefijo)
- Ciclo de vida completo vía API: crear, listar, consultar, actualizar, eliminar, pagar
- Aislamiento multi-tenant y clasificación de errores
- Concurrencia: versión optimista y reintento de numeración

Todas las operaciones se validan con la tienda del token.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from app.common.exceptions import ConflictError, InvalidAmountError, InvalidArgumentError
from app.database.database import transaction
from app.modules.invoices import calculator
from app.modules.invoices.ledger import PaymentLedger, derive_status, recompute
from app.modules.invoices.models import DiscountType, Invoice, InvoiceStatus, PaymentMethod
from app.modules.invoices.resolver import ByInternalId, ByNumber, ByPrefixedNumber, InvoiceResolver
from app.modules.invoices.schemas import InvoiceCreate, LineItemCreate, PaymentCreate
from app.modules.invoices.sequence import InvoiceNumberSequence, format_number, parse_suffix
from app.modules.invoices.service import InvoiceService


# ===== FIXTURES =====

def invoice_payload(**overrides):
    payload = {
        "items": [{"description": "Reparación de pantalla", "quantity": 1, "unitPrice": 10000}],
        "paymentMethod": "CASH",
        "salesChannel": "ON_SITE",
    }
    payload.update(overrides)
    return payload


async def create_invoice(client, headers, **overrides):
    response = await client.post("/invoices", json=invoice_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def pay(client, headers, identifier, amount, **extra):
    body = {"amount": amount, "method": "CASH", **extra}
    return await client.post(f"/invoices/{identifier}/payments", json=body, headers=headers)


def money(value) -> Decimal:
    return Decimal(str(value))


# ===== TESTS DE CALCULADORA =====

class TestMonetaryCalculator:
    """Funciones puras de montos"""

    def test_line_total(self):
        assert calculator.line_total(3, Decimal("19.99")) == Decimal("59.97")

    def test_percentage_discount(self):
        assert calculator.apply_discount(Decimal("1000"), DiscountType.PERCENTAGE, 10) == Decimal("900.00")

    def test_fixed_discount(self):
        assert calculator.apply_discount(Decimal("1000"), DiscountType.FIXED, 250) == Decimal("750.00")

    def test_discount_never_negative(self):
        assert calculator.apply_discount(Decimal("100"), DiscountType.FIXED, 500) == Decimal("0.00")
        assert calculator.apply_discount(Decimal("100"), DiscountType.PERCENTAGE, 150) == Decimal("0.00")

    def test_discount_rounds_half_up_once(self):
        # 333.33 * 0.85 = 283.3305
        assert calculator.apply_discount(Decimal("333.33"), DiscountType.PERCENTAGE, 15) == Decimal("283.33")
        # 0.05 * 0.5 = 0.025 -> 0.03
        assert calculator.apply_discount(Decimal("0.05"), DiscountType.PERCENTAGE, 50) == Decimal("0.03")

    def test_percentage_discount_round_trip(self):
        """Recalcular desde el precio original y el % reproduce el precio guardado (±0.01)"""
        for original, pct in [("1000", "10"), ("199.99", "12.5"), ("45.5", "33"), ("0.99", "7")]:
            line = calculator.price_line(2, original_unit_price=original,
                                         discount_type=DiscountType.PERCENTAGE, discount_value=pct)
            expected = Decimal(original) * (1 - Decimal(pct) / 100)
            assert abs(line.unit_price - expected) <= Decimal("0.01")
            assert calculator.apply_discount(line.original_unit_price, DiscountType.PERCENTAGE,
                                             line.discount_value) == line.unit_price

    def test_subtotal_and_discount_total(self):
        lines = [
            calculator.price_line(2, original_unit_price=100, discount_type=DiscountType.PERCENTAGE, discount_value=10),
            calculator.price_line(1, unit_price=50),
        ]
        assert calculator.subtotal(lines) == Decimal("250.00")
        assert calculator.discount_total(lines) == Decimal("20.00")

    def test_grand_total_clamped(self):
        assert calculator.grand_total(100, 19, 20) == Decimal("99.00")
        assert calculator.grand_total(100, 0, 500) == Decimal("0.00")

    def test_price_line_defaults_original_to_unit_price(self):
        line = calculator.price_line(4, unit_price="12.50")
        assert line.original_unit_price == Decimal("12.50")
        assert line.unit_price == Decimal("12.50")
        assert line.discount_type == DiscountType.NONE
        assert line.line_total == Decimal("50.00")

    def test_price_line_manual_price_counts_as_discount(self):
        line = calculator.price_line(1, unit_price=80, original_unit_price=100)
        assert calculator.discount_total([line]) == Decimal("20.00")

    def test_price_line_rejects_bad_input(self):
        with pytest.raises(InvalidArgumentError):
            calculator.price_line(0, unit_price=10)
        with pytest.raises(InvalidArgumentError):
            calculator.price_line(-1, unit_price=10)
        with pytest.raises(InvalidArgumentError):
            calculator.price_line(1)
        with pytest.raises(InvalidArgumentError):
            calculator.price_line(1, unit_price=120, original_unit_price=100)

    def test_grn_item_scenario(self):
        """Costo 1000 con 10% -> 900.00; total de línea = cantidad * 900.00"""
        line = calculator.price_line(5, original_unit_price=1000,
                                     discount_type=DiscountType.PERCENTAGE, discount_value=10)
        assert line.unit_price == Decimal("900.00")
        assert line.line_total == Decimal("4500.00")


# ===== TESTS DE LIBRO DE PAGOS =====

class TestPaymentLedgerRules:
    """Derivación de estado y recálculo de agregados"""

    def test_derive_status(self):
        assert derive_status(Decimal("10000"), Decimal("0")) == InvoiceStatus.UNPAID
        assert derive_status(Decimal("10000"), Decimal("4000")) == InvoiceStatus.PARTIALLY_PAID
        assert derive_status(Decimal("10000"), Decimal("10000")) == InvoiceStatus.FULLY_PAID
        assert derive_status(Decimal("10000"), Decimal("10500")) == InvoiceStatus.FULLY_PAID

    def test_derivation_is_idempotent(self):
        doc = SimpleNamespace(total_amount=Decimal("300"), payments=[SimpleNamespace(amount=Decimal("100"))],
                              paid_amount=None, due_amount=None, status=None)
        first = recompute(doc).status
        for _ in range(3):
            assert recompute(doc).status == first
        assert doc.paid_amount == Decimal("100.00")
        assert doc.due_amount == Decimal("200.00")

    def test_overpayment_clamps_due(self):
        doc = SimpleNamespace(total_amount=Decimal("100"), paid_amount=None, due_amount=None, status=None,
                              payments=[SimpleNamespace(amount=Decimal("80")), SimpleNamespace(amount=Decimal("70"))])
        recompute(doc)
        assert doc.paid_amount == Decimal("150.00")
        assert doc.due_amount == Decimal("0.00")
        assert doc.status == InvoiceStatus.FULLY_PAID

    def test_recompute_custom_status_attribute(self):
        doc = SimpleNamespace(total_amount=Decimal("50"), paid_amount=None, due_amount=None,
                              payment_status=None, payments=[SimpleNamespace(amount=Decimal("10"))])
        recompute(doc, status_attr="payment_status")
        assert doc.payment_status == InvoiceStatus.PARTIALLY_PAID


# ===== TESTS DE RESOLUCIÓN Y NUMERACIÓN =====

class TestIdentifierStrategies:
    """Cada estrategia decide si aplica sin tocar la base de datos"""

    def test_internal_id_only_for_uuids(self):
        assert ByInternalId().criterion("INV-10260001") is None
        assert ByInternalId().criterion(str(uuid4())) is not None

    def test_exact_number(self):
        criterion = ByNumber().criterion("INV-10261")
        assert criterion.right.value == "INV-10261"

    def test_prefix_is_prepended_when_missing(self):
        criterion = ByPrefixedNumber(prefix="INV-").criterion("10261")
        assert criterion.right.value == "INV-10261"

    def test_prefix_strategy_skipped_when_already_prefixed(self):
        assert ByPrefixedNumber(prefix="INV-").criterion("INV-10261") is None

    def test_prefix_case_is_normalised(self):
        criterion = ByPrefixedNumber(prefix="INV-").criterion("inv-10261")
        assert criterion.right.value == "INV-10261"


class TestSequenceHelpers:
    def test_parse_suffix(self):
        assert parse_suffix("INV-10260007", "INV-") == 10260007
        assert parse_suffix("10260007", "INV-") == 10260007
        assert parse_suffix("INV-ABC", "INV-") is None
        assert parse_suffix(None, "INV-") is None

    def test_format_number(self):
        assert format_number(10260001, "INV-") == "INV-10260001"


# ===== TESTS DE CICLO DE VIDA (API) =====

@pytest.mark.anyio
class TestInvoiceCreation:
    """Creación de facturas"""

    async def test_create_basic_invoice(self, client, headers_a):
        """Subtotal 10000, sin impuesto ni descuento -> total 10000, UNPAID"""
        invoice = await create_invoice(client, headers_a)

        assert invoice["number"] == "INV-10260001"
        assert money(invoice["subtotal"]) == Decimal("10000")
        assert money(invoice["totalAmount"]) == Decimal("10000")
        assert money(invoice["paidAmount"]) == Decimal("0")
        assert money(invoice["dueAmount"]) == Decimal("10000")
        assert invoice["status"] == "UNPAID"
        assert invoice["customerName"] == "Walk-in Customer"
        assert invoice["customerId"] is None
        assert invoice["dueDate"] == (date.today() + timedelta(days=30)).isoformat()
        assert len(invoice["lineItems"]) == 1
        assert invoice["payments"] == []

    async def test_numbers_are_sequential(self, client, headers_a, headers_b):
        first = await create_invoice(client, headers_a)
        second = await create_invoice(client, headers_b)
        third = await create_invoice(client, headers_a)
        assert [first["number"], second["number"], third["number"]] == [
            "INV-10260001", "INV-10260002", "INV-10260003"
        ]

    async def test_create_with_discounts_and_tax(self, client, headers_a):
        invoice = await create_invoice(client, headers_a, items=[
            {"description": "Funda", "quantity": 2, "originalUnitPrice": 1000,
             "discountType": "PERCENTAGE", "discountValue": 10},
            {"description": "Cable", "quantity": 1, "unitPrice": 500},
        ], tax=150, discount=100)

        assert money(invoice["subtotal"]) == Decimal("2500")
        # 200 de descuentos de línea + 100 de descuento de factura
        assert money(invoice["discountAmount"]) == Decimal("300")
        assert money(invoice["invoiceDiscount"]) == Decimal("100")
        assert money(invoice["taxAmount"]) == Decimal("150")
        assert money(invoice["totalAmount"]) == Decimal("2350")
        assert money(invoice["lineItems"][0]["unitPrice"]) == Decimal("900")
        assert money(invoice["lineItems"][0]["lineTotal"]) == Decimal("1800")

    async def test_initial_payment_is_recorded_in_ledger(self, client, headers_a):
        invoice = await create_invoice(client, headers_a, paidAmount=4000, paymentMethod="CARD")
        assert invoice["status"] == "PARTIALLY_PAID"
        assert money(invoice["paidAmount"]) == Decimal("4000")
        assert money(invoice["dueAmount"]) == Decimal("6000")
        assert len(invoice["payments"]) == 1
        assert invoice["payments"][0]["method"] == "CARD"

    async def test_consistent_status_is_accepted(self, client, headers_a):
        invoice = await create_invoice(client, headers_a, paidAmount=10000, status="FULLY_PAID")
        assert invoice["status"] == "FULLY_PAID"
        assert money(invoice["dueAmount"]) == Decimal("0")

    async def test_contradicting_status_is_rejected(self, client, headers_a):
        response = await client.post("/invoices", json=invoice_payload(status="FULLY_PAID"), headers=headers_a)
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_ARGUMENT"

        listing = await client.get("/invoices", headers=headers_a)
        assert listing.json()["pagination"]["total"] == 0

    async def test_body_tenant_is_ignored(self, client, headers_a, headers_b, tenant_b):
        await create_invoice(client, headers_a, tenantId=str(tenant_b), shopId=str(tenant_b))
        assert (await client.get("/invoices", headers=headers_a)).json()["pagination"]["total"] == 1
        assert (await client.get("/invoices", headers=headers_b)).json()["pagination"]["total"] == 0

    async def test_create_with_own_customer(self, client, headers_a):
        customer = (await client.post("/customers", json={"name": "Ana Gómez", "phone": "0771234567"},
                                      headers=headers_a)).json()["data"]
        invoice = await create_invoice(client, headers_a, customerId=customer["id"])
        assert invoice["customerId"] == customer["id"]
        assert invoice["customerName"] == "Ana Gómez"
        assert invoice["customer"]["phone"] == "0771234567"

    async def test_cross_tenant_customer_is_forbidden(self, client, headers_a, headers_b):
        customer = (await client.post("/customers", json={"name": "Cliente B"}, headers=headers_b)).json()["data"]
        response = await client.post("/invoices", json=invoice_payload(customerId=customer["id"]), headers=headers_a)
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    async def test_unknown_customer_is_not_found(self, client, headers_a):
        response = await client.post("/invoices", json=invoice_payload(customerId=str(uuid4())), headers=headers_a)
        assert response.status_code == 404

    async def test_invalid_items_are_rejected(self, client, headers_a):
        for items in (
            [],
            [{"description": "X", "quantity": 0, "unitPrice": 10}],
            [{"description": "X", "quantity": -2, "unitPrice": 10}],
            [{"description": "X", "quantity": 1, "unitPrice": -10}],
            [{"description": "X", "quantity": 1}],
        ):
            response = await client.post("/invoices", json=invoice_payload(items=items), headers=headers_a)
            assert response.status_code == 400, items
            assert response.json()["success"] is False


@pytest.mark.anyio
class TestPayments:
    """Escenarios de pagos parciales, completos y sobrepago"""

    async def test_payment_scenarios(self, client, headers_a):
        invoice = await create_invoice(client, headers_a)

        response = await pay(client, headers_a, invoice["id"], 4000)
        assert response.status_code == 201
        data = response.json()["data"]
        assert money(data["payment"]["amount"]) == Decimal("4000")
        assert money(data["invoice"]["paidAmount"]) == Decimal("4000")
        assert money(data["invoice"]["dueAmount"]) == Decimal("6000")
        assert data["invoice"]["status"] == "PARTIALLY_PAID"

        data = (await pay(client, headers_a, invoice["number"], 6000)).json()["data"]
        assert money(data["invoice"]["paidAmount"]) == Decimal("10000")
        assert money(data["invoice"]["dueAmount"]) == Decimal("0")
        assert data["invoice"]["status"] == "FULLY_PAID"

        data = (await pay(client, headers_a, invoice["number"], 500)).json()["data"]
        assert money(data["invoice"]["paidAmount"]) == Decimal("10500")
        assert money(data["invoice"]["dueAmount"]) == Decimal("0")
        assert data["invoice"]["status"] == "FULLY_PAID"

    async def test_paid_amount_equals_ledger_sum(self, client, headers_a):
        invoice = await create_invoice(client, headers_a)
        amounts = ["1250.50", "99.99", "3000"]
        for amount in amounts:
            await pay(client, headers_a, invoice["id"], amount, reference="REF-1")

        payments = (await client.get(f"/invoices/{invoice['id']}/payments", headers=headers_a)).json()["data"]
        detail = (await client.get(f"/invoices/{invoice['id']}", headers=headers_a)).json()["data"]
        assert len(payments) == 3
        assert sum(money(p["amount"]) for p in payments) == money(detail["paidAmount"])
        assert money(detail["paidAmount"]) == sum(Decimal(a) for a in amounts)
        assert payments[0]["reference"] == "REF-1"

    async def test_non_positive_amount_is_rejected(self, client, headers_a):
        invoice = await create_invoice(client, headers_a)
        for amount in (0, -100):
            response = await pay(client, headers_a, invoice["id"], amount)
            assert response.status_code == 400
            assert response.json()["error"] == "INVALID_AMOUNT"

        detail = (await client.get(f"/invoices/{invoice['id']}", headers=headers_a)).json()["data"]
        assert detail["payments"] == []
        assert detail["status"] == "UNPAID"

    async def test_payment_on_missing_invoice(self, client, headers_a):
        response = await pay(client, headers_a, "INV-99999999", 100)
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


@pytest.mark.anyio
class TestIdentifierResolution:
    """GET por id, número completo y número sin prefijo"""

    async def test_all_identifiers_resolve_to_same_invoice(self, client, headers_a):
        invoice = await create_invoice(client, headers_a)
        suffix = invoice["number"].replace("INV-", "")

        for identifier in (invoice["id"], invoice["number"], suffix):
            response = await client.get(f"/invoices/{identifier}", headers=headers_a)
            assert response.status_code == 200, identifier
            assert response.json()["data"]["id"] == invoice["id"]

    async def test_unprefixed_lookup_of_stored_number(self, db_session, client, headers_a, tenant_a):
        db_session.add(Invoice(tenant_id=tenant_a, number="INV-10261", customer_name="Walk-in Customer",
                               total_amount=Decimal("10"), due_amount=Decimal("10")))
        await db_session.commit()

        by_full = await client.get("/invoices/INV-10261", headers=headers_a)
        by_suffix = await client.get("/invoices/10261", headers=headers_a)
        assert by_full.status_code == by_suffix.status_code == 200
        assert by_full.json()["data"]["id"] == by_suffix.json()["data"]["id"]

    async def test_lowercase_prefix_resolves(self, client, headers_a):
        invoice = await create_invoice(client, headers_a)
        response = await client.get(f"/invoices/{invoice['number'].lower()}", headers=headers_a)
        assert response.status_code == 200
        assert response.json()["data"]["id"] == invoice["id"]

        response = await pay(client, headers_a, invoice["number"].lower(), 10000)
        assert response.status_code == 201
        assert response.json()["data"]["invoice"]["status"] == "FULLY_PAID"

    async def test_unknown_identifier(self, client, headers_a):
        for identifier in ("nope", str(uuid4()), "INV-1"):
            response = await client.get(f"/invoices/{identifier}", headers=headers_a)
            assert response.status_code == 404
            assert response.json() == {
                "success": False, "error": "NOT_FOUND", "message": "Factura no encontrada"
            }


@pytest.mark.anyio
class TestTenantIsolation:
    """Una tienda nunca ve ni modifica facturas de otra"""

    async def test_other_tenant_gets_forbidden_on_every_route(self, client, headers_a, headers_b):
        invoice = await create_invoice(client, headers_a)
        target = invoice["number"]

        responses = [
            await client.get(f"/invoices/{target}", headers=headers_b),
            await client.patch(f"/invoices/{target}", json={"notes": "hack"}, headers=headers_b),
            await client.delete(f"/invoices/{target}", headers=headers_b),
            await pay(client, headers_b, target, 100),
            await client.get(f"/invoices/{target}/payments", headers=headers_b),
            await client.get(f"/invoices/{target}/reminders", headers=headers_b),
        ]
        for response in responses:
            assert response.status_code == 403
            body = response.json()
            assert body["error"] == "FORBIDDEN"
            # Misma presentación que una factura inexistente
            assert body["message"] == "Factura no encontrada"
            assert "data" not in body

        detail = (await client.get(f"/invoices/{target}", headers=headers_a)).json()["data"]
        assert detail["notes"] is None
        assert detail["payments"] == []

    async def test_list_and_stats_are_scoped(self, client, headers_a, headers_b):
        await create_invoice(client, headers_a)
        await create_invoice(client, headers_a)
        await create_invoice(client, headers_b)

        assert (await client.get("/invoices", headers=headers_a)).json()["pagination"]["total"] == 2
        assert (await client.get("/invoices", headers=headers_b)).json()["pagination"]["total"] == 1
        stats_b = (await client.get("/invoices/stats", headers=headers_b)).json()["data"]
        assert stats_b["totalInvoices"] == 1
        assert len(stats_b["recentInvoices"]) == 1

    async def test_missing_or_invalid_credentials(self, client):
        for headers in ({}, {"Authorization": "Bearer not-a-token"}, {"Authorization": "Basic abc"}):
            response = await client.get("/invoices", headers=headers)
            assert response.status_code == 401
            assert response.json()["error"] == "UNAUTHENTICATED"

        response = await client.post("/invoices", json=invoice_payload())
        assert response.status_code == 401


@pytest.mark.anyio
class TestInvoiceUpdate:
    """Actualizaciones parciales y recálculo"""

    async def test_replacing_items_recomputes_everything(self, client, headers_a):
        invoice = await create_invoice(client, headers_a, paidAmount=2000)
        old_item_id = invoice["lineItems"][0]["id"]

        response = await client.patch(f"/invoices/{invoice['id']}", json={"items": [
            {"description": "Batería", "quantity": 2, "unitPrice": 1500},
            {"description": "Mano de obra", "quantity": 1, "unitPrice": 1000},
        ]}, headers=headers_a)
        assert response.status_code == 200
        data = response.json()["data"]
        assert [i["description"] for i in data["lineItems"]] == ["Batería", "Mano de obra"]
        assert old_item_id not in [i["id"] for i in data["lineItems"]]
        assert money(data["subtotal"]) == Decimal("4000")
        assert money(data["totalAmount"]) == Decimal("4000")
        assert money(data["paidAmount"]) == Decimal("2000")
        assert money(data["dueAmount"]) == Decimal("2000")
        assert data["status"] == "PARTIALLY_PAID"

    async def test_discount_and_tax_hold_paid_fixed(self, client, headers_a):
        invoice = await create_invoice(client, headers_a, paidAmount=4000)
        data = (await client.patch(f"/invoices/{invoice['number']}", json={"discount": 1000, "tax": 500},
                                   headers=headers_a)).json()["data"]
        assert money(data["totalAmount"]) == Decimal("9500")
        assert money(data["paidAmount"]) == Decimal("4000")
        assert money(data["dueAmount"]) == Decimal("5500")

    async def test_status_moves_backward_when_total_grows(self, client, headers_a):
        invoice = await create_invoice(client, headers_a, paidAmount=10000)
        assert invoice["status"] == "FULLY_PAID"
        data = (await client.put(f"/invoices/{invoice['id']}", json={"tax": 500},
                                 headers=headers_a)).json()["data"]
        assert data["status"] == "PARTIALLY_PAID"
        assert money(data["dueAmount"]) == Decimal("500")

    async def test_status_moves_forward_when_discount_covers_due(self, client, headers_a):
        invoice = await create_invoice(client, headers_a, paidAmount=9000)
        data = (await client.patch(f"/invoices/{invoice['id']}", json={"discount": 1000},
                                   headers=headers_a)).json()["data"]
        assert data["status"] == "FULLY_PAID"
        assert money(data["dueAmount"]) == Decimal("0")

    async def test_supplied_total_honoured_only_alone(self, client, headers_a):
        invoice = await create_invoice(client, headers_a)

        data = (await client.patch(f"/invoices/{invoice['id']}", json={"total": 8000},
                                   headers=headers_a)).json()["data"]
        assert money(data["totalAmount"]) == Decimal("8000")
        assert money(data["dueAmount"]) == Decimal("8000")

        data = (await client.patch(f"/invoices/{invoice['id']}", json={"total": 1, "tax": 200},
                                   headers=headers_a)).json()["data"]
        assert money(data["totalAmount"]) == Decimal("10200")

    async def test_contradicting_status_is_rejected(self, client, headers_a):
        invoice = await create_invoice(client, headers_a)
        response = await client.patch(f"/invoices/{invoice['id']}", json={"status": "FULLY_PAID", "notes": "x"},
                                      headers=headers_a)
        assert response.status_code == 400

        detail = (await client.get(f"/invoices/{invoice['id']}", headers=headers_a)).json()["data"]
        assert detail["status"] == "UNPAID"
        assert detail["notes"] is None

    async def test_tenant_and_paid_amount_cannot_be_patched(self, client, headers_a, headers_b, tenant_b):
        invoice = await create_invoice(client, headers_a)
        response = await client.patch(f"/invoices/{invoice['id']}", json={
            "tenantId": str(tenant_b), "paidAmount": 10000, "notes": "ok"
        }, headers=headers_a)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["notes"] == "ok"
        assert money(data["paidAmount"]) == Decimal("0")
        assert (await client.get(f"/invoices/{invoice['id']}", headers=headers_b)).status_code == 403

    async def test_change_customer_checks_ownership(self, client, headers_a, headers_b):
        invoice = await create_invoice(client, headers_a)
        foreign = (await client.post("/customers", json={"name": "Cliente B"}, headers=headers_b)).json()["data"]
        response = await client.patch(f"/invoices/{invoice['id']}", json={"customerId": foreign["id"]},
                                      headers=headers_a)
        assert response.status_code == 403


@pytest.mark.anyio
class TestInvoiceDeletion:
    async def test_delete_cascades(self, client, headers_a):
        invoice = await create_invoice(client, headers_a, paidAmount=100)
        await client.post(f"/invoices/{invoice['id']}/reminders", json={"message": "Hola"}, headers=headers_a)

        response = await client.delete(f"/invoices/{invoice['number']}", headers=headers_a)
        assert response.status_code == 200
        assert response.json()["success"] is True

        assert (await client.get(f"/invoices/{invoice['id']}", headers=headers_a)).status_code == 404
        assert (await client.get(f"/invoices/{invoice['id']}/payments", headers=headers_a)).status_code == 404


@pytest.mark.anyio
class TestListingAndStats:
    """Filtros, búsqueda, orden, paginación y estadísticas"""

    async def test_filters_and_search(self, client, headers_a):
        customer = (await client.post("/customers", json={"name": "Carlos Ruiz"}, headers=headers_a)).json()["data"]
        paid = await create_invoice(client, headers_a, paidAmount=10000)
        partial = await create_invoice(client, headers_a, paidAmount=10, customerId=customer["id"])
        await create_invoice(client, headers_a)

        def numbers(response):
            return {row["number"] for row in response.json()["data"]}

        all_rows = await client.get("/invoices", params={"status": "all", "customerId": "all"}, headers=headers_a)
        assert all_rows.json()["pagination"]["total"] == 3

        fully = await client.get("/invoices", params={"status": "FULLY_PAID"}, headers=headers_a)
        assert numbers(fully) == {paid["number"]}

        by_customer = await client.get("/invoices", params={"customerId": customer["id"]}, headers=headers_a)
        assert numbers(by_customer) == {partial["number"]}

        by_name = await client.get("/invoices", params={"search": "carlos"}, headers=headers_a)
        assert numbers(by_name) == {partial["number"]}

        by_number = await client.get("/invoices", params={"search": paid["number"][-3:]}, headers=headers_a)
        assert paid["number"] in numbers(by_number)

        bad = await client.get("/invoices", params={"status": "VOID"}, headers=headers_a)
        assert bad.status_code == 400

    async def test_sorting_and_pagination(self, client, headers_a):
        for price in (300, 100, 200):
            await create_invoice(client, headers_a, items=[{"description": "Item", "quantity": 1, "unitPrice": price}])

        asc = await client.get("/invoices", params={"sortBy": "total", "sortOrder": "asc"}, headers=headers_a)
        assert [money(r["totalAmount"]) for r in asc.json()["data"]] == [Decimal(100), Decimal(200), Decimal(300)]

        by_number = await client.get("/invoices", params={"sortBy": "number", "sortOrder": "desc",
                                                          "limit": 2, "page": 1}, headers=headers_a)
        body = by_number.json()
        assert [r["number"] for r in body["data"]] == ["INV-10260003", "INV-10260002"]
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}

        page_two = await client.get("/invoices", params={"sortBy": "number", "limit": 2, "page": 2},
                                    headers=headers_a)
        assert [r["number"] for r in page_two.json()["data"]] == ["INV-10260001"]

    async def test_reminders_and_reminder_count(self, client, headers_a):
        customer = (await client.post("/customers", json={"name": "Lina", "phone": "0779998877"},
                                      headers=headers_a)).json()["data"]
        invoice = await create_invoice(client, headers_a, customerId=customer["id"])

        response = await client.post(f"/invoices/{invoice['number']}/reminders",
                                     json={"type": "OVERDUE", "channel": "WhatsApp", "message": "Saldo pendiente"},
                                     headers=headers_a)
        assert response.status_code == 201
        reminder = response.json()["data"]
        assert reminder["channel"] == "whatsapp"
        assert reminder["customerPhone"] == "0779998877"
        assert reminder["customerName"] == "Lina"

        await client.post(f"/invoices/{invoice['id']}/reminders", json={}, headers=headers_a)

        reminders = (await client.get(f"/invoices/{invoice['id']}/reminders", headers=headers_a)).json()["data"]
        assert len(reminders) == 2
        rows = (await client.get("/invoices", headers=headers_a)).json()["data"]
        assert rows[0]["reminderCount"] == 2

    async def test_stats(self, client, headers_a):
        await create_invoice(client, headers_a)
        await create_invoice(client, headers_a, paidAmount=4000)
        await create_invoice(client, headers_a, paidAmount=10000)

        stats = (await client.get("/invoices/stats", headers=headers_a)).json()["data"]
        assert stats["totalInvoices"] == 3
        assert money(stats["totalRevenue"]) == Decimal("30000")
        assert money(stats["totalCollected"]) == Decimal("14000")
        assert money(stats["totalOutstanding"]) == Decimal("16000")
        assert stats["unpaid"]["count"] == 1
        assert stats["partiallyPaid"]["count"] == 1
        assert money(stats["partiallyPaid"]["dueAmount"]) == Decimal("6000")
        assert stats["fullyPaid"]["count"] == 1
        assert len(stats["recentInvoices"]) == 3


# ===== TESTS DE CONCURRENCIA =====

@pytest.mark.anyio
class TestConcurrency:
    """Versión optimista y reintento de numeración"""

    async def test_stale_payment_is_rejected(self, test_db, tenant_a):
        async with test_db.sessionmaker() as setup:
            invoice = await InvoiceService(setup).create_invoice(InvoiceCreate(
                items=[LineItemCreate(description="Servicio", quantity=1, unit_price=Decimal("1000"))]
            ), tenant_a)
            number = invoice.number

        async with test_db.sessionmaker() as first, test_db.sessionmaker() as second:
            stale = await InvoiceResolver(second).resolve(number, tenant_a)

            await InvoiceService(first).add_payment(number, PaymentCreate(amount=Decimal("600")), tenant_a)

            with pytest.raises(ConflictError):
                async with transaction(second, "registrar el pago"):
                    await PaymentLedger(second).apply_payment(stale, Decimal("600"), PaymentMethod.CASH)

        async with test_db.sessionmaker() as check:
            fresh = await InvoiceResolver(check).resolve(number, tenant_a)
            assert fresh.paid_amount == Decimal("600.00")
            assert len(fresh.payments) == 1
            assert fresh.status == InvoiceStatus.PARTIALLY_PAID

    async def test_duplicate_number_is_retried(self, test_db, tenant_a, monkeypatch):
        data = InvoiceCreate(items=[LineItemCreate(description="Servicio", quantity=1, unit_price=Decimal("50"))])
        async with test_db.sessionmaker() as session:
            existing = await InvoiceService(session).create_invoice(data, tenant_a)

        original_next = InvoiceNumberSequence.next_number
        calls = []

        async def racing_next_number(self):
            calls.append(1)
            if len(calls) == 1:
                # Otra transacción ya tomó este número
                return existing.number
            return await original_next(self)

        monkeypatch.setattr(InvoiceNumberSequence, "next_number", racing_next_number)

        async with test_db.sessionmaker() as session:
            created = await InvoiceService(session).create_invoice(data, tenant_a)

        assert len(calls) == 2
        assert created.number == "INV-10260002"

    async def test_ledger_rejects_non_positive_amount(self, db_session, tenant_a):
        invoice = SimpleNamespace(tenant_id=tenant_a, payments=[])
        with pytest.raises(InvalidAmountError):
            await PaymentLedger(db_session).apply_payment(invoice, Decimal("0"), PaymentMethod.CASH)
        assert invoice.payments == []

