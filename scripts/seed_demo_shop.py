"""
Seed script: Populate a demo shop (tenant) with realistic data.

What it creates:
- Customers (~N, default 25) for the shop.
- Invoices (default 60) with 1-4 line items, some with line discounts, a mix of
  walk-in and customer sales, and payments leaving them UNPAID / PARTIALLY_PAID /
  FULLY_PAID.
- A few payment reminders on open invoices.
- GRNs (default 10) from a handful of suppliers, some partially paid.

At the end it prints the shop id and a bearer token scoped to it.

Run inside the API container to use 'postgres' host and project PYTHONPATH:
    docker compose exec api python scripts/seed_demo_shop.py --invoices 60 --grns 10

Or against a local SQLite file:
    DATABASE_URL=sqlite+aiosqlite:///./demo.db python scripts/seed_demo_shop.py

Note: This is intended for development environments only.
"""

# Add project root (/code) to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import asyncio
import random
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from app.common.exceptions import EngineError
from app.database.database import database
from app.modules.auth.utils import create_access_token
from app.modules.customers.schemas import CustomerCreate
from app.modules.customers.service import CustomerService
from app.modules.grn.schemas import GRNCreate, GRNItemCreate
from app.modules.grn.service import GRNService
from app.modules.invoices.models import DiscountType, PaymentMethod, SalesChannel
from app.modules.invoices.schemas import InvoiceCreate, LineItemCreate, PaymentCreate, ReminderCreate
from app.modules.invoices.service import InvoiceService
import app.modules.customers.models  # noqa: F401  (register tables)
import app.modules.invoices.models  # noqa: F401
import app.modules.grn.models  # noqa: F401

FIRST_NAMES = ["Ana", "Carlos", "Lina", "Jorge", "Sofía", "Mateo", "Valeria", "Andrés", "Camila", "Diego"]
LAST_NAMES = ["Gómez", "Rodríguez", "Pérez", "Fernando", "Silva", "Ruiz", "Castro", "Mendoza"]
CATALOG = [
    ("Protector de pantalla", Decimal("1500")),
    ("Cargador USB-C", Decimal("3200")),
    ("Audífonos Bluetooth", Decimal("8900")),
    ("Cambio de batería", Decimal("6500")),
    ("Reparación de pantalla", Decimal("18000")),
    ("Funda de silicona", Decimal("1200")),
    ("Memoria microSD 64GB", Decimal("4500")),
    ("Mano de obra técnica", Decimal("2500")),
]
SUPPLIERS = ["Distribuidora Central", "Importadora Norte", "Tecno Partes", "Accesorios del Sur"]


def pick(seq):
    return random.choice(seq)


def random_items(warranty: bool = False):
    items = []
    for _ in range(random.randint(1, 4)):
        description, price = pick(CATALOG)
        discount_type = pick([DiscountType.NONE, DiscountType.NONE, DiscountType.PERCENTAGE, DiscountType.FIXED])
        discount_value = {
            DiscountType.NONE: Decimal("0"),
            DiscountType.PERCENTAGE: Decimal(random.choice([5, 10, 15])),
            DiscountType.FIXED: Decimal(random.choice([100, 250, 500])),
        }[discount_type]
        items.append(LineItemCreate(
            reference_id=None,
            description=description,
            quantity=Decimal(random.randint(1, 3)),
            original_unit_price=price,
            discount_type=discount_type,
            discount_value=discount_value,
            warranty_due_date=date.today() + timedelta(days=180) if warranty else None
        ))
    return items


async def create_customers(session, tenant_id: UUID, count: int):
    service = CustomerService(session)
    customers = []
    for i in range(count):
        name = f"{pick(FIRST_NAMES)} {pick(LAST_NAMES)}"
        customers.append(await service.create_customer(CustomerCreate(
            name=name,
            email=f"cliente{i}@demo.shop",
            phone=f"077{random.randint(1000000, 9999999)}"
        ), tenant_id))
    return customers


async def create_invoices(session, tenant_id: UUID, customers, count: int):
    service = InvoiceService(session)
    created = 0
    for i in range(count):
        customer = pick(customers) if random.random() < 0.7 else None
        invoice_in = InvoiceCreate(
            customer_id=customer.id if customer else None,
            items=random_items(warranty=random.random() < 0.3),
            tax=Decimal(random.choice([0, 0, 250])),
            discount=Decimal(random.choice([0, 0, 0, 200])),
            payment_method=pick(list(PaymentMethod)),
            sales_channel=pick(list(SalesChannel)),
            issue_date=date.today() - timedelta(days=random.randint(0, 45))
        )
        try:
            invoice = await service.create_invoice(invoice_in, tenant_id)
            roll = random.random()
            if roll < 0.4:
                await service.add_payment(invoice.number, PaymentCreate(
                    amount=invoice.total_amount, method=invoice.payment_method, reference=f"PAY-{i:04d}"
                ), tenant_id)
            elif roll < 0.7 and invoice.total_amount > 1:
                partial = (invoice.total_amount / 2).quantize(Decimal("0.01"))
                await service.add_payment(invoice.number, PaymentCreate(amount=partial), tenant_id)
                if random.random() < 0.5:
                    await service.create_reminder(invoice.number, ReminderCreate(
                        message=f"Recordatorio de saldo pendiente de la factura {invoice.number}"
                    ), tenant_id)
            created += 1
        except EngineError as e:
            print(f"  Invoice {i} skipped: {e.code} {e.message}")
            continue
        if created % 20 == 0:
            print(f"  Invoices created: {created}")
    return created


async def create_grns(session, tenant_id: UUID, count: int):
    service = GRNService(session)
    created = 0
    for i in range(count):
        items = [
            GRNItemCreate(
                description=description,
                quantity=Decimal(random.randint(5, 40)),
                original_unit_price=(price * Decimal("0.6")).quantize(Decimal("0.01")),
                discount_type=pick([DiscountType.NONE, DiscountType.PERCENTAGE]),
                discount_value=Decimal(random.choice([0, 5, 10])),
                selling_price=price
            )
            for description, price in random.sample(CATALOG, k=random.randint(1, 3))
        ]
        grn_in = GRNCreate(
            supplier_name=pick(SUPPLIERS),
            reference_no=f"SUP-{random.randint(1000, 9999)}",
            received_date=date.today() - timedelta(days=random.randint(0, 60)),
            items=items
        )
        try:
            grn = await service.create_grn(grn_in, tenant_id)
            created += 1
        except EngineError as e:
            print(f"  GRN {i} skipped: {e.code} {e.message}")
            continue
        if random.random() < 0.5:
            print(f"  {grn.number}: total {grn.total_amount}")
    return created


async def seed(args):
    tenant_id = UUID(args.shop_id) if args.shop_id else uuid4()

    database.init()
    await database.create_all()
    try:
        async with database.sessionmaker() as session:
            print("Creating customers...")
            customers = await create_customers(session, tenant_id, args.customers)
            print(f"Customers created: {len(customers)}")

            print("Creating invoices and payments...")
            invoices_created = await create_invoices(session, tenant_id, customers, args.invoices)
            print(f"Invoices created: {invoices_created}")

            print("Creating GRNs...")
            grns_created = await create_grns(session, tenant_id, args.grns)
            print(f"GRNs created: {grns_created}")
    finally:
        await database.dispose()

    token = create_access_token(tenant_id, user_id="demo-owner", role="OWNER", expires_delta=timedelta(days=7))
    print("\nSeed completed.")
    print("Shop:")
    print(f"  Shop ID (tenant_id): {tenant_id}")
    print("Headers for API requests:")
    print(f"  Authorization: Bearer {token}")


def main():
    parser = argparse.ArgumentParser(description="Seed a demo shop")
    parser.add_argument("--shop-id", default=None, help="Existing shop UUID (default: a new one)")
    parser.add_argument("--customers", type=int, default=25)
    parser.add_argument("--invoices", type=int, default=60)
    parser.add_argument("--grns", type=int, default=10)
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)
    asyncio.run(seed(args))


if __name__ == "__main__":
    main()
