"""
Servicios de negocio para el módulo de Facturación

Orquesta resolución de identificadores, cálculo de montos, libro de pagos y
numeración. Cada operación de escritura es una sola transacción: se confirma
al final o se revierte completa.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.common.exceptions import ConflictError, InvalidArgumentError
from app.core.config import settings
from app.database.database import transaction
from app.modules.customers.service import CustomerService
from app.modules.invoices import calculator
from app.modules.invoices.ledger import PaymentLedger, derive_status, recompute
from app.modules.invoices.models import (
    Invoice, InvoiceLineItem, InvoiceReminder, InvoiceStatus, Payment, utcnow
)
from app.modules.invoices.resolver import InvoiceResolver
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, LineItemCreate, PaymentCreate, ReminderCreate
)
from app.modules.invoices.sequence import InvoiceNumberSequence

logger = logging.getLogger(__name__)

WALK_IN_CUSTOMER = "Walk-in Customer"
SORT_FIELDS = ("date", "number", "total")


def build_line_items(items: List[LineItemCreate]) -> List[InvoiceLineItem]:
    """Precios de cada línea normalizados por la calculadora"""
    line_items = []
    for position, item in enumerate(items):
        priced = calculator.price_line(
            quantity=item.quantity,
            unit_price=item.unit_price,
            original_unit_price=item.original_unit_price,
            discount_type=item.discount_type,
            discount_value=item.discount_value
        )
        line_items.append(InvoiceLineItem(
            position=position,
            reference_id=item.reference_id,
            description=item.description.strip(),
            quantity=priced.quantity,
            original_unit_price=priced.original_unit_price,
            unit_price=priced.unit_price,
            discount_type=priced.discount_type,
            discount_value=priced.discount_value,
            line_total=priced.line_total,
            warranty_due_date=item.warranty_due_date
        ))
    return line_items


def check_requested_status(requested: Optional[InvoiceStatus], invoice: Invoice) -> None:
    """El estado lo define el libro de pagos; un valor contradictorio se rechaza"""
    if requested is not None and requested != invoice.status:
        raise InvalidArgumentError(
            f"El estado {requested.value} contradice los montos de la factura "
            f"(total={invoice.total_amount}, pagado={invoice.paid_amount}, estado={invoice.status.value})"
        )


def parse_status_filter(value: Optional[str]) -> Optional[InvoiceStatus]:
    if value is None or value.strip() == "" or value.lower() == "all":
        return None
    try:
        return InvoiceStatus(value.strip().upper())
    except ValueError:
        raise InvalidArgumentError(f"Estado inválido: {value}")


def parse_customer_filter(value: Optional[str]) -> Optional[UUID]:
    if value is None or value.strip() == "" or value.lower() == "all":
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        raise InvalidArgumentError(f"customerId inválido: {value}")


class InvoiceService:
    """Servicio para gestión de facturas y sus pagos"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.resolver = InvoiceResolver(db)
        self.ledger = PaymentLedger(db)
        self.sequence = InvoiceNumberSequence(db)
        self.customers = CustomerService(db)

    async def _customer_fields(self, customer_id: Optional[UUID], customer_name: Optional[str], tenant_id: UUID):
        if customer_id is None:
            return None, (customer_name or "").strip() or WALK_IN_CUSTOMER
        customer = await self.customers.require_customer(customer_id, tenant_id)
        return customer.id, (customer_name or "").strip() or customer.name

    async def _move_customer_totals(
        self, invoice: Invoice, previous_customer_id: Optional[UUID], previous_paid: Decimal, previous_due: Decimal
    ):
        """Reflejar en los clientes una edición de factura (cambio de saldo o de cliente)"""
        if previous_customer_id == invoice.customer_id:
            if invoice.due_amount != previous_due:
                await self.customers.record_invoice_activity(
                    invoice.customer_id, credit=invoice.due_amount - previous_due
                )
            return

        await self.customers.record_invoice_activity(
            previous_customer_id, orders=-1, spent=-previous_paid, credit=-previous_due
        )
        await self.customers.record_invoice_activity(
            invoice.customer_id, orders=1, spent=invoice.paid_amount, credit=invoice.due_amount
        )

    async def create_invoice(self, invoice_data: InvoiceCreate, tenant_id: UUID) -> Invoice:
        """
        Crear factura con líneas y pago inicial opcional

        El número se asigna con la secuencia global; si otra transacción tomó
        el mismo número, la restricción UNIQUE falla y se reintenta.
        """
        retries = max(settings.INVOICE_NUMBER_MAX_RETRIES, 1)
        for attempt in range(1, retries + 1):
            try:
                async with transaction(self.db, "crear la factura"):
                    invoice = await self._insert_invoice(invoice_data, tenant_id)
            except ConflictError as e:
                if not isinstance(e.__cause__, IntegrityError) or attempt == retries:
                    raise
                logger.warning(f"Número de factura duplicado, reintento {attempt}/{retries}")
                continue

            logger.info(f"Invoice {invoice.number} created for tenant {tenant_id}")
            return await self.resolver.load(invoice.id)

    async def _insert_invoice(self, invoice_data: InvoiceCreate, tenant_id: UUID) -> Invoice:
        customer_id, customer_name = await self._customer_fields(
            invoice_data.customer_id, invoice_data.customer_name, tenant_id
        )

        line_items = build_line_items(invoice_data.items)
        subtotal = calculator.subtotal(line_items)
        tax = calculator.to_money(invoice_data.tax)
        invoice_discount = calculator.to_money(invoice_data.discount)
        discount = calculator.to_money(calculator.discount_total(line_items) + invoice_discount)
        total = calculator.grand_total(subtotal, tax, discount)

        # Rechazar antes de escribir nada
        paid = calculator.to_money(invoice_data.paid_amount)
        if invoice_data.status is not None and invoice_data.status != derive_status(total, paid):
            raise InvalidArgumentError(
                f"El estado {invoice_data.status.value} contradice los montos de la factura "
                f"(total={total}, pagado={paid})"
            )

        issue_date = invoice_data.issue_date or date.today()
        due_date = invoice_data.due_date or issue_date + timedelta(days=settings.DEFAULT_DUE_DAYS)

        invoice = Invoice(
            tenant_id=tenant_id,
            number=await self.sequence.next_number(),
            customer_id=customer_id,
            customer_name=customer_name,
            payment_method=invoice_data.payment_method,
            sales_channel=invoice_data.sales_channel,
            issue_date=issue_date,
            due_date=due_date,
            notes=invoice_data.notes,
            subtotal=subtotal,
            tax_amount=tax,
            invoice_discount=invoice_discount,
            discount_amount=discount,
            total_amount=total,
            line_items=line_items,
            payments=[],
            reminders=[]
        )
        recompute(invoice)
        self.db.add(invoice)
        await self.db.flush()

        if paid > 0:
            await self.ledger.apply_payment(
                invoice, paid, invoice_data.payment_method, notes="Pago inicial"
            )

        await self.customers.record_invoice_activity(
            customer_id, orders=1, spent=invoice.paid_amount, credit=invoice.due_amount, purchased_at=utcnow()
        )
        return invoice

    async def list_invoices(
        self,
        tenant_id: UUID,
        status: Optional[str] = None,
        customer_id: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 100
    ) -> Tuple[List[Tuple[Invoice, int]], int]:
        """Listar facturas de la tienda con filtros, orden y paginación"""
        if sort_by not in SORT_FIELDS:
            raise InvalidArgumentError(f"sortBy debe ser uno de: {', '.join(SORT_FIELDS)}")
        if sort_order not in ("asc", "desc"):
            raise InvalidArgumentError("sortOrder debe ser 'asc' o 'desc'")

        filters = [Invoice.tenant_id == tenant_id]
        status_filter = parse_status_filter(status)
        if status_filter is not None:
            filters.append(Invoice.status == status_filter)
        customer_filter = parse_customer_filter(customer_id)
        if customer_filter is not None:
            filters.append(Invoice.customer_id == customer_filter)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            filters.append(or_(Invoice.number.ilike(pattern), Invoice.customer_name.ilike(pattern)))

        total_result = await self.db.execute(select(func.count(Invoice.id)).where(*filters))
        total = total_result.scalar_one()

        reminder_counts = (
            select(InvoiceReminder.invoice_id, func.count(InvoiceReminder.id).label("reminder_count"))
            .group_by(InvoiceReminder.invoice_id)
            .subquery()
        )
        reminder_count = func.coalesce(reminder_counts.c.reminder_count, 0)

        if sort_by == "number":
            order_columns = [func.length(Invoice.number), Invoice.number]
        elif sort_by == "total":
            order_columns = [Invoice.total_amount, Invoice.number]
        else:
            order_columns = [Invoice.issue_date, Invoice.created_at, Invoice.number]
        order_by = [c.desc() if sort_order == "desc" else c.asc() for c in order_columns]

        query = (
            select(Invoice, reminder_count)
            .outerjoin(reminder_counts, reminder_counts.c.invoice_id == Invoice.id)
            .where(*filters)
            .order_by(*order_by)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(query)
        rows = [(invoice, int(count)) for invoice, count in result.all()]
        return rows, total

    async def get_invoice(self, identifier: str, tenant_id: UUID) -> Invoice:
        return await self.resolver.resolve(identifier, tenant_id)

    async def update_invoice(self, identifier: str, invoice_data: InvoiceUpdate, tenant_id: UUID) -> Invoice:
        """
        Actualizar factura (parcial)

        - ``items`` reemplaza todas las líneas y recalcula subtotal y descuento.
        - ``discount``/``tax``/``subtotal`` recalculan total y saldo con el pagado fijo.
        - ``total`` solo se respeta si ninguno de sus componentes cambió.
        - El estado se vuelve a derivar; uno contradictorio se rechaza.
        """
        fields = invoice_data.model_dump(exclude_unset=True)

        async with transaction(self.db, "actualizar la factura"):
            invoice = await self.resolver.resolve(identifier, tenant_id, for_update=True)
            previous_customer_id, previous_paid, previous_due = (
                invoice.customer_id, invoice.paid_amount, invoice.due_amount
            )

            if "customer_id" in fields:
                invoice.customer_id, invoice.customer_name = await self._customer_fields(
                    fields["customer_id"], fields.get("customer_name"), tenant_id
                )
            elif fields.get("customer_name"):
                invoice.customer_name = fields["customer_name"].strip()

            for field in ("payment_method", "sales_channel", "issue_date", "due_date", "notes"):
                if field in fields and (fields[field] is not None or field in ("due_date", "notes")):
                    setattr(invoice, field, fields[field])

            components_changed = False
            if invoice_data.items is not None:
                # delete-orphan elimina las líneas anteriores en el flush
                invoice.line_items = build_line_items(invoice_data.items)
                invoice.subtotal = calculator.subtotal(invoice.line_items)
                components_changed = True
            elif fields.get("subtotal") is not None:
                invoice.subtotal = calculator.to_money(fields["subtotal"])
                components_changed = True

            if "discount" in fields:
                invoice.invoice_discount = calculator.to_money(fields["discount"])
                components_changed = True
            if "tax" in fields:
                invoice.tax_amount = calculator.to_money(fields["tax"])
                components_changed = True

            if components_changed:
                invoice.discount_amount = calculator.to_money(
                    calculator.discount_total(invoice.line_items) + invoice.invoice_discount
                )
                invoice.total_amount = calculator.grand_total(
                    invoice.subtotal, invoice.tax_amount, invoice.discount_amount
                )
            elif fields.get("total") is not None:
                invoice.total_amount = calculator.to_money(fields["total"])

            recompute(invoice)
            check_requested_status(fields.get("status"), invoice)
            await self._move_customer_totals(invoice, previous_customer_id, previous_paid, previous_due)
            await self.db.flush()
            invoice_id = invoice.id

        logger.info(f"Invoice {invoice.number} updated: total={invoice.total_amount} status={invoice.status.value}")
        return await self.resolver.load(invoice_id)

    async def delete_invoice(self, identifier: str, tenant_id: UUID) -> str:
        """Eliminar factura con sus líneas, pagos y recordatorios"""
        async with transaction(self.db, "eliminar la factura"):
            invoice = await self.resolver.resolve(identifier, tenant_id, for_update=True)
            number = invoice.number
            counts = (len(invoice.line_items), len(invoice.payments), len(invoice.reminders))
            await self.customers.record_invoice_activity(
                invoice.customer_id, orders=-1, spent=-invoice.paid_amount, credit=-invoice.due_amount
            )
            # La cascada borra primero las filas dependientes y luego la factura
            await self.db.delete(invoice)
            await self.db.flush()

        logger.info(
            f"Invoice {number} deleted for tenant {tenant_id} "
            f"({counts[0]} items, {counts[1]} payments, {counts[2]} reminders)"
        )
        return number

    async def add_payment(
        self, identifier: str, payment_data: PaymentCreate, tenant_id: UUID
    ) -> Tuple[Payment, Invoice]:
        """Registrar un pago; devuelve el pago y la factura ya recalculada"""
        async with transaction(self.db, "registrar el pago"):
            invoice = await self.resolver.resolve(identifier, tenant_id, for_update=True)
            due_before = invoice.due_amount
            payment, invoice = await self.ledger.apply_payment(
                invoice,
                payment_data.amount,
                payment_data.method,
                reference=payment_data.reference,
                notes=payment_data.notes
            )
            await self.customers.record_invoice_activity(
                invoice.customer_id, spent=payment.amount, credit=invoice.due_amount - due_before
            )
            invoice_id = invoice.id

        return payment, await self.resolver.load(invoice_id)

    async def list_payments(self, identifier: str, tenant_id: UUID) -> List[Payment]:
        invoice = await self.resolver.resolve(identifier, tenant_id)
        return list(invoice.payments)

    async def list_reminders(self, identifier: str, tenant_id: UUID) -> List[InvoiceReminder]:
        invoice = await self.resolver.resolve(identifier, tenant_id)
        return list(invoice.reminders)

    async def create_reminder(
        self, identifier: str, reminder_data: ReminderCreate, tenant_id: UUID
    ) -> InvoiceReminder:
        """Registrar un recordatorio de cobro enviado al cliente"""
        async with transaction(self.db, "registrar el recordatorio"):
            invoice = await self.resolver.resolve(identifier, tenant_id)
            phone = reminder_data.customer_phone
            if phone is None and invoice.customer is not None:
                phone = invoice.customer.phone

            reminder = InvoiceReminder(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                type=reminder_data.type,
                channel=reminder_data.channel,
                message=reminder_data.message,
                customer_phone=phone,
                customer_name=reminder_data.customer_name or invoice.customer_name
            )
            self.db.add(reminder)
            await self.db.flush()

        logger.info(f"Reminder ({reminder.type.value}/{reminder.channel}) logged for invoice {invoice.number}")
        return reminder

    async def get_stats(self, tenant_id: UUID) -> dict:
        """Conteos y montos por estado, recaudo y últimas 5 facturas de la tienda"""
        result = await self.db.execute(
            select(
                Invoice.status,
                func.count(Invoice.id),
                func.coalesce(func.sum(Invoice.total_amount), 0),
                func.coalesce(func.sum(Invoice.paid_amount), 0),
                func.coalesce(func.sum(Invoice.due_amount), 0)
            )
            .where(Invoice.tenant_id == tenant_id)
            .group_by(Invoice.status)
        )

        by_status = {
            status: {"count": 0, "total_amount": Decimal("0.00"), "due_amount": Decimal("0.00")}
            for status in InvoiceStatus
        }
        total_invoices = 0
        revenue = collected = outstanding = Decimal("0")
        for status, count, total_amount, paid_amount, due_amount in result.all():
            by_status[status] = {
                "count": count,
                "total_amount": calculator.to_money(total_amount),
                "due_amount": calculator.to_money(due_amount)
            }
            total_invoices += count
            revenue += calculator.to_decimal(total_amount)
            collected += calculator.to_decimal(paid_amount)
            outstanding += calculator.to_decimal(due_amount)

        recent = await self.db.execute(
            select(Invoice)
            .where(Invoice.tenant_id == tenant_id)
            .order_by(Invoice.created_at.desc(), func.length(Invoice.number).desc(), Invoice.number.desc())
            .limit(5)
        )

        return {
            "total_invoices": total_invoices,
            "total_revenue": calculator.to_money(revenue),
            "total_collected": calculator.to_money(collected),
            "total_outstanding": calculator.to_money(outstanding),
            "unpaid": by_status[InvoiceStatus.UNPAID],
            "partially_paid": by_status[InvoiceStatus.PARTIALLY_PAID],
            "fully_paid": by_status[InvoiceStatus.FULLY_PAID],
            "recent_invoices": list(recent.scalars().all())
        }
