"""
Servicios de negocio para Notas de Recepción de Mercancía (GRN)

Las líneas se valorizan con la misma calculadora de las facturas y los pagos
se concilian con la misma regla de estado.
"""
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.common.exceptions import ConflictError
from app.core.config import settings
from app.database.database import transaction
from app.modules.grn.models import GoodsReceivedNote, GRNItem, GRNPayment
from app.modules.grn.schemas import GRNCreate, GRNItemCreate, GRNPaymentCreate
from app.modules.invoices import calculator
from app.modules.invoices.ledger import recompute, validate_amount
from app.modules.invoices.resolver import DocumentResolver

logger = logging.getLogger(__name__)


class GRNResolver(DocumentResolver):
    model = GoodsReceivedNote
    prefix = settings.GRN_NUMBER_PREFIX
    not_found_message = "GRN no encontrado"
    numbers_scoped_to_tenant = True

    def load_options(self):
        return [selectinload(GoodsReceivedNote.items), selectinload(GoodsReceivedNote.payments)]


def build_grn_items(items: List[GRNItemCreate]) -> List[GRNItem]:
    grn_items = []
    for position, item in enumerate(items):
        priced = calculator.price_line(
            quantity=item.quantity,
            unit_price=item.unit_price,
            original_unit_price=item.original_unit_price,
            discount_type=item.discount_type,
            discount_value=item.discount_value
        )
        grn_items.append(GRNItem(
            position=position,
            reference_id=item.reference_id,
            description=item.description.strip(),
            quantity=priced.quantity,
            original_unit_price=priced.original_unit_price,
            unit_price=priced.unit_price,
            discount_type=priced.discount_type,
            discount_value=priced.discount_value,
            selling_price=calculator.to_money(item.selling_price) if item.selling_price is not None else None,
            line_total=priced.line_total
        ))
    return grn_items


class GRNService:
    """Servicio para gestión de GRN y sus pagos a proveedor"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.resolver = GRNResolver(db)

    async def next_number(self, tenant_id: UUID, year: Optional[int] = None) -> str:
        """GRN-<año>-<consecutivo de la tienda con 4 dígitos>; el consecutivo reinicia cada año"""
        year = year or date.today().year
        result = await self.db.execute(
            select(func.count(GoodsReceivedNote.id)).where(
                GoodsReceivedNote.tenant_id == tenant_id,
                GoodsReceivedNote.number.like(f"{settings.GRN_NUMBER_PREFIX}{year}-%")
            )
        )
        count = result.scalar_one()
        return f"{settings.GRN_NUMBER_PREFIX}{year}-{count + 1:04d}"

    async def create_grn(self, grn_data: GRNCreate, tenant_id: UUID) -> GoodsReceivedNote:
        retries = max(settings.INVOICE_NUMBER_MAX_RETRIES, 1)
        for attempt in range(1, retries + 1):
            try:
                async with transaction(self.db, "crear el GRN"):
                    grn = await self._insert_grn(grn_data, tenant_id)
            except ConflictError as e:
                if not isinstance(e.__cause__, IntegrityError) or attempt == retries:
                    raise
                logger.warning(f"Número de GRN duplicado, reintento {attempt}/{retries}")
                continue

            logger.info(f"GRN {grn.number} created for tenant {tenant_id}: total={grn.total_amount}")
            return await self.resolver.load(grn.id)

    async def _insert_grn(self, grn_data: GRNCreate, tenant_id: UUID) -> GoodsReceivedNote:
        items = build_grn_items(grn_data.items)
        subtotal = calculator.subtotal(items)
        tax = calculator.to_money(grn_data.tax)
        order_discount = calculator.to_money(grn_data.discount)
        discount = calculator.to_money(calculator.discount_total(items) + order_discount)

        grn = GoodsReceivedNote(
            tenant_id=tenant_id,
            number=await self.next_number(tenant_id),
            supplier_name=grn_data.supplier_name.strip(),
            reference_no=grn_data.reference_no,
            received_date=grn_data.received_date or date.today(),
            expected_date=grn_data.expected_date,
            notes=grn_data.notes,
            subtotal=subtotal,
            tax_amount=tax,
            order_discount=order_discount,
            discount_amount=discount,
            total_amount=calculator.grand_total(subtotal, tax, discount),
            items=items,
            payments=[]
        )
        paid = calculator.to_money(grn_data.paid_amount)
        if paid > 0:
            grn.payments.append(GRNPayment(
                tenant_id=tenant_id, amount=paid, method=grn_data.payment_method, notes="Pago inicial"
            ))
        recompute(grn, status_attr="payment_status")

        self.db.add(grn)
        await self.db.flush()
        return grn

    async def list_grns(
        self, tenant_id: UUID, search: Optional[str] = None, page: int = 1, limit: int = 100
    ) -> Tuple[List[GoodsReceivedNote], int]:
        filters = [GoodsReceivedNote.tenant_id == tenant_id]
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            filters.append(or_(
                GoodsReceivedNote.number.ilike(pattern),
                GoodsReceivedNote.supplier_name.ilike(pattern),
                GoodsReceivedNote.reference_no.ilike(pattern)
            ))

        total = (await self.db.execute(
            select(func.count(GoodsReceivedNote.id)).where(*filters)
        )).scalar_one()
        result = await self.db.execute(
            select(GoodsReceivedNote)
            .where(*filters)
            .order_by(GoodsReceivedNote.received_date.desc(), GoodsReceivedNote.number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_grn(self, identifier: str, tenant_id: UUID) -> GoodsReceivedNote:
        return await self.resolver.resolve(identifier, tenant_id)

    async def add_payment(
        self, identifier: str, payment_data: GRNPaymentCreate, tenant_id: UUID
    ) -> Tuple[GRNPayment, GoodsReceivedNote]:
        """Registrar un pago al proveedor y recalcular saldo y estado"""
        async with transaction(self.db, "registrar el pago del GRN"):
            grn = await self.resolver.resolve(identifier, tenant_id, for_update=True)
            amount = validate_amount(payment_data.amount)

            payment = GRNPayment(
                tenant_id=tenant_id,
                amount=amount,
                method=payment_data.method,
                reference=payment_data.reference,
                notes=payment_data.notes
            )
            grn.payments.append(payment)
            recompute(grn, status_attr="payment_status")
            await self.db.flush()
            grn_id = grn.id

        logger.info(f"GRN {grn.number}: pago {amount}, saldo={grn.due_amount} estado={grn.payment_status.value}")
        return payment, await self.resolver.load(grn_id)
