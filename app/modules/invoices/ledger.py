"""
Libro de pagos de facturas

Los pagos son asientos inmutables; ``paid_amount``, ``due_amount`` y
``status`` siempre se derivan de ellos.
"""

from decimal import Decimal
from typing import Optional, Tuple
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.common.exceptions import InvalidAmountError
from app.modules.invoices.calculator import to_decimal, to_money
from app.modules.invoices.models import Invoice, InvoiceStatus, Payment, PaymentMethod

logger = logging.getLogger(__name__)


def derive_status(total: Decimal, paid: Decimal) -> InvoiceStatus:
    """FULLY_PAID si pagado >= total, PARTIALLY_PAID si 0 < pagado < total, si no UNPAID"""
    total = to_money(total)
    paid = to_money(paid)
    if paid >= total:
        return InvoiceStatus.FULLY_PAID
    if paid > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.UNPAID


def validate_amount(amount) -> Decimal:
    value = to_money(amount) if amount is not None else None
    if value is None or value <= 0:
        raise InvalidAmountError()
    return value


def recompute(document, payments=None, total_attr: str = "total_amount", status_attr: str = "status"):
    """
    Recalcular pagado, saldo y estado de un documento con pagos

    Sirve para facturas y GRN: basta con que el documento tenga
    ``payments``, ``paid_amount`` y ``due_amount``.
    """
    payments = document.payments if payments is None else payments
    total = to_money(getattr(document, total_attr))
    paid = to_money(sum((to_decimal(p.amount) for p in payments), Decimal("0")))

    document.paid_amount = paid
    document.due_amount = to_money(max(total - paid, Decimal("0")))
    setattr(document, status_attr, derive_status(total, paid))
    return document


class PaymentLedger:
    """Registra pagos en una factura y mantiene sus agregados consistentes"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def apply_payment(
        self,
        invoice: Invoice,
        amount,
        method: PaymentMethod,
        reference: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Tuple[Payment, Invoice]:
        """
        Agregar un pago y recalcular la factura

        El pago y los agregados se escriben en el mismo flush; el commit lo
        hace quien llama. Si otra transacción modificó la factura, el flush
        falla por el control de versión.
        """
        value = validate_amount(amount)

        payment = Payment(
            tenant_id=invoice.tenant_id,
            amount=value,
            method=method,
            reference=reference,
            notes=notes
        )
        invoice.payments.append(payment)
        recompute(invoice)

        await self.db.flush()

        logger.info(
            f"Pago {value} registrado en factura {invoice.number}: "
            f"pagado={invoice.paid_amount} saldo={invoice.due_amount} estado={invoice.status.value}"
        )
        return payment, invoice
