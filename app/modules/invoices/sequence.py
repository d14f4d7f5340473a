"""
Generador de números de factura

El espacio de números es global (no por tienda): INV-10260001, INV-10260002...
Dos creaciones concurrentes pueden leer el mismo último número; la restricción
UNIQUE de ``invoices.number`` lo detecta y el servicio reintenta.
"""

from typing import Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.modules.invoices.models import Invoice

logger = logging.getLogger(__name__)


def parse_suffix(number: Optional[str], prefix: str) -> Optional[int]:
    """Sufijo numérico de un número de factura, o None si no es de la secuencia"""
    if not number:
        return None
    suffix = number[len(prefix):] if number.startswith(prefix) else number
    if not suffix.isdigit():
        return None
    return int(suffix)


def format_number(value: int, prefix: Optional[str] = None) -> str:
    return f"{prefix if prefix is not None else settings.INVOICE_NUMBER_PREFIX}{value}"


class InvoiceNumberSequence:
    def __init__(self, db: AsyncSession, prefix: Optional[str] = None, baseline: Optional[int] = None):
        self.db = db
        self.prefix = prefix if prefix is not None else settings.INVOICE_NUMBER_PREFIX
        self.baseline = baseline if baseline is not None else settings.INVOICE_NUMBER_BASELINE

    async def last_number(self) -> Optional[str]:
        # Los números más largos son mayores; a igual longitud, orden lexicográfico
        result = await self.db.execute(
            select(Invoice.number)
            .where(Invoice.number.like(f"{self.prefix}%"))
            .order_by(func.length(Invoice.number).desc(), Invoice.number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def next_number(self) -> str:
        last = await self.last_number()
        current = parse_suffix(last, self.prefix)
        if current is None or current < self.baseline:
            current = self.baseline
        return format_number(current + 1, self.prefix)
