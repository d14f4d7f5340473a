"""
Resolución de documentos por identificador

Una factura (o GRN) se puede pedir por su id interno o por su número visible,
con o sin prefijo. Cada estrategia produce (o no) un criterio SQL; se prueban
en orden y gana el primer resultado. La búsqueda no filtra por tenant: la
propiedad se verifica después, para distinguir "no existe" de "no es tuyo".

Si los números solo son únicos por tienda (GRN), las estrategias por número
buscan primero dentro de la tienda del token y solo después en todas.
"""

from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.common.exceptions import ForbiddenError, NotFoundError
from app.core.config import settings
from app.modules.invoices.models import Invoice

logger = logging.getLogger(__name__)


class ResolutionStrategy:
    name = "base"
    matches_number = False

    def __init__(self, model=Invoice):
        self.model = model

    def criterion(self, identifier: str):
        """Criterio SQL para este identificador, o None si la estrategia no aplica"""
        raise NotImplementedError


class ByInternalId(ResolutionStrategy):
    name = "id"

    def criterion(self, identifier: str):
        try:
            document_id = UUID(identifier)
        except ValueError:
            return None
        return self.model.id == document_id


class ByNumber(ResolutionStrategy):
    name = "number"
    matches_number = True

    def criterion(self, identifier: str):
        return self.model.number == identifier


class ByPrefixedNumber(ResolutionStrategy):
    name = "prefixed_number"
    matches_number = True

    def __init__(self, model=Invoice, prefix: Optional[str] = None):
        super().__init__(model)
        self.prefix = prefix or settings.INVOICE_NUMBER_PREFIX

    def criterion(self, identifier: str):
        if identifier.startswith(self.prefix):
            # Ya cubierto por ByNumber
            return None
        if identifier.upper().startswith(self.prefix.upper()):
            # "inv-10260001" -> "INV-10260001"
            return self.model.number == f"{self.prefix}{identifier[len(self.prefix):]}"
        return self.model.number == f"{self.prefix}{identifier}"


def default_strategies(model=Invoice, prefix: Optional[str] = None) -> List[ResolutionStrategy]:
    return [ByInternalId(model), ByNumber(model), ByPrefixedNumber(model, prefix)]


class DocumentResolver:
    """Localiza exactamente un documento del tenant o lanza NotFound/Forbidden"""

    model = None
    prefix: Optional[str] = None
    not_found_message = "Documento no encontrado"
    # True cuando el número es único por tienda y no en todo el sistema
    numbers_scoped_to_tenant = False

    def __init__(self, db: AsyncSession, strategies: Optional[List[ResolutionStrategy]] = None):
        self.db = db
        self.strategies = strategies or default_strategies(self.model, self.prefix)

    def load_options(self):
        return []

    def _query(self, criterion, for_update: bool):
        query = (
            select(self.model)
            .where(criterion)
            .options(*self.load_options())
            .execution_options(populate_existing=True)
        )
        if for_update:
            # Ignorado por SQLite; en PostgreSQL bloquea la fila hasta el commit
            query = query.with_for_update(of=self.model)
        return query

    async def _first(self, criterion, for_update: bool):
        result = await self.db.execute(self._query(criterion, for_update))
        return result.scalars().first()

    async def find(self, identifier: str, for_update: bool = False, tenant_id: Optional[UUID] = None):
        """
        Primera coincidencia de la cadena de estrategias.

        Con ``tenant_id`` y números por tienda, las estrategias por número se
        prueban primero restringidas a esa tienda; luego toda la cadena sin
        filtro, para poder distinguir Forbidden de NotFound.
        """
        identifier = (identifier or "").strip()
        if not identifier:
            return None

        candidates = []
        for strategy in self.strategies:
            criterion = strategy.criterion(identifier)
            if criterion is not None:
                candidates.append((strategy, criterion))

        if tenant_id is not None and self.numbers_scoped_to_tenant:
            for strategy, criterion in candidates:
                if not strategy.matches_number:
                    continue
                document = await self._first(and_(criterion, self.model.tenant_id == tenant_id), for_update)
                if document is not None:
                    logger.debug(f"'{identifier}' resuelto por estrategia '{strategy.name}' en la tienda")
                    return document

        for strategy, criterion in candidates:
            document = await self._first(criterion, for_update)
            if document is not None:
                logger.debug(f"'{identifier}' resuelto por estrategia '{strategy.name}' ({self.model.__name__})")
                return document
        return None

    async def load(self, document_id: UUID):
        """Recargar un documento ya verificado con todas sus relaciones"""
        result = await self.db.execute(self._query(self.model.id == document_id, for_update=False))
        return result.scalars().one()

    async def resolve(self, identifier: str, tenant_id: UUID, for_update: bool = False):
        document = await self.find(identifier, for_update=for_update, tenant_id=tenant_id)
        if document is None:
            raise NotFoundError(self.not_found_message)

        if document.tenant_id != tenant_id:
            logger.warning(
                f"Tenant {tenant_id} tried to access {self.model.__name__} {document.number} "
                f"owned by tenant {document.tenant_id}"
            )
            # Mismo mensaje que NotFound: no se revela que el documento existe
            raise ForbiddenError(self.not_found_message)

        return document


class InvoiceResolver(DocumentResolver):
    model = Invoice
    not_found_message = "Factura no encontrada"

    def load_options(self):
        return [
            selectinload(Invoice.customer),
            selectinload(Invoice.line_items),
            selectinload(Invoice.payments),
            selectinload(Invoice.reminders)
        ]
