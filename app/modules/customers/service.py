"""
Servicios de negocio para el módulo de Clientes
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.common.exceptions import ForbiddenError, NotFoundError
from app.modules.customers.models import CreditStatus, Customer
from app.modules.customers.schemas import CustomerCreate

logger = logging.getLogger(__name__)


class CustomerService:
    """Servicio para gestión de clientes"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_customer(self, customer_data: CustomerCreate, tenant_id: UUID) -> Customer:
        """Crear cliente en la tienda del token"""
        customer = Customer(tenant_id=tenant_id, **customer_data.model_dump())
        self.db.add(customer)
        await self.db.commit()
        await self.db.refresh(customer)
        logger.info(f"Customer {customer.id} created for tenant {tenant_id}")
        return customer

    async def list_customers(self, tenant_id: UUID, search: Optional[str] = None) -> List[Customer]:
        """Listar clientes de la tienda ordenados por nombre"""
        query = select(Customer).where(Customer.tenant_id == tenant_id)
        if search:
            query = query.where(Customer.name.ilike(f"%{search}%"))
        result = await self.db.execute(query.order_by(Customer.name.asc()))
        return list(result.scalars().all())

    async def require_customer(self, customer_id: UUID, tenant_id: UUID) -> Customer:
        """
        Obtener un cliente verificando que pertenece a la tienda.

        Inexistente -> NotFoundError; de otra tienda -> ForbiddenError.
        """
        customer = await self.db.get(Customer, customer_id, populate_existing=True)
        if customer is None:
            raise NotFoundError("Cliente no encontrado")
        if customer.tenant_id != tenant_id:
            logger.warning(
                f"Tenant {tenant_id} referenced customer {customer_id} owned by another tenant"
            )
            raise ForbiddenError("Cliente no encontrado")
        return customer

    async def record_invoice_activity(
        self,
        customer_id: Optional[UUID],
        orders: int = 0,
        spent: Decimal = Decimal("0"),
        credit: Decimal = Decimal("0"),
        purchased_at: Optional[datetime] = None
    ) -> Optional[Customer]:
        """
        Aplicar a los acumulados del cliente el efecto de una factura.

        Se ejecuta dentro de la transacción de la factura (no hace commit).
        ``credit`` es la variación del saldo pendiente; con saldo > 0 el estado
        de crédito queda ACTIVE, en cero CLEAR. Sin cliente (venta de
        mostrador) no hace nada.
        """
        if customer_id is None:
            return None

        result = await self.db.execute(
            select(Customer)
            .where(Customer.id == customer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        customer = result.scalars().one()

        customer.total_orders = max(customer.total_orders + orders, 0)
        customer.total_spent = customer.total_spent + spent
        customer.credit_balance = max(customer.credit_balance + credit, Decimal("0"))
        customer.credit_status = CreditStatus.ACTIVE if customer.credit_balance > 0 else CreditStatus.CLEAR
        if purchased_at is not None:
            customer.last_purchase = purchased_at

        logger.debug(
            f"Customer {customer.id}: orders={customer.total_orders} spent={customer.total_spent} "
            f"credit={customer.credit_balance} ({customer.credit_status.value})"
        )
        return customer
