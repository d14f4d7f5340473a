from app.database.database import Base
from sqlalchemy import Column, DateTime, Enum, Integer, Numeric, String, Text, Uuid
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class CreditStatus(str, enum.Enum):
    CLEAR = "CLEAR"    # Sin saldo pendiente
    ACTIVE = "ACTIVE"  # Debe al menos una factura


class Customer(Base, TenantMixin, TimestampMixin):
    """Cliente de una tienda"""
    __tablename__ = "customers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Acumulados mantenidos por las facturas (ventas de mostrador no cuentan)
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(15, 2), nullable=False, default=0)     # Suma de pagos recibidos
    credit_balance = Column(Numeric(15, 2), nullable=False, default=0)  # Suma de saldos pendientes
    credit_status = Column(Enum(CreditStatus, name="credit_status"), nullable=False, default=CreditStatus.CLEAR)
    last_purchase = Column(DateTime(timezone=True), nullable=True)
