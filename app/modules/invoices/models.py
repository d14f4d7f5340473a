from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Date, Text, Uuid
from sqlalchemy.orm import relationship
from datetime import date, datetime, timezone
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class InvoiceStatus(str, enum.Enum):
    UNPAID = "UNPAID"                  # Sin pagos
    PARTIALLY_PAID = "PARTIALLY_PAID"  # 0 < pagado < total
    FULLY_PAID = "FULLY_PAID"          # pagado >= total


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    CREDIT = "CREDIT"


class SalesChannel(str, enum.Enum):
    ON_SITE = "ON_SITE"
    ONLINE = "ONLINE"


class DiscountType(str, enum.Enum):
    NONE = "NONE"
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class ReminderType(str, enum.Enum):
    PAYMENT = "PAYMENT"
    OVERDUE = "OVERDUE"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Invoice(Base, TenantMixin, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # Número visible (INV-10260001). Global: único en todo el sistema, no por tienda
    number = Column(String(50), nullable=False, unique=True, index=True)

    # Cliente opcional (NULL = venta de mostrador)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = Column(String(200), nullable=False, default="Walk-in Customer")

    status = Column(Enum(InvoiceStatus, name="invoice_status"), nullable=False, default=InvoiceStatus.UNPAID)
    payment_method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False, default=PaymentMethod.CASH)
    sales_channel = Column(Enum(SalesChannel, name="sales_channel"), nullable=False, default=SalesChannel.ON_SITE)

    # Dates
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)

    notes = Column(Text, nullable=True)

    # Totals (calculated)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    invoice_discount = Column(Numeric(15, 2), nullable=False, default=0)  # Descuento a nivel de factura
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)   # Descuentos de línea + invoice_discount
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)
    due_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Optimistic lock: un UPDATE con versión vieja lanza StaleDataError
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    customer = relationship("Customer")
    line_items = relationship(
        "InvoiceLineItem", back_populates="invoice",
        cascade="all, delete-orphan", order_by="InvoiceLineItem.position"
    )
    payments = relationship(
        "Payment", back_populates="invoice",
        cascade="all, delete-orphan", order_by="Payment.paid_at"
    )
    reminders = relationship(
        "InvoiceReminder", back_populates="invoice",
        cascade="all, delete-orphan", order_by="InvoiceReminder.sent_at.desc()"
    )

    __mapper_args__ = {"version_id_col": version}


class InvoiceLineItem(Base, TimestampMixin):
    __tablename__ = "invoice_line_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # Producto/servicio del catálogo; NULL para ítems ad-hoc
    reference_id = Column(Uuid(as_uuid=True), nullable=True)
    description = Column(String(200), nullable=False)

    quantity = Column(Numeric(10, 3), nullable=False)
    original_unit_price = Column(Numeric(15, 2), nullable=False)  # Precio antes de descuento
    unit_price = Column(Numeric(15, 2), nullable=False)           # Precio después de descuento
    discount_type = Column(Enum(DiscountType, name="discount_type"), nullable=False, default=DiscountType.NONE)
    discount_value = Column(Numeric(15, 2), nullable=False, default=0)
    line_total = Column(Numeric(15, 2), nullable=False)           # quantity * unit_price
    warranty_due_date = Column(Date, nullable=True)

    invoice = relationship("Invoice", back_populates="line_items")


class Payment(Base, TenantMixin, TimestampMixin):
    """Asiento inmutable del libro de pagos de una factura"""
    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    reference = Column(String(100), nullable=True)  # Número de referencia, cheque, etc.
    notes = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    invoice = relationship("Invoice", back_populates="payments")


class InvoiceReminder(Base, TenantMixin):
    """Recordatorios de cobro enviados al cliente (WhatsApp, SMS...)"""
    __tablename__ = "invoice_reminders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(Enum(ReminderType, name="reminder_type"), nullable=False, default=ReminderType.PAYMENT)
    channel = Column(String(30), nullable=False, default="whatsapp")
    message = Column(Text, nullable=False, default="")
    customer_phone = Column(String(50), nullable=True)
    customer_name = Column(String(200), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    invoice = relationship("Invoice", back_populates="reminders")
