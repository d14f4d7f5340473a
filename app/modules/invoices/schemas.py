from pydantic import Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.common.schemas import ApiModel
from app.modules.customers.schemas import CustomerSummary
from app.modules.invoices.models import (
    InvoiceStatus, PaymentMethod, SalesChannel, DiscountType, ReminderType
)


# Invoice Line Item Schemas
class LineItemCreate(ApiModel):
    reference_id: Optional[UUID] = Field(None, description="Producto/servicio del catálogo; vacío para ítems ad-hoc")
    description: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Precio final; se deriva si hay descuento")
    original_unit_price: Optional[Decimal] = Field(None, ge=0, description="Precio antes de descuento")
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Decimal = Field(Decimal("0"), ge=0)
    warranty_due_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_prices(self):
        if self.unit_price is None and self.original_unit_price is None:
            raise ValueError('Cada ítem requiere unitPrice u originalUnitPrice')
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError('El descuento porcentual no puede superar 100')
        return self


class LineItemOut(ApiModel):
    id: UUID
    position: int
    reference_id: Optional[UUID] = None
    description: str
    quantity: Decimal
    original_unit_price: Decimal
    unit_price: Decimal
    discount_type: DiscountType
    discount_value: Decimal
    line_total: Decimal
    warranty_due_date: Optional[date] = None


# Invoice Schemas
class InvoiceCreate(ApiModel):
    """
    Datos para crear una factura.

    Los totales siempre se calculan en el servidor; ``tenantId``/``shopId``
    en el body se ignoran (la tienda sale del token).
    """
    customer_id: Optional[UUID] = None  # NULL = cliente de mostrador
    customer_name: Optional[str] = Field(None, max_length=200)
    items: List[LineItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")
    discount: Decimal = Field(Decimal("0"), ge=0, description="Descuento a nivel de factura")
    tax: Decimal = Field(Decimal("0"), ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    sales_channel: SalesChannel = SalesChannel.ON_SITE
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    paid_amount: Decimal = Field(Decimal("0"), ge=0, description="Pago inicial; se registra en el libro de pagos")
    status: Optional[InvoiceStatus] = None

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


class InvoiceUpdate(ApiModel):
    """
    Actualización parcial. ``paidAmount`` no se edita (lo define el libro de
    pagos) y ``tenantId`` nunca se acepta.
    """
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = Field(None, max_length=200)
    items: Optional[List[LineItemCreate]] = Field(None, min_length=1)
    discount: Optional[Decimal] = Field(None, ge=0)
    tax: Optional[Decimal] = Field(None, ge=0)
    subtotal: Optional[Decimal] = Field(None, ge=0)
    total: Optional[Decimal] = Field(None, ge=0)
    status: Optional[InvoiceStatus] = None
    payment_method: Optional[PaymentMethod] = None
    sales_channel: Optional[SalesChannel] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


# Payment Schemas
class PaymentCreate(ApiModel):
    amount: Decimal = Field(..., description="Monto debe ser mayor a 0")
    method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PaymentOut(ApiModel):
    id: UUID
    invoice_id: UUID
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    paid_at: datetime


# Reminder Schemas
class ReminderCreate(ApiModel):
    type: ReminderType = ReminderType.PAYMENT
    channel: str = Field("whatsapp", min_length=1, max_length=30)
    message: str = Field("", max_length=2000)
    customer_phone: Optional[str] = Field(None, max_length=50)
    customer_name: Optional[str] = Field(None, max_length=200)

    @field_validator('channel')
    @classmethod
    def normalize_channel(cls, v):
        return v.strip().lower()


class ReminderOut(ApiModel):
    id: UUID
    invoice_id: UUID
    type: ReminderType
    channel: str
    message: str
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    sent_at: datetime


class InvoiceOut(ApiModel):
    id: UUID
    number: str
    customer_id: Optional[UUID] = None
    customer_name: str
    status: InvoiceStatus
    payment_method: PaymentMethod
    sales_channel: SalesChannel
    issue_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    invoice_discount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    due_amount: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InvoiceListItem(InvoiceOut):
    reminder_count: int = 0


class InvoiceDetail(InvoiceOut):
    """Factura con cliente, líneas, pagos y recordatorios"""
    customer: Optional[CustomerSummary] = None
    line_items: List[LineItemOut] = []
    payments: List[PaymentOut] = []
    reminders: List[ReminderOut] = []


class PaymentResult(ApiModel):
    """Pago recién registrado junto con la factura actualizada"""
    payment: PaymentOut
    invoice: InvoiceDetail


# Stats
class StatusMetrics(ApiModel):
    count: int
    total_amount: Decimal
    due_amount: Decimal


class InvoiceStats(ApiModel):
    total_invoices: int
    total_revenue: Decimal      # Suma de totales facturados
    total_collected: Decimal    # Suma de pagos recibidos
    total_outstanding: Decimal  # Saldo pendiente
    unpaid: StatusMetrics
    partially_paid: StatusMetrics
    fully_paid: StatusMetrics
    recent_invoices: List[InvoiceOut]
