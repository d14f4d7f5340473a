from pydantic import Field, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.common.schemas import ApiModel
from app.modules.invoices.models import InvoiceStatus, PaymentMethod, DiscountType


class GRNItemCreate(ApiModel):
    reference_id: Optional[UUID] = None
    description: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Costo final; se deriva si hay descuento")
    original_unit_price: Optional[Decimal] = Field(None, ge=0, description="Costo de lista antes de descuento")
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Decimal = Field(Decimal("0"), ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode='after')
    def validate_prices(self):
        if self.unit_price is None and self.original_unit_price is None:
            raise ValueError('Cada ítem requiere unitPrice u originalUnitPrice')
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError('El descuento porcentual no puede superar 100')
        return self


class GRNCreate(ApiModel):
    supplier_name: str = Field(..., min_length=1, max_length=200)
    reference_no: Optional[str] = Field(None, max_length=100)
    received_date: Optional[date] = None
    expected_date: Optional[date] = None
    items: List[GRNItemCreate] = Field(..., min_length=1)
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    paid_amount: Decimal = Field(Decimal("0"), ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    notes: Optional[str] = None


class GRNPaymentCreate(ApiModel):
    amount: Decimal
    method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class GRNItemOut(ApiModel):
    id: UUID
    position: int
    reference_id: Optional[UUID] = None
    description: str
    quantity: Decimal
    original_unit_price: Decimal
    unit_price: Decimal
    discount_type: DiscountType
    discount_value: Decimal
    selling_price: Optional[Decimal] = None
    line_total: Decimal


class GRNPaymentOut(ApiModel):
    id: UUID
    grn_id: UUID
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    paid_at: datetime


class GRNOut(ApiModel):
    id: UUID
    number: str
    supplier_name: str
    reference_no: Optional[str] = None
    received_date: date
    expected_date: Optional[date] = None
    notes: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    order_discount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    due_amount: Decimal
    payment_status: InvoiceStatus
    created_at: Optional[datetime] = None


class GRNDetail(GRNOut):
    items: List[GRNItemOut] = []
    payments: List[GRNPaymentOut] = []


class GRNPaymentResult(ApiModel):
    payment: GRNPaymentOut
    grn: GRNDetail
