from pydantic import Field, field_validator
from typing import Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from app.common.schemas import ApiModel
from app.modules.customers.models import CreditStatus


class CustomerCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('El nombre del cliente es obligatorio')
        return v


class CustomerOut(ApiModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    total_orders: int = 0
    total_spent: Decimal = Decimal("0")
    credit_balance: Decimal = Decimal("0")
    credit_status: CreditStatus = CreditStatus.CLEAR
    last_purchase: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CustomerSummary(ApiModel):
    """Proyección reducida para incluir en facturas"""
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
