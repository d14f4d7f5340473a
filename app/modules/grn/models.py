"""
Modelos SQLAlchemy para Notas de Recepción de Mercancía (GRN)

Documento del lado del proveedor: mismas reglas de precios y descuentos que
las facturas y el mismo estado de pago derivado de sus pagos.
"""
from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Date, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.modules.invoices.models import InvoiceStatus, PaymentMethod, DiscountType, utcnow


class GoodsReceivedNote(Base, TenantMixin, TimestampMixin):
    __tablename__ = "grns"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    number = Column(String(50), nullable=False, index=True)  # GRN-2026-0001, único por tienda

    supplier_name = Column(String(200), nullable=False, index=True)
    reference_no = Column(String(100), nullable=True)  # Factura/remisión del proveedor
    received_date = Column(Date, nullable=False, default=date.today)
    expected_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    # Totales calculados
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    order_discount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)
    due_amount = Column(Numeric(15, 2), nullable=False, default=0)
    payment_status = Column(Enum(InvoiceStatus, name="invoice_status"), nullable=False, default=InvoiceStatus.UNPAID)

    version = Column(Integer, nullable=False, default=1)

    # Relationships
    items = relationship(
        "GRNItem", back_populates="grn",
        cascade="all, delete-orphan", order_by="GRNItem.position"
    )
    payments = relationship(
        "GRNPayment", back_populates="grn",
        cascade="all, delete-orphan", order_by="GRNPayment.paid_at"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_grn_tenant_number"),
    )
    __mapper_args__ = {"version_id_col": version}


class GRNItem(Base):
    __tablename__ = "grn_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    grn_id = Column(Uuid(as_uuid=True), ForeignKey("grns.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    reference_id = Column(Uuid(as_uuid=True), nullable=True)
    description = Column(String(200), nullable=False)
    quantity = Column(Numeric(10, 3), nullable=False)
    original_unit_price = Column(Numeric(15, 2), nullable=False)  # Costo de lista
    unit_price = Column(Numeric(15, 2), nullable=False)           # Costo después de descuento
    discount_type = Column(Enum(DiscountType, name="discount_type"), nullable=False, default=DiscountType.NONE)
    discount_value = Column(Numeric(15, 2), nullable=False, default=0)
    selling_price = Column(Numeric(15, 2), nullable=True)
    line_total = Column(Numeric(15, 2), nullable=False)

    grn = relationship("GoodsReceivedNote", back_populates="items")


class GRNPayment(Base, TenantMixin):
    __tablename__ = "grn_payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    grn_id = Column(Uuid(as_uuid=True), ForeignKey("grns.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    grn = relationship("GoodsReceivedNote", back_populates="payments")
