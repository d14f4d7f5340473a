from fastapi import APIRouter, Query, status
from typing import List, Optional

from app.common.schemas import ApiResponse, MessageResponse, PaginatedResponse, Pagination
from app.core.config import settings
from app.dependencies.dbDependecies import async_db_dependency
from app.modules.auth.dependencies import TenantId
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceDetail, InvoiceListItem, InvoiceOut, InvoiceStats,
    PaymentCreate, PaymentOut, PaymentResult, ReminderCreate, ReminderOut
)
from app.modules.invoices.service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("", response_model=ApiResponse[InvoiceDetail], status_code=status.HTTP_201_CREATED)
async def create_invoice(invoice_data: InvoiceCreate, db: async_db_dependency, tenant_id: TenantId):
    """
    Crear una nueva factura

    - Los totales se calculan en el servidor a partir de los items
    - El número (INV-...) se asigna automáticamente
    - ``paidAmount`` > 0 registra un pago inicial en el libro de pagos
    - La tienda sale del token; ``tenantId``/``shopId`` en el body se ignoran
    """
    invoice = await InvoiceService(db).create_invoice(invoice_data, tenant_id)
    return ApiResponse(data=InvoiceDetail.model_validate(invoice))


@router.get("", response_model=PaginatedResponse[InvoiceListItem])
async def list_invoices(
    db: async_db_dependency,
    tenant_id: TenantId,
    status_filter: Optional[str] = Query(None, alias="status", description="UNPAID, PARTIALLY_PAID, FULLY_PAID o all"),
    customer_id: Optional[str] = Query(None, alias="customerId", description="ID del cliente o all"),
    search: Optional[str] = Query(None, description="Buscar por número o nombre del cliente"),
    sort_by: str = Query("date", alias="sortBy", description="date, number o total"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
):
    """Listar facturas de la tienda con filtros, orden y paginación"""
    rows, total = await InvoiceService(db).list_invoices(
        tenant_id,
        status=status_filter,
        customer_id=customer_id,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit
    )
    data = [
        InvoiceListItem.model_validate(invoice).model_copy(update={"reminder_count": reminder_count})
        for invoice, reminder_count in rows
    ]
    return PaginatedResponse(data=data, pagination=Pagination.build(page, limit, total))


@router.get("/stats", response_model=ApiResponse[InvoiceStats])
async def get_invoice_stats(db: async_db_dependency, tenant_id: TenantId):
    """Resumen de facturación de la tienda por estado"""
    stats = await InvoiceService(db).get_stats(tenant_id)
    stats["recent_invoices"] = [InvoiceOut.model_validate(i) for i in stats["recent_invoices"]]
    return ApiResponse(data=InvoiceStats(**stats))


@router.get("/{identifier}", response_model=ApiResponse[InvoiceDetail])
async def get_invoice(identifier: str, db: async_db_dependency, tenant_id: TenantId):
    """
    Obtener una factura por id interno o número (INV-10260001 o 10260001)
    """
    invoice = await InvoiceService(db).get_invoice(identifier, tenant_id)
    return ApiResponse(data=InvoiceDetail.model_validate(invoice))


@router.patch("/{identifier}", response_model=ApiResponse[InvoiceDetail])
@router.put("/{identifier}", response_model=ApiResponse[InvoiceDetail])
async def update_invoice(
    identifier: str,
    invoice_data: InvoiceUpdate,
    db: async_db_dependency,
    tenant_id: TenantId
):
    """
    Actualizar una factura

    Reemplazar ``items`` recalcula subtotal, descuento, total y saldo.
    El estado siempre se deriva de los pagos.
    """
    invoice = await InvoiceService(db).update_invoice(identifier, invoice_data, tenant_id)
    return ApiResponse(data=InvoiceDetail.model_validate(invoice))


@router.delete("/{identifier}", response_model=MessageResponse)
async def delete_invoice(identifier: str, db: async_db_dependency, tenant_id: TenantId):
    """Eliminar una factura con sus líneas, pagos y recordatorios"""
    number = await InvoiceService(db).delete_invoice(identifier, tenant_id)
    return MessageResponse(message=f"Factura {number} eliminada")


@router.post("/{identifier}/payments", response_model=ApiResponse[PaymentResult], status_code=status.HTTP_201_CREATED)
async def add_payment(
    identifier: str,
    payment_data: PaymentCreate,
    db: async_db_dependency,
    tenant_id: TenantId
):
    """
    Registrar un pago

    Devuelve el pago y la factura con pagado, saldo y estado recalculados.
    """
    payment, invoice = await InvoiceService(db).add_payment(identifier, payment_data, tenant_id)
    return ApiResponse(data=PaymentResult(
        payment=PaymentOut.model_validate(payment),
        invoice=InvoiceDetail.model_validate(invoice)
    ))


@router.get("/{identifier}/payments", response_model=ApiResponse[List[PaymentOut]])
async def list_payments(identifier: str, db: async_db_dependency, tenant_id: TenantId):
    payments = await InvoiceService(db).list_payments(identifier, tenant_id)
    return ApiResponse(data=[PaymentOut.model_validate(p) for p in payments])


@router.get("/{identifier}/reminders", response_model=ApiResponse[List[ReminderOut]])
async def list_reminders(identifier: str, db: async_db_dependency, tenant_id: TenantId):
    reminders = await InvoiceService(db).list_reminders(identifier, tenant_id)
    return ApiResponse(data=[ReminderOut.model_validate(r) for r in reminders])


@router.post("/{identifier}/reminders", response_model=ApiResponse[ReminderOut], status_code=status.HTTP_201_CREATED)
async def create_reminder(
    identifier: str,
    reminder_data: ReminderCreate,
    db: async_db_dependency,
    tenant_id: TenantId
):
    """Registrar un recordatorio de cobro (WhatsApp, SMS...) enviado al cliente"""
    reminder = await InvoiceService(db).create_reminder(identifier, reminder_data, tenant_id)
    return ApiResponse(data=ReminderOut.model_validate(reminder))
