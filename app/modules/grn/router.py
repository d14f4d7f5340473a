from fastapi import APIRouter, Query, status
from typing import Optional

from app.common.schemas import ApiResponse, PaginatedResponse, Pagination
from app.core.config import settings
from app.dependencies.dbDependecies import async_db_dependency
from app.modules.auth.dependencies import TenantId
from app.modules.grn.schemas import GRNCreate, GRNDetail, GRNOut, GRNPaymentCreate, GRNPaymentOut, GRNPaymentResult
from app.modules.grn.service import GRNService

router = APIRouter(prefix="/grns", tags=["GRN"])


@router.post("", response_model=ApiResponse[GRNDetail], status_code=status.HTTP_201_CREATED)
async def create_grn(grn_data: GRNCreate, db: async_db_dependency, tenant_id: TenantId):
    """
    Registrar mercancía recibida de un proveedor

    Los costos se calculan con los mismos descuentos que las facturas.
    """
    grn = await GRNService(db).create_grn(grn_data, tenant_id)
    return ApiResponse(data=GRNDetail.model_validate(grn))


@router.get("", response_model=PaginatedResponse[GRNOut])
async def list_grns(
    db: async_db_dependency,
    tenant_id: TenantId,
    search: Optional[str] = Query(None, description="Buscar por número, proveedor o referencia"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
):
    grns, total = await GRNService(db).list_grns(tenant_id, search=search, page=page, limit=limit)
    return PaginatedResponse(
        data=[GRNOut.model_validate(g) for g in grns],
        pagination=Pagination.build(page, limit, total)
    )


@router.get("/{identifier}", response_model=ApiResponse[GRNDetail])
async def get_grn(identifier: str, db: async_db_dependency, tenant_id: TenantId):
    """Obtener un GRN por id o número (GRN-2026-0001 o 2026-0001)"""
    grn = await GRNService(db).get_grn(identifier, tenant_id)
    return ApiResponse(data=GRNDetail.model_validate(grn))


@router.post("/{identifier}/payments", response_model=ApiResponse[GRNPaymentResult], status_code=status.HTTP_201_CREATED)
async def add_grn_payment(
    identifier: str,
    payment_data: GRNPaymentCreate,
    db: async_db_dependency,
    tenant_id: TenantId
):
    payment, grn = await GRNService(db).add_payment(identifier, payment_data, tenant_id)
    return ApiResponse(data=GRNPaymentResult(
        payment=GRNPaymentOut.model_validate(payment),
        grn=GRNDetail.model_validate(grn)
    ))
