from fastapi import APIRouter, Query, status
from typing import List, Optional
from uuid import UUID

from app.common.schemas import ApiResponse
from app.dependencies.dbDependecies import async_db_dependency
from app.modules.auth.dependencies import TenantId
from app.modules.customers.schemas import CustomerCreate, CustomerOut
from app.modules.customers.service import CustomerService

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.post("", response_model=ApiResponse[CustomerOut], status_code=status.HTTP_201_CREATED)
async def create_customer(customer_data: CustomerCreate, db: async_db_dependency, tenant_id: TenantId):
    """
    Crear un cliente. La tienda sale del token; un shopId en el body se ignora.
    """
    customer = await CustomerService(db).create_customer(customer_data, tenant_id)
    return ApiResponse(data=CustomerOut.model_validate(customer))


@router.get("", response_model=ApiResponse[List[CustomerOut]])
async def list_customers(
    db: async_db_dependency,
    tenant_id: TenantId,
    search: Optional[str] = Query(None, description="Buscar por nombre")
):
    customers = await CustomerService(db).list_customers(tenant_id, search)
    return ApiResponse(data=[CustomerOut.model_validate(c) for c in customers])


@router.get("/{customer_id}", response_model=ApiResponse[CustomerOut])
async def get_customer(customer_id: UUID, db: async_db_dependency, tenant_id: TenantId):
    customer = await CustomerService(db).require_customer(customer_id, tenant_id)
    return ApiResponse(data=CustomerOut.model_validate(customer))
