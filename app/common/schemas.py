"""
Base schemas shared by every module: camelCase JSON on the wire, snake_case in Python.
"""
from typing import Generic, List, Optional, TypeVar
from math import ceil

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=ceil(total / limit) if limit else 0)


class ApiResponse(ApiModel, Generic[T]):
    """Sobre estándar de respuesta: {success, data, message?}"""
    success: bool = True
    data: T
    message: Optional[str] = None


class PaginatedResponse(ApiModel, Generic[T]):
    success: bool = True
    data: List[T]
    pagination: Pagination


class MessageResponse(ApiModel):
    success: bool = True
    message: str
