"""Pydantic schemas for the registration admin API."""

from regadmin.schemas.registration import (
    BulkDeleteRequest,
    CompanyCodeResponse,
    ImportResponse,
    ImportResultsOut,
    OkResponse,
    ProductInsert,
    ProductUpdate,
    ProductVariant,
    RowsResponse,
    SetCustomerCodeRequest,
    UpsertRequest,
    UpsertResponse,
    parse_product,
)

__all__ = [
    "BulkDeleteRequest",
    "CompanyCodeResponse",
    "ImportResponse",
    "ImportResultsOut",
    "OkResponse",
    "ProductInsert",
    "ProductUpdate",
    "ProductVariant",
    "RowsResponse",
    "SetCustomerCodeRequest",
    "UpsertRequest",
    "UpsertResponse",
    "parse_product",
]
