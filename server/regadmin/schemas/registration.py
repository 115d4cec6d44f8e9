"""
Pydantic schemas for the registration admin API.

The upsert endpoint receives a loosely shaped ``product`` object. It is parsed
into one of two explicit variants before any persistence happens:

- ``ProductUpdate``: carries an ``id``; the remaining fields patch that row
- ``ProductInsert``: no ``id``; a new row is created in the caller's scope
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from regadmin.services.date_normalizer import normalize_date

RecordId = Union[int, str]


class ProductFields(BaseModel):
    """Registration fields accepted from admin clients. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    brand_name: Optional[str] = None
    common_label: Optional[str] = None
    registration_no: Optional[str] = None
    importer: Optional[str] = None
    manufacturer_source: Optional[str] = None
    distributor: Optional[str] = None
    packed_volume: Optional[str] = None
    registration_date: Optional[str] = None
    expiry_date: Optional[str] = None
    license_no: Optional[str] = None

    @field_validator(
        "brand_name", "common_label", "registration_no", "importer",
        "manufacturer_source", "distributor", "packed_volume", "license_no",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("registration_date", "expiry_date", mode="before")
    @classmethod
    def _normalize_dates(cls, value: Any) -> Optional[str]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        normalized = normalize_date(value)
        if normalized is None:
            raise ValueError(f"unrecognized date: {value!r}")
        return normalized

    def values(self) -> dict[str, Any]:
        """Fields the client actually sent, without the identity."""
        return self.model_dump(exclude_unset=True, exclude={"id"})


class ProductInsert(ProductFields):
    pass


class ProductUpdate(ProductFields):
    id: RecordId


ProductVariant = Union[ProductInsert, ProductUpdate]


def parse_product(payload: dict[str, Any]) -> ProductVariant:
    """Pick the variant by presence of a non-empty ``id``."""
    if payload.get("id") not in (None, ""):
        return ProductUpdate.model_validate(payload)
    data = {key: value for key, value in payload.items() if key != "id"}
    return ProductInsert.model_validate(data)


class UpsertRequest(BaseModel):
    """Body of POST /product."""

    company_code: Optional[str] = None
    company_name: Optional[str] = None
    product: Optional[dict[str, Any]] = None


class SetCustomerCodeRequest(BaseModel):
    company_code: str = Field(..., min_length=1)
    plain_code: str = Field(..., min_length=1)

    model_config = ConfigDict(str_strip_whitespace=True)


class BulkDeleteRequest(BaseModel):
    ids: list[RecordId]


class OkResponse(BaseModel):
    ok: bool = True


class UpsertResponse(BaseModel):
    ok: bool = True
    id: Optional[RecordId] = None


class RowsResponse(BaseModel):
    rows: list[dict[str, Any]]


class CompanyCodeResponse(BaseModel):
    plain_code: Optional[str] = None


class ImportResultsOut(BaseModel):
    total: int
    success: int
    failed: int
    errors: list[str]


class ImportResponse(BaseModel):
    ok: bool = True
    results: ImportResultsOut
