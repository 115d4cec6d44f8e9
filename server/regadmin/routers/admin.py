"""
Registration Admin Router.

Every endpoint sits behind the admin gate (``require_admin``). Handlers are
plain ``def`` functions so the blocking backend calls run in the threadpool.

Endpoints:
- GET    /companies           companies for the picker
- GET    /list                registrations of a scope
- GET    /company-code        customer-facing code of a company
- POST   /set-customer-code   set the customer-facing code
- POST   /product             insert or update one registration
- DELETE /product/{id}        delete one registration
- POST   /bulk-delete         delete many registrations
- POST   /import-csv          import a CSV / spreadsheet upload
- GET    /export              download a scope as xlsx
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from regadmin.clients.backend_client import BackendClient
from regadmin.config import Settings
from regadmin.dependencies import get_backend, get_settings, require_admin
from regadmin.repositories import company_repo, registration_repo
from regadmin.schemas.registration import (
    BulkDeleteRequest,
    CompanyCodeResponse,
    ImportResponse,
    OkResponse,
    ProductUpdate,
    RowsResponse,
    SetCustomerCodeRequest,
    UpsertRequest,
    UpsertResponse,
    parse_product,
)
from regadmin.services.export_service import (
    XLSX_MEDIA_TYPE,
    build_export_workbook,
    content_disposition,
    export_filename,
)
from regadmin.services.import_service import UploadParseError, parse_upload, run_import
from regadmin.services.lookup import FallbackLookup, LookupChain, PrimaryLookup

router = APIRouter(dependencies=[Depends(require_admin)])
logger = logging.getLogger(__name__)

REPLACE_MODE_TRUE = ("1", "true")


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))


# =============================================================================
# Companies
# =============================================================================


@router.get("/companies", response_model=RowsResponse, summary="List companies")
def list_companies(client: BackendClient = Depends(get_backend)):
    return RowsResponse(rows=company_repo.get_all_companies(client))


@router.get(
    "/company-code",
    response_model=CompanyCodeResponse,
    summary="Get a company's customer-facing code",
)
def get_company_code(
    code: str = Query("", description="Company code"),
    client: BackendClient = Depends(get_backend),
):
    chain = LookupChain(
        primary=PrimaryLookup("rpc:get_customer_code", lambda: company_repo.rpc_get_customer_code(client, code)),
        fallback=FallbackLookup("companies.plain_code", lambda: company_repo.get_plain_code_by_code(client, code)),
    )
    return CompanyCodeResponse(plain_code=chain.resolve())


@router.post(
    "/set-customer-code",
    response_model=OkResponse,
    summary="Set a company's customer-facing code",
)
def set_customer_code(
    payload: SetCustomerCodeRequest,
    client: BackendClient = Depends(get_backend),
):
    company_repo.rpc_set_customer_code(client, payload.company_code, payload.plain_code)
    return OkResponse()


# =============================================================================
# Registrations
# =============================================================================


@router.get("/list", response_model=RowsResponse, summary="List registrations of a scope")
def list_registrations(
    code: str = Query("", description="Company code (scope)"),
    client: BackendClient = Depends(get_backend),
):
    chain = LookupChain(
        primary=PrimaryLookup("rpc:get_company_portal", lambda: registration_repo.rpc_company_portal(client, code)),
        fallback=FallbackLookup("product_registrations", lambda: registration_repo.list_by_company_code(client, code)),
    )
    return RowsResponse(rows=chain.resolve())


@router.post(
    "/product",
    response_model=UpsertResponse,
    response_model_exclude_none=True,
    summary="Insert or update a registration",
    description="""
    `product.id` present: update that registration with the other fields.
    `product.id` absent: insert a new registration in `company_code`.

    When `company_code` names a company that does not exist yet it is created
    with `company_name` (or the code itself) as its name.
    """,
)
def upsert_product(
    payload: UpsertRequest,
    client: BackendClient = Depends(get_backend),
):
    if payload.product is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing product")

    try:
        product = parse_product(payload.product)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"invalid product: {_validation_message(exc)}",
        ) from exc

    code = (payload.company_code or "").strip()
    company_id = None
    if code:
        company_id = company_repo.get_or_create_company_id(client, code, payload.company_name)

    if isinstance(product, ProductUpdate):
        registration_repo.update_registration(client, product.id, product.values())
        return UpsertResponse()

    values = {"company_code": code, "company_id": company_id, **product.values()}
    new_id = registration_repo.insert_registration(client, values)
    logger.info("Registration created", extra={"company_code": code, "id": new_id})
    return UpsertResponse(id=new_id)


@router.delete("/product/{registration_id}", response_model=OkResponse, summary="Delete a registration")
def delete_product(
    registration_id: str,
    client: BackendClient = Depends(get_backend),
):
    registration_repo.delete_registration(client, registration_id)
    return OkResponse()


@router.post("/bulk-delete", response_model=OkResponse, summary="Delete many registrations")
def bulk_delete(
    payload: BulkDeleteRequest,
    client: BackendClient = Depends(get_backend),
):
    if payload.ids:
        registration_repo.delete_registrations(client, payload.ids)
    return OkResponse()


# =============================================================================
# Import / Export
# =============================================================================


@router.post(
    "/import-csv",
    response_model=ImportResponse,
    summary="Import registrations from CSV or spreadsheet",
    description="""
    Upload a `.csv` or workbook (first sheet) with canonical or localized
    headers. Rows without brand name or common label are skipped.

    With `replace_mode` set to `1`/`true` every registration of
    `company_code` is deleted before the new rows are inserted.
    Rows are inserted in batches; failed batches are reported in `results`.
    """,
)
def import_registrations(
    file: Optional[UploadFile] = File(None, description="CSV or spreadsheet file"),
    company_code: Optional[str] = Form(None),
    replace_mode: Optional[str] = Form(None),
    client: BackendClient = Depends(get_backend),
    settings: Settings = Depends(get_settings),
):
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing file")
    code = (company_code or "").strip()
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing company_code")

    data = file.file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="file too large")

    try:
        rows = parse_upload(file.filename or "", data)
    except UploadParseError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    replace = (replace_mode or "").strip().lower() in REPLACE_MODE_TRUE
    results = run_import(
        client,
        rows,
        company_code=code,
        replace=replace,
        chunk_size=settings.import_chunk_size,
    )
    return {"ok": True, "results": results.to_dict()}


@router.get("/export", summary="Export a scope as xlsx")
def export_registrations(
    code: str = Query("", description="Company code (scope)"),
    client: BackendClient = Depends(get_backend),
):
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing code")

    records = registration_repo.list_by_company_code(client, code)
    xlsx_bytes = build_export_workbook(records)

    return StreamingResponse(
        BytesIO(xlsx_bytes),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": content_disposition(export_filename(code))},
    )
