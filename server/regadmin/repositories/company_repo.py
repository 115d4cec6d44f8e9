"""Company repository for backend operations."""

from __future__ import annotations

from typing import Any, Optional

from regadmin.clients.backend_client import BackendClient

TABLE = "companies"


def get_all_companies(client: BackendClient) -> list[dict[str, Any]]:
    """Get all companies (code and name), ordered by code."""
    return client.select(TABLE, columns="code,name", order="code.asc")


def get_company_id_by_code(client: BackendClient, code: str) -> Optional[Any]:
    """Get a company's id by its code."""
    rows = client.select(TABLE, columns="id", filters={"code": code}, limit=1)
    return rows[0]["id"] if rows else None


def create_company(client: BackendClient, code: str, name: Optional[str] = None) -> Any:
    """Create a new company and return its id."""
    rows = client.insert(TABLE, {"code": code, "name": name or code}, returning="id")
    return rows[0]["id"]


def get_or_create_company_id(
    client: BackendClient, code: str, name: Optional[str] = None
) -> Any:
    """Resolve a company id by code, creating the company when missing."""
    company_id = get_company_id_by_code(client, code)
    if company_id is None:
        company_id = create_company(client, code, name)
    return company_id


def get_plain_code_by_code(client: BackendClient, code: str) -> Optional[str]:
    """Read a company's customer-facing code straight from the table."""
    rows = client.select(TABLE, columns="plain_code", filters={"code": code}, limit=1)
    if not rows:
        return None
    return rows[0].get("plain_code") or None


def rpc_get_customer_code(client: BackendClient, code: str) -> Optional[str]:
    """Read a company's customer-facing code through the remote procedure."""
    data = client.rpc("get_customer_code", {"p_company_code": code})
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        return data.get("plain_code") or None
    return None


def rpc_set_customer_code(client: BackendClient, company_code: str, plain_code: str) -> None:
    """Set a company's customer-facing code through the remote procedure."""
    client.rpc(
        "set_customer_code",
        {"p_company_code": company_code, "p_plain_code": plain_code},
    )
