"""Product registration repository for backend operations."""

from __future__ import annotations

from typing import Any, Sequence

from regadmin.clients.backend_client import BackendClient

TABLE = "product_registrations"


def list_by_company_code(client: BackendClient, company_code: str) -> list[dict[str, Any]]:
    """All registrations in a scope, in backend order."""
    return client.select(TABLE, filters={"company_code": company_code})


def rpc_company_portal(client: BackendClient, plain_code: str) -> list[dict[str, Any]]:
    """Registrations for a scope through the portal remote procedure."""
    data = client.rpc("get_company_portal", {"p_plain_code": plain_code})
    if isinstance(data, dict):
        return [data]
    return data or []


def insert_registration(client: BackendClient, values: dict[str, Any]) -> Any:
    """Insert one registration and return its id."""
    rows = client.insert(TABLE, values, returning="id")
    return rows[0]["id"] if rows else None


def insert_registrations(client: BackendClient, records: Sequence[dict[str, Any]]) -> None:
    """Insert a batch of registrations in one call."""
    client.insert(TABLE, list(records))


def update_registration(client: BackendClient, registration_id: Any, values: dict[str, Any]) -> None:
    client.update(TABLE, values, filters={"id": registration_id})


def delete_registration(client: BackendClient, registration_id: Any) -> None:
    client.delete(TABLE, filters={"id": registration_id})


def delete_registrations(client: BackendClient, registration_ids: Sequence[Any]) -> None:
    client.delete(TABLE, filters={"id": list(registration_ids)})


def delete_by_company_code(client: BackendClient, company_code: str) -> None:
    """Remove every registration in a scope."""
    client.delete(TABLE, filters={"company_code": company_code})
