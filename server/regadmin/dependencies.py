"""FastAPI dependencies: settings, backend client and the admin gate."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from regadmin.clients.backend_client import BackendClient
from regadmin.config import Settings
from regadmin.services.auth_gate import AdminPrincipal, AuthError, Credentials, authenticate


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


def require_admin(
    request: Request,
    settings: Settings = Depends(get_settings),
    client: BackendClient = Depends(get_backend),
) -> AdminPrincipal:
    """Admit the request as an administrator or reject it with 401/403/500."""
    credentials = Credentials.from_request_parts(request.headers, request.query_params)
    try:
        principal = authenticate(
            credentials,
            client,
            static_key=settings.static_admin_key,
            admin_emails=settings.admin_email_list,
        )
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.reason) from exc

    request.state.admin = principal
    return principal
