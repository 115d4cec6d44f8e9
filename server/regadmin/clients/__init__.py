"""Hosted backend clients package."""

from regadmin.clients.backend_client import (
    BackendClient,
    BackendError,
    BackendUnavailableError,
    InvalidTokenError,
    build_filter_params,
)

__all__ = [
    "BackendClient",
    "BackendError",
    "BackendUnavailableError",
    "InvalidTokenError",
    "build_filter_params",
]
