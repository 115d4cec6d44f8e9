"""
Hosted backend client.

HTTP client for the database-as-a-service backend this proxy fronts. Two APIs
are used, both authenticated with the service credential:

- the REST data API (``/rest/v1``): table select/insert/update/delete and
  named remote procedures (``/rest/v1/rpc/<name>``)
- the identity API (``/auth/v1/user``): resolves a caller's access token to
  a user object

Errors are classified so callers can tell a remote procedure that is missing
or a backend that is unreachable (``BackendUnavailableError``) from a real
data error (``BackendError``).
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

import httpx

logger = logging.getLogger(__name__)

Filters = dict[str, Any]
Rows = Union[dict[str, Any], list[dict[str, Any]]]


# =============================================================================
# Exceptions
# =============================================================================


class BackendError(Exception):
    """Base exception for backend errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BackendUnavailableError(BackendError):
    """Raised when the backend or a remote procedure cannot serve the call."""

    pass


class InvalidTokenError(BackendError):
    """Raised when the identity service rejects an access token."""

    pass


# =============================================================================
# Helpers
# =============================================================================


def _format_filter_value(value: Any) -> str:
    """Render a value for a REST filter expression."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote_list_value(value: Any) -> str:
    text = _format_filter_value(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def build_filter_params(filters: Optional[Filters]) -> dict[str, str]:
    """
    Translate ``{column: value}`` into REST filter query parameters.

    Scalars become equality (``eq.``) filters; lists and tuples become
    membership (``in.``) filters.
    """
    params: dict[str, str] = {}
    for column, value in (filters or {}).items():
        if isinstance(value, (list, tuple, set)):
            joined = ",".join(_quote_list_value(v) for v in value)
            params[column] = f"in.({joined})"
        elif value is None:
            params[column] = "is.null"
        else:
            params[column] = f"eq.{_format_filter_value(value)}"
    return params


def extract_error_message(response: httpx.Response) -> str:
    """Pull a readable message out of a backend error response."""
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("message", "error_description", "msg", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}"


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        code = data.get("code")
        return str(code) if code is not None else None
    return None


# =============================================================================
# Backend Client
# =============================================================================


class BackendClient:
    """
    Client for the hosted backend's data and identity APIs.

    Usage:
        with BackendClient(url, service_key) as client:
            rows = client.select("companies", columns="code,name", order="code.asc")
            client.insert("product_registrations", [{"brand_name": "X", ...}])
            data = client.rpc("get_customer_code", {"p_company_code": "ACME"})
    """

    USER_AGENT = "Registration-Admin-Proxy/1.0"

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout_seconds: float = 30.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._timeout = timeout_seconds
        self._http_client: Optional[httpx.Client] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def http_client(self) -> httpx.Client:
        """Get or create the HTTP client (lazy initialization)."""
        if self._http_client is None:
            self._http_client = httpx.Client(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                headers={
                    "apikey": self._service_key,
                    "Authorization": f"Bearer {self._service_key}",
                    "Accept": "application/json",
                    "User-Agent": self.USER_AGENT,
                },
            )
        return self._http_client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            return self.http_client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as exc:
            raise BackendUnavailableError(
                f"Backend request timed out after {self._timeout}s",
                status_code=504,
            ) from exc
        except httpx.RequestError as exc:
            raise BackendUnavailableError(
                f"Failed to connect to backend: {type(exc).__name__}",
                status_code=503,
            ) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        message = extract_error_message(response)
        if response.status_code in (502, 503, 504):
            raise BackendUnavailableError(message, status_code=response.status_code)
        raise BackendError(message, status_code=response.status_code)

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(
                "Invalid JSON response from backend", status_code=502
            ) from exc

    # -------------------------------------------------------------------------
    # Data API
    # -------------------------------------------------------------------------

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Read rows from a table."""
        params = {"select": columns, **build_filter_params(filters)}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)

        response = self._send("GET", f"/rest/v1/{table}", params=params)
        self._raise_for_status(response)
        return self._json_or_none(response) or []

    def insert(
        self,
        table: str,
        rows: Rows,
        returning: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        Insert one row (dict) or many rows (list).

        Returns the inserted rows when ``returning`` names columns to read back,
        otherwise an empty list.
        """
        params = None
        prefer = "return=minimal"
        if returning:
            params = {"select": returning}
            prefer = "return=representation"

        response = self._send(
            "POST",
            f"/rest/v1/{table}",
            params=params,
            json=rows,
            headers={"Prefer": prefer},
        )
        self._raise_for_status(response)
        if not returning:
            return []
        return self._json_or_none(response) or []

    def update(self, table: str, values: dict[str, Any], filters: Filters) -> None:
        """Patch all rows matching ``filters``."""
        if not filters:
            raise ValueError("update requires at least one filter")
        response = self._send(
            "PATCH",
            f"/rest/v1/{table}",
            params=build_filter_params(filters),
            json=values,
            headers={"Prefer": "return=minimal"},
        )
        self._raise_for_status(response)

    def delete(self, table: str, filters: Filters) -> None:
        """Delete all rows matching ``filters``."""
        if not filters:
            raise ValueError("delete requires at least one filter")
        response = self._send(
            "DELETE",
            f"/rest/v1/{table}",
            params=build_filter_params(filters),
            headers={"Prefer": "return=minimal"},
        )
        self._raise_for_status(response)

    def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Invoke a named remote procedure.

        A procedure the backend does not know (404 / PGRST202) or does not
        implement (501) raises ``BackendUnavailableError``.
        """
        response = self._send("POST", f"/rest/v1/rpc/{name}", json=params or {})
        if response.status_code in (404, 501) or _error_code(response) == "PGRST202":
            raise BackendUnavailableError(
                f"Remote procedure '{name}' unavailable: {extract_error_message(response)}",
                status_code=response.status_code,
            )
        self._raise_for_status(response)
        return self._json_or_none(response)

    # -------------------------------------------------------------------------
    # Identity API
    # -------------------------------------------------------------------------

    def get_user(self, access_token: str) -> Optional[dict[str, Any]]:
        """
        Resolve an access token to the user it was issued for.

        Raises:
            InvalidTokenError: the identity service rejected the token (4xx)
            BackendError: the identity service failed or was unreachable
        """
        response = self._send(
            "GET",
            "/auth/v1/user",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if 400 <= response.status_code < 500:
            raise InvalidTokenError(
                extract_error_message(response), status_code=response.status_code
            )
        self._raise_for_status(response)

        data = self._json_or_none(response)
        if not isinstance(data, dict):
            return None
        # Some deployments wrap the payload as {"user": {...}}
        if isinstance(data.get("user"), dict):
            return data["user"]
        return data if data.get("id") else None
