"""
Admin authentication gate.

A caller is admitted either with the static admin key or with a bearer access
token that the identity service resolves to a user who is an admin (role
claim) or whose email is on the allowlist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from secrets import compare_digest
from typing import Any, Mapping, Optional, Sequence

from regadmin.clients.backend_client import BackendClient, InvalidTokenError

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class AuthError(Exception):
    """Rejected admin request."""

    def __init__(self, reason: str, status_code: int):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class MissingCredentialsError(AuthError):
    def __init__(self):
        super().__init__("missing credentials", 401)


class InvalidCredentialsError(AuthError):
    def __init__(self):
        super().__init__("invalid token", 401)


class ForbiddenError(AuthError):
    def __init__(self):
        super().__init__("forbidden", 403)


class AuthServiceFailure(AuthError):
    def __init__(self):
        super().__init__("auth error", 500)


@dataclass(frozen=True)
class Credentials:
    """Credential material presented with a request."""

    admin_key: Optional[str] = None
    authorization: Optional[str] = None

    @classmethod
    def from_request_parts(
        cls, headers: Mapping[str, str], query: Mapping[str, str]
    ) -> "Credentials":
        key = (
            headers.get("x-admin-key")
            or query.get("admin_key")
            or headers.get("x-legacy-admin-key")
        )
        return cls(admin_key=key or None, authorization=headers.get("authorization"))

    @property
    def bearer_token(self) -> Optional[str]:
        parts = (self.authorization or "").split(" ")
        if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1]:
            return parts[1]
        return None


@dataclass(frozen=True)
class AdminPrincipal:
    """An admitted caller."""

    method: str  # "api_key" or "token"
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    user: dict[str, Any] = field(default_factory=dict, repr=False)


def user_role(user: Mapping[str, Any]) -> str:
    app_metadata = user.get("app_metadata") or {}
    role = app_metadata.get("role") if isinstance(app_metadata, Mapping) else None
    return role if isinstance(role, str) else ""


def is_admin_user(user: Mapping[str, Any], admin_emails: Sequence[str]) -> bool:
    """True when the user carries the admin role or is on the allowlist."""
    if user_role(user).lower() == ADMIN_ROLE:
        return True
    email = (user.get("email") or "").strip().lower()
    return bool(email) and email in admin_emails


def authenticate(
    credentials: Credentials,
    client: BackendClient,
    static_key: Optional[str],
    admin_emails: Sequence[str],
) -> AdminPrincipal:
    """
    Admit or reject a request.

    Raises:
        MissingCredentialsError: no usable key and no bearer header
        InvalidCredentialsError: token rejected or resolves to no user
        ForbiddenError: valid user without admin rights
        AuthServiceFailure: identity lookup failed unexpectedly
    """
    if (
        static_key
        and credentials.admin_key
        and compare_digest(credentials.admin_key.encode(), static_key.encode())
    ):
        return AdminPrincipal(method="api_key")

    token = credentials.bearer_token
    if token is None:
        raise MissingCredentialsError()

    try:
        user = client.get_user(token)
    except InvalidTokenError:
        raise InvalidCredentialsError()
    except Exception as exc:
        logger.exception("Identity lookup failed: %s", exc)
        raise AuthServiceFailure() from exc

    if not user:
        raise InvalidCredentialsError()

    if not is_admin_user(user, admin_emails):
        logger.warning(
            "Rejected non-admin user",
            extra={"user_id": user.get("id"), "email": user.get("email")},
        )
        raise ForbiddenError()

    return AdminPrincipal(
        method="token",
        user_id=user.get("id"),
        email=user.get("email"),
        role=user_role(user) or None,
        user=dict(user),
    )
