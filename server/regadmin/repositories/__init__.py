"""Repository layer for backend table access."""

from regadmin.repositories import company_repo, registration_repo

__all__ = [
    "company_repo",
    "registration_repo",
]
