from __future__ import annotations


class ServiceError(Exception):
    """Base class for business-rule failures raised by services and mapped to HTTP errors by routers."""


class NotFoundError(ServiceError):
    """A referenced record (usually the owning user) does not exist."""


class ConflictError(ServiceError):
    """A uniqueness rule would be violated."""


class AuthError(ServiceError):
    """Credentials or tokens are invalid."""
