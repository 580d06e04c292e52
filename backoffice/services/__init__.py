"""Services for the backoffice access gateway."""

from .backend import BackendClient, BackendError

__all__ = ["BackendClient", "BackendError"]
