"""API routers for the backoffice access gateway."""

from . import health
from . import shell

__all__ = [
    "health",
    "shell",
]
