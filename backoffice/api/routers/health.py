"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from backoffice.api.deps import get_role_catalog
from backoffice.core.rbac.roles import RoleCatalog

router = APIRouter(tags=["health"])

VERSION = "0.1.0"


@router.get("/health")
async def health_check(catalog: RoleCatalog = Depends(get_role_catalog)):
    return {
        "status": "healthy",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "roles": len(catalog),
    }
