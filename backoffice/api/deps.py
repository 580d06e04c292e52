from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from backoffice.core.config import Settings
from backoffice.core.rbac.checker import SectionAccessChecker
from backoffice.core.rbac.roles import RoleCatalog
from backoffice.core.session.models import Session


async def backend_session_resolver(request: Request) -> Optional[Session]:
    """Resolve the session by asking the backend with the request cookies."""
    cookie_header = request.headers.get("cookie")
    if not cookie_header:
        return None
    return await request.app.state.backend.fetch_session(cookie_header)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_role_catalog(request: Request) -> RoleCatalog:
    return request.app.state.role_catalog


def get_session(request: Request) -> Optional[Session]:
    """Session resolved by the route guard for this request."""
    return getattr(request.state, "session", None)


def require_session(session: Optional[Session] = Depends(get_session)) -> Session:
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sesion no autorizada",
        )
    return session


def get_access_checker(
    session: Session = Depends(require_session),
    catalog: RoleCatalog = Depends(get_role_catalog),
    settings: Settings = Depends(get_settings),
) -> SectionAccessChecker:
    return SectionAccessChecker.for_session(
        session,
        catalog=catalog,
        fail_open=settings.members_gate_fail_open,
    )
