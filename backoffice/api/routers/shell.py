"""Dashboard shell endpoints.

The sidebar is computed here from the same access checker the route guard
uses, so a link is shown exactly when following it would not be redirected.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from backoffice.api.deps import get_access_checker, get_settings, require_session
from backoffice.core.config import Settings
from backoffice.core.rbac.checker import SectionAccessChecker
from backoffice.core.rbac.paths import section_for_path
from backoffice.core.session.models import Session

router = APIRouter(tags=["shell"])


def navigation_payload(session: Session, checker: SectionAccessChecker) -> dict:
    return {
        "role": checker.role,
        "roleLabel": checker.catalog.label_of(checker.role),
        "landingPath": checker.first_allowed_path(),
        "sidebar": [item.to_dict() for item in checker.sidebar_items()],
        "activeRestaurantId": session.active_restaurant_id,
    }


@router.get("/api/shell/navigation")
async def navigation(
    session: Session = Depends(require_session),
    checker: SectionAccessChecker = Depends(get_access_checker),
):
    """Sidebar and landing page for the signed-in user."""
    return navigation_payload(session, checker)


@router.get("/app/{page_path:path}")
async def page_context(
    page_path: str,
    request: Request,
    session: Session = Depends(require_session),
    checker: SectionAccessChecker = Depends(get_access_checker),
    settings: Settings = Depends(get_settings),
):
    """Context handed to the page renderer once the route guard let the request through."""
    path = f"/app/{page_path}"
    section = section_for_path(path)
    theme = "light" if request.cookies.get(settings.theme_cookie) == "light" else "dark"
    return {
        "page": path,
        "section": section.value if section else None,
        "theme": theme,
        "session": session.public_dict(),
        **navigation_payload(session, checker),
    }


@router.get("/login")
async def login_page(reason: Optional[str] = None, next: Optional[str] = None):
    return {"page": "/login", "reason": reason, "next": next}
