"""Route guard middleware for FastAPI.

Runs before any page is produced and decides, per request:
- anonymous access to ``/app`` goes to the login page
- the site root, the ``/app`` root and an authenticated ``/login`` go to the
  user's landing page
- a section the user cannot open goes to the landing page, so denied
  sections are never confirmed through a direct URL
- pages that need a query parameter get a canonical default injected

The decision itself is the pure ``evaluate_request`` function; the middleware
only resolves the session and turns decisions into responses.
"""

import logging
import re
from datetime import date, datetime
from typing import Callable, NamedTuple, Optional
from urllib.parse import parse_qsl, urlencode
from zoneinfo import ZoneInfo

from fastapi import Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from backoffice.core.rbac.checker import SectionAccessChecker
from backoffice.core.rbac.paths import is_protected_path, section_for_path
from backoffice.core.session.models import Session

logger = logging.getLogger(__name__)


CHANGE_PASSWORD_PATH = "/change-password"

# Reachable without a session and never redirected
PUBLIC_PREFIXES = (
    "/factura/",
    "/invitacion/",
    "/onboarding/",
    "/reset-password/",
)

EXCLUDED_PATHS = {
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}

ERROR_MESSAGES = {
    401: "Sesion no autorizada",
    403: "Acceso denegado",
    404: "Pagina no encontrada",
}

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def default_error_message(status_code: int) -> str:
    return ERROR_MESSAGES.get(status_code, "Error interno")


def is_valid_iso_date(value: Optional[str]) -> bool:
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


class QueryRule(NamedTuple):
    """A page that must always carry a query parameter in a fixed format."""
    prefix: str
    param: str
    is_valid: Callable[[Optional[str]], bool]
    default: Callable[[date], str]


CANONICAL_QUERY_RULES: tuple[QueryRule, ...] = (
    QueryRule("/app/reservas", "date", is_valid_iso_date, lambda today: today.isoformat()),
)


class GuardDecision(NamedTuple):
    redirect: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def allowed(self) -> bool:
        return self.redirect is None and self.status_code is None


def canonical_redirect(path: str, query: str, today: date) -> Optional[str]:
    """Same URL with missing or invalid required parameters filled in."""
    for rule in CANONICAL_QUERY_RULES:
        if path != rule.prefix and not path.startswith(rule.prefix + "/"):
            continue
        params = parse_qsl(query, keep_blank_values=True)
        current = next((v for k, v in params if k == rule.param), None)
        if rule.is_valid(current):
            continue
        # Replace the first occurrence in place and drop repeats
        value = rule.default(today)
        updated = []
        replaced = False
        for key, current_value in params:
            if key != rule.param:
                updated.append((key, current_value))
            elif not replaced:
                updated.append((key, value))
                replaced = True
        if not replaced:
            updated.append((rule.param, value))
        return f"{path}?{urlencode(updated)}"
    return None


def evaluate_request(
    path: str,
    query: str,
    session: Optional[Session],
    checker: SectionAccessChecker,
    today: date,
    login_path: str = "/login",
) -> GuardDecision:
    """
    Decide whether a page request proceeds, redirects or is refused.

    Args:
        path: Request path
        query: Raw query string without the leading ``?``
        session: Resolved session, None when anonymous
        checker: Access checker for the session
        today: Date used for canonical defaults
        login_path: Path of the login page

    Returns:
        GuardDecision; ``allowed`` when the request may proceed
    """
    is_app = is_protected_path(path)

    if session is None:
        if is_app or path in ("/", CHANGE_PASSWORD_PATH):
            return GuardDecision(redirect=login_path)
        return GuardDecision()

    if session.user.must_change_password:
        if path != CHANGE_PASSWORD_PATH:
            return GuardDecision(redirect=CHANGE_PASSWORD_PATH)
        return GuardDecision()

    landing = checker.first_allowed_path()

    if path in ("/", login_path, CHANGE_PASSWORD_PATH, "/app", "/app/"):
        return GuardDecision(redirect=landing)

    if not is_app:
        return GuardDecision()

    if not checker.is_path_allowed(path):
        # Nothing is reachable and the fallback is the page being asked for
        if not checker.is_path_allowed(landing) and section_for_path(path) is section_for_path(landing):
            return GuardDecision(status_code=403)
        return GuardDecision(redirect=landing)

    target = canonical_redirect(path, query, today)
    if target is not None:
        return GuardDecision(redirect=target)

    return GuardDecision()


async def resolve_session(request: Request) -> Optional[Session]:
    """Run the configured resolver; any failure counts as no session."""
    resolver = request.app.state.session_resolver
    try:
        return await resolver(request)
    except Exception:
        logger.exception(f"Session resolution failed for {request.url.path}")
        return None


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """
    Middleware that enforces section access before any page is produced.

    API paths are not redirected; they get the resolved session on
    ``request.state.session`` and decide themselves.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in EXCLUDED_PATHS or path.startswith(PUBLIC_PREFIXES):
            request.state.session = None
            return await call_next(request)

        settings = request.app.state.settings
        session = await resolve_session(request)
        request.state.session = session

        if path.startswith("/api/"):
            return await call_next(request)

        checker = SectionAccessChecker.for_session(
            session,
            catalog=request.app.state.role_catalog,
            fail_open=settings.members_gate_fail_open,
        )
        request.state.access = checker
        today = datetime.now(ZoneInfo(settings.timezone)).date()

        decision = evaluate_request(
            path,
            request.url.query,
            session,
            checker,
            today,
            login_path=settings.login_path,
        )

        if decision.redirect is not None:
            logger.debug(f"{path} -> {decision.redirect}")
            return RedirectResponse(decision.redirect, status_code=302)

        if decision.status_code is not None:
            logger.warning(f"Refusing {path}: no reachable section")
            return JSONResponse(
                {"statusCode": decision.status_code, "message": default_error_message(decision.status_code)},
                status_code=decision.status_code,
            )

        return await call_next(request)
