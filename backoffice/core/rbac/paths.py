"""URL path to section mapping.

The table is evaluated top to bottom and the first matching prefix wins, so
nested exceptions must be listed before the broader prefix they live under.
Prefixes match whole path segments only.
"""

from typing import Any, NamedTuple, Optional

from .sections import Section


PROTECTED_PREFIX = "/app"


class PathRule(NamedTuple):
    prefix: str
    section: Section
    exact: bool = False


PATH_RULES: tuple[PathRule, ...] = (
    PathRule("/app", Section.RESERVATIONS, exact=True),
    PathRule("/app/dashboard", Section.RESERVATIONS),
    PathRule("/app/backoffice", Section.RESERVATIONS),
    PathRule("/app/reservas", Section.RESERVATIONS),
    PathRule("/app/config", Section.RESERVATIONS),
    PathRule("/app/comsit", Section.RESERVATIONS),
    PathRule("/app/menus", Section.MENUS),
    PathRule("/app/comida", Section.FOOD_CATALOG),
    PathRule("/app/settings", Section.SETTINGS),
    PathRule("/app/website", Section.SETTINGS),
    # Every staff member may see their own schedule
    PathRule("/app/miembros/mi-horario", Section.CLOCK_IN),
    PathRule("/app/miembros", Section.MEMBERS),
    PathRule("/app/horarios", Section.SCHEDULES),
    PathRule("/app/fichaje", Section.CLOCK_IN),
    PathRule("/app/facturas", Section.INVOICES),
    PathRule("/app/reportes", Section.REPORTS),
    PathRule("/app/estado-cuenta", Section.ACCOUNT_STATEMENT),
)


def _matches(path: str, rule: PathRule) -> bool:
    if path == rule.prefix:
        return True
    if rule.exact:
        return False
    return path.startswith(rule.prefix + "/")


def is_protected_path(path: Any) -> bool:
    """True for ``/app`` and anything below it."""
    if not isinstance(path, str):
        return False
    return path == PROTECTED_PREFIX or path.startswith(PROTECTED_PREFIX + "/")


def section_for_path(path: Any) -> Optional[Section]:
    """Section guarding a URL path, or None when no rule covers it."""
    if not isinstance(path, str) or not path.startswith(PROTECTED_PREFIX):
        return None
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    for rule in PATH_RULES:
        if _matches(path, rule):
            return rule.section
    return None
