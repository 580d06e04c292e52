"""Section model for the backoffice.

A section is an independently gated feature area of the dashboard. The set is
closed, each section has one canonical path, and the global priority order
below drives both the landing page choice and the sidebar ordering.

Section values are the slugs stored by the backend in a user's
``sectionAccess`` list, e.g. ``["reservas", "facturas"]``.
"""

from enum import Enum
from typing import Any, NamedTuple, Optional


class Section(str, Enum):
    """Feature areas that can be granted to a role or a user."""

    RESERVATIONS = "reservas"
    MENUS = "menus"
    FOOD_CATALOG = "comida"
    SETTINGS = "ajustes"
    MEMBERS = "miembros"           # also gated by importance
    CLOCK_IN = "fichaje"           # minimum-privilege landing
    SCHEDULES = "horarios"
    INVOICES = "facturas"
    REPORTS = "reportes"
    ACCOUNT_STATEMENT = "estado-cuenta"

    @classmethod
    def parse(cls, value: Any) -> Optional["Section"]:
        """Return the section for a raw slug, or None when it is not one."""
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        slug = str(value).strip().lower()
        try:
            return cls(slug)
        except ValueError:
            return None


# Highest priority first
SECTION_PRIORITY: tuple[Section, ...] = (
    Section.RESERVATIONS,
    Section.MENUS,
    Section.FOOD_CATALOG,
    Section.MEMBERS,
    Section.SCHEDULES,
    Section.INVOICES,
    Section.REPORTS,
    Section.ACCOUNT_STATEMENT,
    Section.SETTINGS,
    Section.CLOCK_IN,
)

SECTION_HOME: dict[Section, str] = {
    Section.RESERVATIONS: "/app/reservas",
    Section.MENUS: "/app/menus",
    Section.FOOD_CATALOG: "/app/comida",
    Section.SETTINGS: "/app/settings",
    Section.MEMBERS: "/app/miembros",
    Section.CLOCK_IN: "/app/fichaje",
    Section.SCHEDULES: "/app/horarios",
    Section.INVOICES: "/app/facturas",
    Section.REPORTS: "/app/reportes",
    Section.ACCOUNT_STATEMENT: "/app/estado-cuenta",
}

SECTION_LABELS: dict[Section, str] = {
    Section.RESERVATIONS: "Reservas",
    Section.MENUS: "Menus",
    Section.FOOD_CATALOG: "Comida",
    Section.SETTINGS: "Ajustes",
    Section.MEMBERS: "Miembros",
    Section.CLOCK_IN: "Fichaje",
    Section.SCHEDULES: "Horarios",
    Section.INVOICES: "Facturas",
    Section.REPORTS: "Reportes",
    Section.ACCOUNT_STATEMENT: "Estado de cuenta",
}

FALLBACK_SECTION = Section.CLOCK_IN
FALLBACK_PATH = SECTION_HOME[FALLBACK_SECTION]


class SidebarItem(NamedTuple):
    """A navigation entry; static and independent of any session."""
    section: Section
    path: str
    label: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.section.value, "href": self.path, "label": self.label}


SIDEBAR_ITEMS: tuple[SidebarItem, ...] = tuple(
    SidebarItem(section, SECTION_HOME[section], SECTION_LABELS[section])
    for section in SECTION_PRIORITY
)


def path_for(section: Section) -> str:
    """Canonical path of a section."""
    return SECTION_HOME[section]


def sort_by_priority(sections) -> list[Section]:
    """Order sections by the global priority, dropping duplicates."""
    wanted = set(sections)
    return [section for section in SECTION_PRIORITY if section in wanted]


def normalize_section_access(raw: Any) -> list[Section]:
    """Coerce a raw ``sectionAccess`` value into known sections.

    Anything that is not a list or tuple yields an empty list. Unknown and
    duplicate entries are dropped; the input order is kept.
    """
    if not isinstance(raw, (list, tuple)):
        return []
    out: list[Section] = []
    seen: set[Section] = set()
    for item in raw:
        section = Section.parse(item)
        if section is None or section in seen:
            continue
        seen.add(section)
        out.append(section)
    return out
