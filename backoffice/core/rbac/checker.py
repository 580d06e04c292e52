"""Section access checks for the backoffice.

Effective access for a user is their explicit ``sectionAccess`` list when it
is non-empty, otherwise the default sections of their role. The two are never
merged. On top of that, ``miembros`` requires an importance of at least 90.

Every function here is total: malformed roles, access lists or importance
values resolve to the safe result instead of raising. The route guard and the
sidebar both go through this module, so they cannot disagree.
"""

import math
from typing import Any, Optional

from .paths import section_for_path
from .roles import DEFAULT_CATALOG, RoleCatalog, normalize_role
from .sections import (
    FALLBACK_PATH,
    SECTION_HOME,
    SIDEBAR_ITEMS,
    Section,
    SidebarItem,
    normalize_section_access,
    sort_by_priority,
)


MEMBERS_MIN_IMPORTANCE = 90

IMPORTANCE_GATES: dict[Section, int] = {
    Section.MEMBERS: MEMBERS_MIN_IMPORTANCE,
}


def normalize_importance(raw: Any) -> Optional[float]:
    """Return a usable importance or None when it is unknown."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    if not math.isfinite(raw):
        return None
    return raw


class SectionAccessChecker:
    """Checks section access for one (role, explicit access, importance) tuple."""

    def __init__(
        self,
        role: Any,
        section_access: Any = None,
        role_importance: Any = None,
        *,
        catalog: Optional[RoleCatalog] = None,
        fail_open: bool = True,
    ):
        """
        Initialize with the user's raw access data.

        Args:
            role: Role slug as received from the session
            section_access: Explicit per-user section list, may be malformed
            role_importance: Per-user importance override, may be missing
            catalog: Role catalog to read defaults from
            fail_open: Whether an unknown importance passes importance gates
        """
        self.catalog = catalog if catalog is not None else DEFAULT_CATALOG
        self.role = normalize_role(role)
        self.explicit = normalize_section_access(section_access)
        self.importance = normalize_importance(role_importance)
        self.fail_open = fail_open

    @classmethod
    def for_session(cls, session, *, catalog: Optional[RoleCatalog] = None, fail_open: bool = True):
        """Build a checker from a ``Session``; None yields a checker granting nothing."""
        user = getattr(session, "user", None)
        if user is None:
            return cls("__anonymous__", None, None, catalog=RoleCatalog({}), fail_open=False)
        return cls(
            user.role,
            user.section_access,
            user.role_importance,
            catalog=catalog,
            fail_open=fail_open,
        )

    @property
    def candidate_sections(self) -> list[Section]:
        """Explicit or default sections, ordered by priority."""
        if self.explicit:
            return sort_by_priority(self.explicit)
        return sort_by_priority(self.catalog.default_sections(self.role))

    def allowed_by_importance(self, section: Section) -> bool:
        floor = IMPORTANCE_GATES.get(section)
        if floor is None:
            return True
        if self.importance is None:
            return self.fail_open
        return self.importance >= floor

    def has_access(self, section: Any) -> bool:
        """Check if the user can reach a section."""
        parsed = Section.parse(section)
        if parsed is None:
            return False
        if not self.allowed_by_importance(parsed):
            return False
        if self.explicit:
            return parsed in self.explicit
        return parsed in self.catalog.default_sections(self.role)

    def allowed_sections(self) -> list[Section]:
        """Every reachable section, in priority order."""
        return [s for s in self.candidate_sections if self.allowed_by_importance(s)]

    def first_allowed_path(self) -> str:
        """Landing path: the highest-priority reachable section, else clock-in."""
        for section in self.allowed_sections():
            return SECTION_HOME[section]
        return FALLBACK_PATH

    def is_path_allowed(self, path: Any) -> bool:
        section = section_for_path(path)
        if section is None:
            return False
        return self.has_access(section)

    def sidebar_items(self) -> list[SidebarItem]:
        return [item for item in SIDEBAR_ITEMS if self.has_access(item.section)]


def has_section_access(
    role: Any,
    section: Any,
    section_access: Any = None,
    role_importance: Any = None,
    catalog: Optional[RoleCatalog] = None,
) -> bool:
    """
    Check if a user can reach a section.

    Args:
        role: Role slug (aliases and casing are normalized)
        section: Section or raw section slug
        section_access: Explicit access list; replaces role defaults when non-empty
        role_importance: Importance override; None skips the miembros floor

    Returns:
        True if the section is reachable
    """
    return SectionAccessChecker(role, section_access, role_importance, catalog=catalog).has_access(section)


def first_allowed_path(
    role: Any,
    section_access: Any = None,
    role_importance: Any = None,
    catalog: Optional[RoleCatalog] = None,
) -> str:
    """Path of the highest-priority reachable section; clock-in when none is."""
    return SectionAccessChecker(role, section_access, role_importance, catalog=catalog).first_allowed_path()


def is_path_allowed(
    path: Any,
    role: Any,
    section_access: Any = None,
    role_importance: Any = None,
    catalog: Optional[RoleCatalog] = None,
) -> bool:
    """False for unmapped paths, otherwise the section's access check."""
    return SectionAccessChecker(role, section_access, role_importance, catalog=catalog).is_path_allowed(path)


def sidebar_items_for_role(
    role: Any,
    section_access: Any = None,
    role_importance: Any = None,
    catalog: Optional[RoleCatalog] = None,
) -> list[SidebarItem]:
    """Sidebar entries the user can open, in sidebar order."""
    return SectionAccessChecker(role, section_access, role_importance, catalog=catalog).sidebar_items()
