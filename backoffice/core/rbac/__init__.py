"""Section-based access control for the backoffice.

This module defines the section model, the role catalog, the path mapping
and the access checks shared by the route guard and the sidebar.
"""

from .sections import Section, SidebarItem, SECTION_PRIORITY, SIDEBAR_ITEMS, normalize_section_access
from .roles import Role, RoleCatalog, RoleCatalogError, DEFAULT_CATALOG, normalize_role, role_label
from .paths import section_for_path, is_protected_path
from .checker import (
    SectionAccessChecker,
    has_section_access,
    first_allowed_path,
    is_path_allowed,
    sidebar_items_for_role,
)

__all__ = [
    "Section",
    "SidebarItem",
    "SECTION_PRIORITY",
    "SIDEBAR_ITEMS",
    "normalize_section_access",
    "Role",
    "RoleCatalog",
    "RoleCatalogError",
    "DEFAULT_CATALOG",
    "normalize_role",
    "role_label",
    "section_for_path",
    "is_protected_path",
    "SectionAccessChecker",
    "has_section_access",
    "first_allowed_path",
    "is_path_allowed",
    "sidebar_items_for_role",
]
