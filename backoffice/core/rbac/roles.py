"""Role catalog for the backoffice.

Maps a role slug to its importance score, display label and default section
set. The built-in catalog below can be replaced at bootstrap by a YAML file
or by the catalog the backend serves; either way the catalog is immutable
once the application is running.

Importance is a 0-100 total order over roles:
- root (100), admin (90): every section
- metre, jefe_cocina (70): reservations, menus, food catalog, clock-in
- floor and kitchen staff: clock-in only
"""

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Union

import yaml

from .sections import SECTION_PRIORITY, Section, normalize_section_access


class RoleCatalogError(ValueError):
    """Raised when catalog data cannot be turned into roles."""


# Legacy and blank role values resolve through this table, never inline
ROLE_ALIASES: Mapping[str, str] = MappingProxyType({
    "": "admin",
    "owner": "admin",
})


@dataclass(frozen=True)
class Role:
    """A named privilege bundle."""
    slug: str
    importance: int
    label: str
    sections: tuple[Section, ...] = ()


_ALL_SECTIONS = SECTION_PRIORITY
_FLOOR_MANAGER_SECTIONS = (
    Section.RESERVATIONS,
    Section.MENUS,
    Section.FOOD_CATALOG,
    Section.CLOCK_IN,
)
_STAFF_SECTIONS = (Section.CLOCK_IN,)


DEFAULT_ROLES: Mapping[str, Role] = MappingProxyType({
    "root": Role("root", 100, "Root", _ALL_SECTIONS),
    "admin": Role("admin", 90, "Admin", _ALL_SECTIONS),
    "metre": Role("metre", 70, "Metre", _FLOOR_MANAGER_SECTIONS),
    "jefe_cocina": Role("jefe_cocina", 70, "Jefe de cocina", _FLOOR_MANAGER_SECTIONS),
    "responsable_sala": Role("responsable_sala", 60, "Responsable de sala", _STAFF_SECTIONS),
    "arrocero": Role("arrocero", 30, "Arrocero", _STAFF_SECTIONS),
    "camarero": Role("camarero", 30, "Camarero", _STAFF_SECTIONS),
    "barista": Role("barista", 20, "Barista", _STAFF_SECTIONS),
    "ayudante_camarero": Role("ayudante_camarero", 20, "Ayudante camarero", _STAFF_SECTIONS),
    "ayudante_cocina": Role("ayudante_cocina", 20, "Ayudante de cocina", _STAFF_SECTIONS),
    "pinche_cocina": Role("pinche_cocina", 20, "Pinche de cocina", _STAFF_SECTIONS),
    "runner": Role("runner", 10, "Runner", _STAFF_SECTIONS),
    "fregaplatos": Role("fregaplatos", 10, "Fregaplatos", _STAFF_SECTIONS),
})


def normalize_role(raw: Any) -> str:
    """Lowercase and trim a role value, resolving aliases.

    Blank values and the legacy ``owner`` slug resolve to ``admin``.
    """
    role = "" if raw is None else str(raw).strip().lower()
    return ROLE_ALIASES.get(role, role)


def humanize_slug(slug: str) -> str:
    return " ".join(part[:1].upper() + part[1:] for part in slug.split("_") if part)


class RoleCatalog:
    """Immutable slug -> Role mapping with total lookups."""

    def __init__(self, roles: Mapping[str, Role]):
        self._roles: Mapping[str, Role] = MappingProxyType(dict(roles))

    def __contains__(self, role: Any) -> bool:
        return normalize_role(role) in self._roles

    def __iter__(self) -> Iterator[Role]:
        return iter(self._roles.values())

    def __len__(self) -> int:
        return len(self._roles)

    def get(self, role: Any) -> Optional[Role]:
        """Look up a raw role value; None for unknown roles."""
        return self._roles.get(normalize_role(role))

    def default_sections(self, role: Any) -> tuple[Section, ...]:
        """Default sections of a role; empty for unknown roles."""
        found = self.get(role)
        return found.sections if found else ()

    def importance_of(self, role: Any) -> Optional[int]:
        found = self.get(role)
        return found.importance if found else None

    def label_of(self, role: Any) -> str:
        found = self.get(role)
        if found and found.label:
            return found.label
        return humanize_slug(normalize_role(role))

    def ranked(self) -> list[Role]:
        """Roles sorted by importance, most important first."""
        return sorted(self._roles.values(), key=lambda r: (-r.importance, r.slug))

    @classmethod
    def from_mapping(cls, data: Union[Mapping[str, Any], list]) -> "RoleCatalog":
        """Build a catalog from collaborator data.

        Accepts ``{slug: {importance, sectionAccess, label?}}`` or the list
        form ``[{slug, importance, sectionAccess | permissions, label?}]``.

        Raises:
            RoleCatalogError: If the data is not one of those shapes
        """
        if isinstance(data, Mapping):
            entries = []
            for slug, body in data.items():
                if not isinstance(body, Mapping):
                    raise RoleCatalogError(f"Role {slug!r} must be a mapping")
                entries.append({"slug": slug, **body})
        elif isinstance(data, list):
            entries = data
        else:
            raise RoleCatalogError("Role catalog must be a mapping or a list")

        roles: dict[str, Role] = {}
        for entry in entries:
            role = _parse_role(entry)
            roles[role.slug] = role
        return cls(roles)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RoleCatalog":
        """Load a catalog file with a top-level ``roles`` key."""
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RoleCatalogError(f"Cannot read role catalog {path}: {e}") from e
        if not isinstance(data, dict) or "roles" not in data:
            raise RoleCatalogError(f"Role catalog {path} has no 'roles' key")
        return cls.from_mapping(data["roles"])


def _parse_role(entry: Any) -> Role:
    if not isinstance(entry, Mapping):
        raise RoleCatalogError(f"Invalid role entry: {entry!r}")

    slug = str(entry.get("slug") or "").strip().lower()
    if not slug:
        raise RoleCatalogError(f"Role entry without slug: {entry!r}")

    importance = entry.get("importance")
    if isinstance(importance, bool) or not isinstance(importance, (int, float)):
        raise RoleCatalogError(f"Role {slug!r} has non-numeric importance")
    if not 0 <= importance <= 100:
        raise RoleCatalogError(f"Role {slug!r} importance out of range: {importance}")

    raw_sections = entry.get("sectionAccess", entry.get("permissions", []))
    sections = tuple(normalize_section_access(raw_sections))

    label = entry.get("label") or humanize_slug(slug)
    return Role(slug, int(importance), str(label), sections)


DEFAULT_CATALOG = RoleCatalog(DEFAULT_ROLES)


def role_label(raw: Any, catalog: Optional[RoleCatalog] = None) -> str:
    """Display label for a role; unknown slugs are title-cased."""
    return (catalog if catalog is not None else DEFAULT_CATALOG).label_of(raw)
