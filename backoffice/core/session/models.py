"""Session shapes consumed from the backend, and the tab-scoped store."""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class SessionUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[int] = None
    email: str = ""
    name: str = ""
    username: Optional[str] = None
    # Access fields stay raw; the rbac checks normalize them
    role: Any = None
    role_importance: Any = Field(default=None, alias="roleImportance")
    section_access: Any = Field(default=None, alias="sectionAccess")
    must_change_password: bool = Field(default=False, alias="mustChangePassword")


class Restaurant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    slug: str = ""
    name: str = ""


class Session(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user: SessionUser
    restaurants: list[Restaurant] = Field(default_factory=list)
    active_restaurant_id: Optional[int] = Field(default=None, alias="activeRestaurantId")

    @classmethod
    def from_payload(cls, data: Any) -> Optional["Session"]:
        """Parse a backend session payload; anything malformed is no session."""
        if not isinstance(data, dict):
            return None
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding malformed session payload: {e.error_count()} errors")
            return None

    @property
    def active_restaurant(self) -> Optional[Restaurant]:
        for restaurant in self.restaurants:
            if restaurant.id == self.active_restaurant_id:
                return restaurant
        return None

    def with_active_restaurant(self, restaurant_id: int) -> "Session":
        """Copy of the session pointed at another tenant."""
        if not any(r.id == restaurant_id for r in self.restaurants):
            raise ValueError(f"Restaurant {restaurant_id} is not available in this session")
        return self.model_copy(update={"active_restaurant_id": restaurant_id})

    def public_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class SessionStore:
    """Holds the current session and its moving expiration for one tab/process."""

    def __init__(self, session: Optional[Session] = None, expiration: Optional[str] = None):
        self.session = session
        self.expiration = expiration

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    def set(self, session: Optional[Session], expiration: Optional[str] = None) -> None:
        self.session = session
        self.expiration = expiration if session is not None else None

    def switch_restaurant(self, restaurant_id: int) -> None:
        if self.session is None:
            raise ValueError("No active session")
        self.session = self.session.with_active_restaurant(restaurant_id)

    def clear(self) -> None:
        self.session = None
        self.expiration = None
