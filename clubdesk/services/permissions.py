"""Capability resolution for tenant memberships.

Effective capabilities come from three sources, in order of precedence: the
owner flag, a stored per-user override, and the defaults of the member's
role. Authorization code must go through :class:`EffectivePermissions`
(``can_view`` / ``can_manage``) so the owner bypass is never skipped.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Union

from ..core.errors import ValidationFailure

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"


class Resource(str, Enum):
    DASHBOARD = "dashboard"
    ATHLETES = "athletes"
    ENROLLMENTS = "enrollments"
    TRAININGS = "trainings"
    COMPETITIONS = "competitions"
    GAMES = "games"
    FINANCE = "finance"
    MONTHLY_FEES = "monthly_fees"
    SETTINGS = "settings"
    USERS = "users"


# Areas a manager runs day to day.
MANAGER_RESOURCES = (
    Resource.ATHLETES,
    Resource.ENROLLMENTS,
    Resource.TRAININGS,
    Resource.COMPETITIONS,
    Resource.GAMES,
)


@dataclass(frozen=True)
class PermissionSet:
    view_dashboard: bool = False
    view_athletes: bool = False
    manage_athletes: bool = False
    view_enrollments: bool = False
    manage_enrollments: bool = False
    view_trainings: bool = False
    manage_trainings: bool = False
    view_competitions: bool = False
    manage_competitions: bool = False
    view_games: bool = False
    manage_games: bool = False
    view_finance: bool = False
    manage_finance: bool = False
    view_monthly_fees: bool = False
    manage_monthly_fees: bool = False
    manage_settings: bool = False
    manage_users: bool = False

    @classmethod
    def keys(cls) -> tuple[str, ...]:
        return tuple(field.name for field in fields(cls))

    @classmethod
    def all_granted(cls) -> "PermissionSet":
        return cls(**{key: True for key in cls.keys()})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PermissionSet":
        """Build a set from a stored key/boolean mapping.

        Unknown keys and non-boolean values are rejected; keys left out of
        the mapping are not granted.
        """
        known = set(cls.keys())
        unknown = sorted(key for key in data if key not in known)
        if unknown:
            raise ValidationFailure("unknown_capability", "Unknown capability keys.", keys=unknown)
        invalid = sorted(key for key, value in data.items() if not isinstance(value, bool))
        if invalid:
            raise ValidationFailure("invalid_capability_value", "Capability values must be booleans.", keys=invalid)
        return cls(**dict(data))

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)

    def granted(self, key: str) -> bool:
        # Resources without a view_/manage_ counterpart simply have no key.
        return bool(getattr(self, key, False))


def _default_for_role(role: Role) -> PermissionSet:
    views = {key: True for key in PermissionSet.keys() if key.startswith("view_")}
    if role is Role.ADMIN:
        return PermissionSet.all_granted()
    if role is Role.MANAGER:
        manages = {f"manage_{resource.value}": True for resource in MANAGER_RESOURCES}
        return PermissionSet(**views, **manages)
    return PermissionSet(**views)


ROLE_DEFAULTS: Dict[Role, PermissionSet] = {role: _default_for_role(role) for role in Role}


def coerce_role(role: Union[Role, str, None]) -> Role:
    if isinstance(role, Role):
        return role
    try:
        return Role((role or "").strip().lower())
    except ValueError:
        logger.debug("Unrecognized role %r, falling back to member defaults", role)
        return Role.MEMBER


def default_permissions(role: Union[Role, str, None]) -> PermissionSet:
    return ROLE_DEFAULTS[coerce_role(role)]


def _is_empty(override: Union[PermissionSet, Mapping[str, Any], None]) -> bool:
    if override is None:
        return True
    if isinstance(override, PermissionSet):
        return False
    return len(override) == 0


def resolve(
    role: Union[Role, str, None],
    is_owner: bool,
    stored_override: Union[PermissionSet, Mapping[str, Any], None] = None,
) -> PermissionSet:
    if is_owner:
        return PermissionSet.all_granted()
    if not _is_empty(stored_override):
        if isinstance(stored_override, PermissionSet):
            return stored_override
        return PermissionSet.from_mapping(stored_override)  # type: ignore[arg-type]
    return default_permissions(role)


def _resource_value(resource: Union[Resource, str]) -> str:
    return Resource(resource).value


@dataclass(frozen=True)
class EffectivePermissions:
    role: Role
    is_owner: bool
    permissions: PermissionSet

    @classmethod
    def for_membership(
        cls,
        role: Union[Role, str, None],
        is_owner: bool,
        stored_override: Union[PermissionSet, Mapping[str, Any], None] = None,
    ) -> "EffectivePermissions":
        return cls(
            role=coerce_role(role),
            is_owner=bool(is_owner),
            permissions=resolve(role, is_owner, stored_override),
        )

    @property
    def is_admin(self) -> bool:
        return self.is_owner or self.role is Role.ADMIN

    def has_permission(self, key: str) -> bool:
        if key not in PermissionSet.keys():
            raise ValueError(f"Unknown capability key: {key}")
        if self.is_owner:
            return True
        return self.permissions.granted(key)

    def can_view(self, resource: Union[Resource, str]) -> bool:
        if self.is_owner:
            return True
        name = _resource_value(resource)
        return self.permissions.granted(f"view_{name}") or self.permissions.granted(f"manage_{name}")

    def can_manage(self, resource: Union[Resource, str]) -> bool:
        if self.is_owner:
            return True
        return self.permissions.granted(f"manage_{_resource_value(resource)}")
