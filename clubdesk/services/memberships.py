from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from ..core.errors import ValidationFailure
from ..models.models import TenantMembership
from . import store
from .permissions import EffectivePermissions, PermissionSet, Role

logger = logging.getLogger(__name__)


def effective_permissions(membership: TenantMembership) -> EffectivePermissions:
    return EffectivePermissions.for_membership(
        membership.role,
        membership.is_owner,
        membership.permissions or None,
    )


def load_effective_permissions(session: Session, tenant_id: str, user_id: str) -> EffectivePermissions:
    membership = store.read_membership(session, tenant_id, user_id)
    return effective_permissions(membership)


def change_member_role(
    session: Session,
    tenant_id: str,
    user_id: str,
    role: str,
    permission_override: Optional[Mapping[str, Any]] = None,
) -> TenantMembership:
    """Store a new role and, optionally, a complete capability override.

    An empty or missing override clears any stored one so the role defaults
    apply again. The owner flag is never changed here.
    """
    try:
        new_role = Role(role)
    except ValueError:
        raise ValidationFailure("unknown_role", "Unknown role.", value=role, allowed=[r.value for r in Role]) from None

    stored: Optional[dict] = None
    if permission_override:
        stored = PermissionSet.from_mapping(permission_override).to_dict()

    membership = store.write_membership_role(session, tenant_id, user_id, new_role.value, stored)
    logger.info(
        "Membership of user %s in tenant %s set to role %s (override: %s)",
        user_id,
        tenant_id,
        new_role.value,
        "yes" if stored else "no",
    )
    return membership
