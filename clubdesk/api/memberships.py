from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_current_permissions, get_db, get_tenant_id, require_permission
from ..auth.jwt import CurrentUser, get_current_user
from ..models.models import TenantMembership
from ..schemas.schemas import MembershipRead, MembershipRoleUpdate
from ..services import store
from ..services.audit import audit_log
from ..services.memberships import change_member_role, effective_permissions
from ..services.permissions import EffectivePermissions, Resource

router = APIRouter()


def _membership_read(membership: TenantMembership) -> MembershipRead:
    effective = effective_permissions(membership)
    return MembershipRead(
        tenant_id=membership.tenant_id,
        user_id=membership.user_id,
        role=effective.role.value,
        is_owner=effective.is_owner,
        is_admin=effective.is_admin,
        has_override=bool(membership.permissions),
        permissions=effective.permissions.to_dict(),
    )


@router.get("/me", response_model=MembershipRead)
def read_own_membership(
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    user: CurrentUser = Depends(get_current_user),
    _: EffectivePermissions = Depends(get_current_permissions),
) -> MembershipRead:
    return _membership_read(store.read_membership(db, tenant_id, user.id))


@router.get("/{user_id}", response_model=MembershipRead)
def read_membership(
    user_id: str,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _: object = Depends(require_permission(Resource.USERS, "manage")),
) -> MembershipRead:
    return _membership_read(store.read_membership(db, tenant_id, user_id))


@router.put("/{user_id}/role", response_model=MembershipRead)
def update_membership_role(
    user_id: str,
    payload: MembershipRoleUpdate,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: CurrentUser = Depends(get_current_user),
    _: object = Depends(require_permission(Resource.USERS, "manage")),
) -> MembershipRead:
    current = store.read_membership(db, tenant_id, user_id)
    before = {"role": current.role, "permissions": current.permissions}
    membership = change_member_role(db, tenant_id, user_id, payload.role, payload.permissions)
    audit_log(
        db_session=db,
        tenant_id=tenant_id,
        actor_user_id=actor.id,
        action="memberships.role.update",
        target_entity_type="TenantMembership",
        target_entity_id=membership.id,
        before=before,
        after={"role": membership.role, "permissions": membership.permissions},
    )
    return _membership_read(membership)
