from typing import Callable, Generator, Literal

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..auth.jwt import CurrentUser, get_current_user
from ..config import SessionLocal
from ..constants import TENANT_HEADER
from ..core.errors import NotFoundFailure, ValidationFailure
from ..services.memberships import load_effective_permissions
from ..services.permissions import EffectivePermissions, Resource


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_tenant_id(tenant_id: str = Header(..., alias=TENANT_HEADER)) -> str:
    tenant_id = tenant_id.strip()
    if not tenant_id:
        raise ValidationFailure("missing_field", "Tenant id is required.", field="tenant_id")
    return tenant_id


def get_current_permissions(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    tenant_id: str = Depends(get_tenant_id),
) -> EffectivePermissions:
    try:
        return load_effective_permissions(db, tenant_id, user.id)
    except NotFoundFailure:
        raise HTTPException(status_code=403, detail="Not a member of this tenant")


def require_permission(
    resource: Resource, action: Literal["view", "manage"] = "view"
) -> Callable[..., EffectivePermissions]:
    def permission_checker(
        permissions: EffectivePermissions = Depends(get_current_permissions),
    ) -> EffectivePermissions:
        allowed = permissions.can_manage(resource) if action == "manage" else permissions.can_view(resource)
        if allowed:
            return permissions
        raise HTTPException(status_code=403, detail=f"Operation not permitted: {action}_{resource.value}")

    return permission_checker
