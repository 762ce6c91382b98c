"""
Request-boundary dependencies: identity, effective tenant, id parsing
"""
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from branchstock.core import get_db, settings
from branchstock.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from branchstock.core.security import decode_access_token
from branchstock.models import AppUser, Organization
from branchstock.services.access_policy import Principal, parse_role

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def parse_uuid(value, field: str) -> Optional[UUID]:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value}", field=field)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> AppUser:
    """Profile of the token subject; tokens are issued by the external auth service"""
    if not credentials:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise AuthenticationError("Invalid or expired token")

    try:
        user_id = parse_uuid(payload.get("sub"), "sub")
    except ValidationError:
        raise AuthenticationError("Invalid or expired token")
    user = db.query(AppUser).filter(AppUser.id == user_id).first()
    if not user:
        raise AuthenticationError("Unknown user")
    if not user.is_active:
        raise AuthorizationError("User is inactive")
    return user


def resolve_tenant_override(request: Request) -> Optional[str]:
    """Impersonation target supplied out-of-band by the admin console"""
    return request.headers.get(settings.IMPERSONATION_HEADER) or request.cookies.get(settings.IMPERSONATION_COOKIE)


def get_current_principal(
    request: Request,
    user: AppUser = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Principal:
    """
    Resolve the acting principal once per request.

    The effective tenant is the user's own organization, replaced by the
    impersonation override only for platform admins. Everything downstream
    receives it through ``Principal.tenant_id``.
    """
    tenant_id = user.organization_id
    branch_id = user.branch_id

    override = resolve_tenant_override(request)
    if override:
        if user.is_platform_admin:
            override_id = parse_uuid(override, "organization_id")
            if not db.query(Organization.id).filter(Organization.id == override_id).first():
                raise NotFoundError("Organization", override_id)
            if override_id != tenant_id:
                logger.info(f"Platform admin {user.id} acting as tenant {override_id}")
                tenant_id = override_id
                # Own branch assignment means nothing inside another tenant
                branch_id = None
        else:
            logger.warning(f"Ignoring tenant override from non-admin user {user.id}")

    if tenant_id is None:
        raise AuthorizationError("User is not assigned to an organization")

    return Principal(
        user_id=user.id,
        tenant_id=tenant_id,
        role=parse_role(user.role),
        branch_id=branch_id,
        is_elevated_admin=bool(user.is_platform_admin),
        display_name=user.display_name
    )
