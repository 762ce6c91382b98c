"""
Access Policy - role capabilities and branch scope

Roles form a closed set. Each role maps to a fixed set of capabilities plus a
branch scope (ALL branches of the tenant, or only the principal's OWN branch).
Platform admins acting on behalf of a tenant get the owner capabilities.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional
from uuid import UUID
import enum
import logging

from branchstock.core.exceptions import AuthorizationError
from branchstock.models import Role

logger = logging.getLogger(__name__)


class Capability(str, enum.Enum):
    CREATE_TRANSFER = "create_transfer"
    APPROVE_TRANSFER = "approve_transfer"
    COMPLETE_TRANSFER = "complete_transfer"
    CANCEL_ANY_TRANSFER = "cancel_any_transfer"
    ADJUST_STOCK = "adjust_stock"
    MANAGE_BRANCHES = "manage_branches"
    MANAGE_API_KEYS = "manage_api_keys"


class BranchScope(str, enum.Enum):
    ALL = "all"
    OWN = "own"


@dataclass(frozen=True)
class RolePolicy:
    capabilities: FrozenSet[Capability]
    branch_scope: BranchScope


_ELEVATED = frozenset(Capability)

ROLE_POLICIES: Dict[Role, RolePolicy] = {
    Role.OWNER: RolePolicy(capabilities=_ELEVATED, branch_scope=BranchScope.ALL),
    Role.MANAGER: RolePolicy(
        capabilities=frozenset({
            Capability.CREATE_TRANSFER,
            Capability.APPROVE_TRANSFER,
            Capability.COMPLETE_TRANSFER,
            Capability.CANCEL_ANY_TRANSFER,
            Capability.ADJUST_STOCK,
            Capability.MANAGE_BRANCHES,
        }),
        branch_scope=BranchScope.ALL,
    ),
    Role.STAFF: RolePolicy(
        capabilities=frozenset({Capability.CREATE_TRANSFER}),
        branch_scope=BranchScope.OWN,
    ),
}


@dataclass(frozen=True)
class Principal:
    """
    Acting identity for one request.

    ``tenant_id`` is the effective tenant: the principal's own organization,
    or the impersonated one when a platform admin supplied an override.
    """
    user_id: UUID
    tenant_id: UUID
    role: Role
    branch_id: Optional[UUID] = None
    is_elevated_admin: bool = False
    display_name: str = ""


def parse_role(value: str) -> Role:
    """Map a stored role string onto the closed role set; unknown values get staff rights"""
    try:
        return Role(str(value).lower())
    except ValueError:
        logger.warning(f"Unknown role '{value}', treating as staff")
        return Role.STAFF


def policy_for(principal: Principal) -> RolePolicy:
    if principal.is_elevated_admin:
        return ROLE_POLICIES[Role.OWNER]
    return ROLE_POLICIES[principal.role]


class AccessPolicy:
    """Authorization decisions for inventory and transfer actions"""

    @staticmethod
    def can(principal: Principal, capability: Capability) -> bool:
        return capability in policy_for(principal).capabilities

    @staticmethod
    def require(principal: Principal, capability: Capability) -> None:
        if not AccessPolicy.can(principal, capability):
            logger.warning(f"Denied {capability.value} for user {principal.user_id} ({principal.role.value})")
            raise AuthorizationError(f"Role '{principal.role.value}' is not allowed to {capability.value.replace('_', ' ')}")

    @staticmethod
    def has_all_branches(principal: Principal) -> bool:
        return policy_for(principal).branch_scope == BranchScope.ALL

    @staticmethod
    def originable_branch_ids(principal: Principal, tenant_branch_ids: Iterable[UUID]) -> List[UUID]:
        """Branches the principal may send a transfer from"""
        if not AccessPolicy.can(principal, Capability.CREATE_TRANSFER):
            return []
        branch_ids = list(tenant_branch_ids)
        if AccessPolicy.has_all_branches(principal):
            return branch_ids
        return [b for b in branch_ids if principal.branch_id is not None and b == principal.branch_id]

    @staticmethod
    def can_access_branch(principal: Principal, branch_id: UUID) -> bool:
        if AccessPolicy.has_all_branches(principal):
            return True
        return principal.branch_id is not None and principal.branch_id == branch_id

    @staticmethod
    def require_branch_access(principal: Principal, branch_id: UUID) -> None:
        if not AccessPolicy.can_access_branch(principal, branch_id):
            logger.warning(f"Denied branch {branch_id} for user {principal.user_id}")
            raise AuthorizationError("Not allowed to act on this branch")

    @staticmethod
    def require_transfer_source(principal: Principal, source_branch_id: UUID) -> None:
        """Checked before any store access when a transfer is requested"""
        AccessPolicy.require(principal, Capability.CREATE_TRANSFER)
        if not AccessPolicy.can_access_branch(principal, source_branch_id):
            logger.warning(f"Denied transfer source {source_branch_id} for user {principal.user_id}")
            raise AuthorizationError("Not allowed to transfer stock out of this branch")
