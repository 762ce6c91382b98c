"""
Branch Service - tenant branches and main-branch resolution
"""
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from branchstock.core import atomic
from branchstock.core.exceptions import NotFoundError, ValidationError
from branchstock.models import Branch, AuditLog
from branchstock.schemas.branch import BranchCreate, BranchUpdate
from branchstock.services.access_policy import AccessPolicy, Capability, Principal

logger = logging.getLogger(__name__)

DEFAULT_MAIN_BRANCH_NAME = "Main Branch"


class BranchService:
    """Branch directory"""

    @staticmethod
    def list_branches(db: Session, tenant_id: UUID, active_only: bool = True) -> List[Branch]:
        """Main branch first, then by name"""
        query = db.query(Branch).filter(Branch.organization_id == tenant_id)
        if active_only:
            query = query.filter(Branch.is_active == True)
        return query.order_by(Branch.is_main.desc(), Branch.name).all()

    @staticmethod
    def get_branch_for_tenant(db: Session, tenant_id: UUID, branch_id: UUID, active_only: bool = False) -> Branch:
        if branch_id is None:
            raise ValidationError("branch_id is required", field="branch_id")
        branch = db.query(Branch).filter(
            Branch.id == branch_id,
            Branch.organization_id == tenant_id
        ).first()
        if not branch:
            raise NotFoundError("Branch", branch_id)
        if active_only and not branch.is_active:
            raise ValidationError(f"Branch '{branch.name}' is inactive", field="branch_id")
        return branch

    @staticmethod
    def resolve_main_branch(db: Session, tenant_id: UUID) -> Optional[Branch]:
        """
        The branch used when none is selected.

        Zero or several flagged branches are tolerated: the earliest created
        flagged branch wins, otherwise the earliest created active branch.
        """
        main = db.query(Branch).filter(
            Branch.organization_id == tenant_id,
            Branch.is_main == True,
            Branch.is_active == True
        ).order_by(Branch.created_at, Branch.id).first()
        if main:
            return main

        return db.query(Branch).filter(
            Branch.organization_id == tenant_id,
            Branch.is_active == True
        ).order_by(Branch.created_at, Branch.id).first()

    @staticmethod
    def create_branch(db: Session, principal: Principal, data: BranchCreate) -> Branch:
        AccessPolicy.require(principal, Capability.MANAGE_BRANCHES)
        if not data.name or not data.name.strip():
            raise ValidationError("Branch name is required", field="name")

        has_branches = db.query(Branch.id).filter(Branch.organization_id == principal.tenant_id).first() is not None
        branch = Branch(
            organization_id=principal.tenant_id,
            name=data.name.strip(),
            code=data.code,
            address=data.address,
            phone=data.phone,
            # First branch of a tenant becomes its main branch
            is_main=not has_branches
        )
        with atomic(db):
            db.add(branch)
            db.flush()
            db.add(AuditLog(
                organization_id=principal.tenant_id,
                table_name="branch",
                record_id=str(branch.id),
                action="INSERT",
                performed_by=principal.user_id,
                after_data={"name": branch.name, "is_main": branch.is_main}
            ))
        logger.info(f"Created branch {branch.name} for tenant {principal.tenant_id}")
        return branch

    @staticmethod
    def update_branch(db: Session, principal: Principal, branch_id: UUID, data: BranchUpdate) -> Branch:
        AccessPolicy.require(principal, Capability.MANAGE_BRANCHES)
        branch = BranchService.get_branch_for_tenant(db, principal.tenant_id, branch_id)
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Branch name is required", field="name")
        if changes.get("is_active") is False and branch.is_main:
            raise ValidationError("The main branch cannot be deactivated", field="is_active")

        with atomic(db):
            for field, value in changes.items():
                setattr(branch, field, value.strip() if field == "name" else value)
        logger.info(f"Updated branch {branch.id}: {sorted(changes)}")
        return branch

    @staticmethod
    def set_main_branch(db: Session, principal: Principal, branch_id: UUID) -> Branch:
        """Flag one branch as main and clear the flag on every other branch of the tenant"""
        AccessPolicy.require(principal, Capability.MANAGE_BRANCHES)
        branch = BranchService.get_branch_for_tenant(db, principal.tenant_id, branch_id, active_only=True)

        with atomic(db):
            db.query(Branch).filter(
                Branch.organization_id == principal.tenant_id,
                Branch.id != branch.id,
                Branch.is_main == True
            ).update({Branch.is_main: False}, synchronize_session="fetch")
            branch.is_main = True
            db.add(AuditLog(
                organization_id=principal.tenant_id,
                table_name="branch",
                record_id=str(branch.id),
                action="UPDATE",
                performed_by=principal.user_id,
                after_data={"is_main": True}
            ))
        logger.info(f"Branch {branch.name} is now main for tenant {principal.tenant_id}")
        return branch

    @staticmethod
    def ensure_main_branch(db: Session, tenant_id: UUID, name: str = DEFAULT_MAIN_BRANCH_NAME) -> Branch:
        """Create the default main branch for a tenant that has none"""
        existing = BranchService.resolve_main_branch(db, tenant_id)
        if existing:
            return existing

        branch = Branch(organization_id=tenant_id, name=name, code="MAIN", is_main=True)
        with atomic(db):
            db.add(branch)
        logger.info(f"Created main branch for tenant {tenant_id}")
        return branch
