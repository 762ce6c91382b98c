"""
Give every organization without a branch its default main branch.

Usage: python scripts/create_main_branches.py
"""
import os
import sys

sys.path.append(os.getcwd())

from sqlalchemy.orm import Session

from branchstock.core import SessionLocal
from branchstock.core.exceptions import BranchStockError
from branchstock.models import Branch, Organization
from branchstock.services import BranchService


def create_main_branches(db: Session) -> int:
    """Returns the number of branches created"""
    orgs = db.query(Organization).order_by(Organization.name).all()
    print(f"Found {len(orgs)} organizations")

    created = 0
    for org in orgs:
        has_branch = db.query(Branch.id).filter(Branch.organization_id == org.id).first()
        if has_branch:
            continue
        print(f"Creating main branch for: {org.name}")
        try:
            BranchService.ensure_main_branch(db, org.id)
            created += 1
        except BranchStockError as e:
            print(f"Error creating main branch for {org.name}: {e}")
    return created


if __name__ == "__main__":
    db = SessionLocal()
    try:
        count = create_main_branches(db)
        print(f"Done. Created {count} main branches")
    finally:
        db.close()
