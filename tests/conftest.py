"""
Pytest fixtures for the branchstock test suite.

Provides:
- A throwaway SQLite database, recreated for every test
- A tenant with three branches, users of every role and two products
- Principals and bearer headers for each user
"""
import os
import shutil
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="branchstock-tests-")
os.environ["DATABASE_URL_OVERRIDE"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "branchstock-test-secret"

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient

from branchstock.core import Base, SessionLocal, engine
from branchstock.core.security import create_access_token
from branchstock.models import AppUser, Branch, Organization, Product, Role
from branchstock.services import Principal, StockService
from branchstock.services.access_policy import parse_role


@pytest.fixture(scope="session", autouse=True)
def _cleanup_db_dir():
    yield
    engine.dispose()
    shutil.rmtree(_DB_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def other_session():
    """A second, independent session on the same database"""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from main import app
    with TestClient(app) as test_client:
        yield test_client


# ===================== Tenant data =====================

@pytest.fixture
def org(db):
    organization = Organization(code="ORG1", name="Test Shop")
    db.add(organization)
    db.commit()
    return organization


@pytest.fixture
def other_org(db):
    organization = Organization(code="ORG2", name="Other Shop")
    db.add(organization)
    db.commit()
    return organization


@pytest.fixture
def branches(db, org):
    """A (main), B and C"""
    a = Branch(organization_id=org.id, code="A", name="Branch A", is_main=True)
    b = Branch(organization_id=org.id, code="B", name="Branch B")
    c = Branch(organization_id=org.id, code="C", name="Branch C")
    db.add_all([a, b, c])
    db.commit()
    return {"A": a, "B": b, "C": c}


@pytest.fixture
def product(db, org):
    item = Product(organization_id=org.id, sku="SKU-001", barcode="8850001", name="Green Tea", selling_price=25)
    db.add(item)
    db.commit()
    return item


@pytest.fixture
def second_product(db, org):
    item = Product(organization_id=org.id, sku="SKU-002", barcode="8850002", name="Black Coffee", selling_price=40)
    db.add(item)
    db.commit()
    return item


def make_user(db, org, username, role, branch=None, is_platform_admin=False):
    user = AppUser(
        username=username,
        first_name=username.capitalize(),
        organization_id=org.id if org else None,
        branch_id=branch.id if branch else None,
        role=role.value,
        is_platform_admin=is_platform_admin
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def users(db, org, other_org, branches):
    return {
        "owner": make_user(db, org, "owner", Role.OWNER),
        "manager": make_user(db, org, "manager", Role.MANAGER),
        "staff": make_user(db, org, "staff", Role.STAFF, branch=branches["C"]),
        "staff_a": make_user(db, org, "staffa", Role.STAFF, branch=branches["A"]),
        "admin": make_user(db, other_org, "admin", Role.STAFF, is_platform_admin=True),
    }


def principal_for(user) -> Principal:
    return Principal(
        user_id=user.id,
        tenant_id=user.organization_id,
        role=parse_role(user.role),
        branch_id=user.branch_id,
        is_elevated_admin=user.is_platform_admin,
        display_name=user.display_name
    )


@pytest.fixture
def principals(users):
    return {name: principal_for(user) for name, user in users.items()}


def auth_headers(user, **extra) -> dict:
    token = create_access_token({"sub": str(user.id)}, expires_delta=timedelta(minutes=5))
    headers = {"Authorization": f"Bearer {token}"}
    headers.update(extra)
    return headers


@pytest.fixture
def headers(users):
    return {name: auth_headers(user) for name, user in users.items()}


@pytest.fixture
def stock(db):
    """Set an opening balance: stock(product, branch, quantity)"""
    def _set(product, branch, quantity):
        record = StockService.set_quantity(db, product.id, branch.id, quantity)
        db.commit()
        return record
    return _set


@pytest.fixture
def make_headers():
    """Bearer headers for any user, with optional extra headers"""
    return auth_headers
