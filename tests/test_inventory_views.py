"""
Branch inventory view, transfer history and main-branch resolution
"""
import pytest
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from branchstock.core.exceptions import AuthorizationError, ValidationError
from branchstock.models import Branch, Role, StockTransfer, TransferStatus
from branchstock.schemas.branch import BranchCreate, BranchUpdate
from branchstock.services import BranchService, InventoryViewService, Principal, StockService, classify_stock


class TestClassification:

    @pytest.mark.parametrize("quantity,min_quantity,expected", [
        (0, None, "low"),
        (10, None, "low"),
        (11, None, "medium"),
        (49, None, "medium"),
        (50, None, "healthy"),
        (3, 3, "low"),
        (4, 3, "medium"),
        (15, 3, "healthy"),
        # An unset or zero threshold falls back to the default
        (0, 0, "low"),
        (10, 0, "low"),
        (11, 0, "medium"),
    ])
    def test_levels(self, quantity, min_quantity, expected):
        assert classify_stock(quantity, min_quantity) == expected


class TestBranchInventory:

    def test_defaults_to_main_branch(self, db, product, second_product, branches, principals, stock):
        stock(product, branches["A"], 60)
        stock(product, branches["B"], 2)
        view = InventoryViewService.branch_inventory(db, principals["owner"])
        assert view["branch"]["id"] == str(branches["A"].id)

        items = {i["sku"]: i for i in view["items"]}
        assert items["SKU-001"]["quantity"] == 60
        assert items["SKU-001"]["stock_level"] == "healthy"
        # Never stocked here: shown with 0
        assert items["SKU-002"]["quantity"] == 0
        assert items["SKU-002"]["stock_level"] == "low"
        assert items["SKU-002"]["min_quantity"] == 10

    def test_staff_defaults_to_own_branch(self, db, product, branches, principals, stock):
        stock(product, branches["C"], 7)
        view = InventoryViewService.branch_inventory(db, principals["staff"])
        assert view["branch"]["id"] == str(branches["C"].id)
        assert view["items"][0]["quantity"] == 7

    def test_staff_cannot_view_other_branch(self, db, product, branches, principals):
        with pytest.raises(AuthorizationError):
            InventoryViewService.branch_inventory(db, principals["staff"], branch_id=branches["A"].id)

    def test_staff_without_branch_sees_no_inventory(self, db, org, product, branches, stock):
        stock(product, branches["A"], 7)
        unassigned = Principal(user_id=uuid4(), tenant_id=org.id, role=Role.STAFF)
        with pytest.raises(AuthorizationError):
            InventoryViewService.branch_inventory(db, unassigned)

    def test_low_stock_filter_and_search(self, db, product, second_product, branches, principals, stock):
        stock(product, branches["B"], 100)
        stock(second_product, branches["B"], 4)
        view = InventoryViewService.branch_inventory(db, principals["owner"], branch_id=branches["B"].id, low_stock_only=True)
        assert [i["sku"] for i in view["items"]] == ["SKU-002"]

        view = InventoryViewService.branch_inventory(db, principals["owner"], branch_id=branches["B"].id, search="tea")
        assert [i["sku"] for i in view["items"]] == ["SKU-001"]

    def test_tenant_without_branches(self, db, principals):
        # The platform admin belongs to a tenant that has no branches yet
        assert InventoryViewService.branch_inventory(db, principals["admin"]) == {"branch": None, "items": []}

    def test_transferable_products_only_in_stock(self, db, product, second_product, branches, principals, stock):
        stock(product, branches["A"], 5)
        stock(second_product, branches["A"], 0)
        products = InventoryViewService.transferable_products(db, principals["manager"], branches["A"].id)
        assert products == [{"id": str(product.id), "name": "Green Tea", "sku": "SKU-001", "current_stock": 5}]


class TestTransferHistory:

    @pytest.fixture
    def transfers(self, db, org, product, branches, users):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        rows = [
            ("A", "B", TransferStatus.PENDING, 0),
            ("A", "C", TransferStatus.COMPLETED, 1),
            ("B", "A", TransferStatus.REJECTED, 2),
            ("C", "B", TransferStatus.PENDING, 3),
        ]
        created = []
        for source, destination, status, offset in rows:
            t = StockTransfer(
                organization_id=org.id,
                source_branch_id=branches[source].id,
                destination_branch_id=branches[destination].id,
                product_id=product.id,
                quantity=1,
                status=status.value,
                created_by=users["owner"].id,
                created_at=base + timedelta(hours=offset)
            )
            db.add(t)
            created.append(t)
        db.commit()
        return created

    def test_most_recent_first(self, db, principals, transfers):
        rows, total = InventoryViewService.transfer_history(db, principals["owner"])
        assert total == 4
        assert [r["id"] for r in rows] == [str(t.id) for t in reversed(transfers)]
        assert rows[0]["source_branch"]["name"] == "Branch C"
        assert rows[0]["product"]["sku"] == "SKU-001"
        assert rows[0]["requested_by"]["name"] == "Owner"

    def test_status_filter(self, db, principals, transfers):
        rows, total = InventoryViewService.transfer_history(db, principals["owner"], status="pending")
        assert total == 2
        assert all(r["status"] == "PENDING" for r in rows)

        _, total = InventoryViewService.transfer_history(db, principals["owner"], status="ALL")
        assert total == 4

    def test_unknown_status_filter(self, db, principals, transfers):
        with pytest.raises(ValidationError):
            InventoryViewService.transfer_history(db, principals["owner"], status="LOST")

    def test_staff_sees_own_branch_transfers(self, db, principals, transfers):
        rows, total = InventoryViewService.transfer_history(db, principals["staff"])
        assert total == 2
        assert {r["id"] for r in rows} == {str(transfers[1].id), str(transfers[3].id)}

    def test_pagination(self, db, principals, transfers):
        rows, total = InventoryViewService.transfer_history(db, principals["owner"], page=2, per_page=3)
        assert total == 4
        assert [r["id"] for r in rows] == [str(transfers[0].id)]


class TestApiStockListing:

    def test_lowest_quantity_first_and_low_filter(self, db, org, product, second_product, branches, stock):
        stock(product, branches["A"], 30)
        stock(second_product, branches["A"], 2)
        stock(product, branches["B"], 8)
        StockService.set_min_quantity(db, product.id, branches["B"].id, 5)
        db.commit()

        rows, total = InventoryViewService.api_stock_listing(db, org.id)
        assert total == 3
        assert [r["quantity"] for r in rows] == [2, 8, 30]

        rows, total = InventoryViewService.api_stock_listing(db, org.id, low_stock=True)
        assert total == 1
        assert rows[0]["products"]["sku"] == "SKU-002"

        rows, total = InventoryViewService.api_stock_listing(db, org.id, branch_id=branches["B"].id)
        assert total == 1
        assert rows[0]["branches"]["name"] == "Branch B"

    def test_zero_min_quantity_uses_default_threshold(self, db, org, product, branches, stock):
        stock(product, branches["A"], 8)
        StockService.set_min_quantity(db, product.id, branches["A"].id, 0)
        db.commit()

        rows, total = InventoryViewService.api_stock_listing(db, org.id, low_stock=True)
        assert total == 1
        assert rows[0]["stock_level"] == "low"

    def test_other_tenant_sees_nothing(self, db, other_org, product, branches, stock):
        stock(product, branches["A"], 30)
        assert InventoryViewService.api_stock_listing(db, other_org.id) == ([], 0)


class TestMainBranch:

    def test_flagged_branch_wins(self, db, org, branches):
        assert BranchService.resolve_main_branch(db, org.id).id == branches["A"].id

    def test_earliest_flagged_wins_when_several(self, db, org, branches):
        branches["A"].created_at = datetime(2024, 2, 1, tzinfo=timezone.utc)
        branches["C"].created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        branches["C"].is_main = True
        db.commit()
        assert BranchService.resolve_main_branch(db, org.id).id == branches["C"].id

    def test_falls_back_to_earliest_branch(self, db, org, branches):
        branches["A"].is_main = False
        branches["B"].created_at = datetime(2023, 1, 1, tzinfo=timezone.utc)
        db.commit()
        assert BranchService.resolve_main_branch(db, org.id).id == branches["B"].id

    def test_set_main_clears_other_flags(self, db, org, branches, principals):
        BranchService.set_main_branch(db, principals["owner"], branches["B"].id)
        db.expire_all()
        flagged = db.query(Branch).filter(Branch.organization_id == org.id, Branch.is_main == True).all()
        assert [b.id for b in flagged] == [branches["B"].id]

    def test_first_branch_of_tenant_is_main(self, db, principals):
        admin = principals["admin"]
        first = BranchService.create_branch(db, admin, BranchCreate(name="HQ"))
        second = BranchService.create_branch(db, admin, BranchCreate(name="Outlet"))
        assert first.is_main is True
        assert second.is_main is False

    def test_main_branch_cannot_be_deactivated(self, db, branches, principals):
        with pytest.raises(ValidationError):
            BranchService.update_branch(db, principals["owner"], branches["A"].id, BranchUpdate(is_active=False))

    def test_staff_cannot_manage_branches(self, db, principals):
        with pytest.raises(AuthorizationError):
            BranchService.create_branch(db, principals["staff"], BranchCreate(name="Kiosk"))

    def test_ensure_main_branch_is_idempotent(self, db, other_org):
        first = BranchService.ensure_main_branch(db, other_org.id)
        again = BranchService.ensure_main_branch(db, other_org.id)
        assert first.id == again.id
        assert first.is_main is True

    def test_backfill_script_covers_tenants_without_branches(self, db, org, other_org, branches):
        from scripts.create_main_branches import create_main_branches
        assert create_main_branches(db) == 1
        main = BranchService.resolve_main_branch(db, other_org.id)
        assert main.is_main is True
        assert create_main_branches(db) == 0
