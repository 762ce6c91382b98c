"""
HTTP surface: identity resolution, impersonation, transfer and inventory endpoints
"""
from datetime import timedelta

from branchstock.core.security import create_access_token


def transfer_payload(source, destination, product, quantity=5):
    return {
        "source_branch_id": str(source.id),
        "destination_branch_id": str(destination.id),
        "product_id": str(product.id),
        "quantity": quantity,
    }


class TestIdentity:

    def test_missing_token(self, client):
        response = client.get("/api/transfers")
        assert response.status_code == 401
        assert response.json()["code"] == "NOT_AUTHENTICATED"

    def test_garbage_token(self, client):
        response = client.get("/api/transfers", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_token_for_unknown_user(self, client, users):
        token = create_access_token({"sub": "7c0d6a4e-65c1-4f39-8a53-3f8a2f35b9a1"}, expires_delta=timedelta(minutes=5))
        response = client.get("/api/transfers", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_inactive_user(self, client, db, users, headers):
        users["manager"].is_active = False
        db.commit()
        response = client.get("/api/transfers", headers=headers["manager"])
        assert response.status_code == 403


class TestImpersonation:

    def test_admin_header_switches_tenant(self, client, org, branches, users, make_headers):
        response = client.get(
            "/api/branches",
            headers=make_headers(users["admin"], **{"X-Impersonate-Org-Id": str(org.id)})
        )
        assert response.status_code == 200
        names = [b["name"] for b in response.json()["branches"]]
        assert names == ["Branch A", "Branch B", "Branch C"]

    def test_admin_cookie_switches_tenant(self, client, org, branches, users, make_headers):
        client.cookies.set("x-impersonate-org-id-v2", str(org.id))
        response = client.get("/api/branches", headers=make_headers(users["admin"]))
        client.cookies.clear()
        assert response.status_code == 200
        assert len(response.json()["branches"]) == 3

    def test_admin_without_override_sees_own_tenant(self, client, branches, users, headers):
        response = client.get("/api/branches", headers=headers["admin"])
        assert response.status_code == 200
        assert response.json()["branches"] == []

    def test_non_admin_override_ignored(self, client, other_org, branches, headers):
        response = client.get(
            "/api/branches",
            headers={**headers["manager"], "X-Impersonate-Org-Id": str(other_org.id)}
        )
        assert response.status_code == 200
        assert len(response.json()["branches"]) == 3

    def test_override_to_unknown_tenant(self, client, users, make_headers):
        response = client.get(
            "/api/branches",
            headers=make_headers(users["admin"], **{"X-Impersonate-Org-Id": "7c0d6a4e-65c1-4f39-8a53-3f8a2f35b9a1"})
        )
        assert response.status_code == 404


class TestTransferEndpoints:

    def test_full_flow(self, client, product, branches, headers, stock):
        stock(product, branches["A"], 20)

        response = client.post("/api/transfers", json=transfer_payload(branches["A"], branches["B"], product), headers=headers["staff_a"])
        assert response.status_code == 201
        transfer = response.json()
        assert transfer["status"] == "PENDING"

        response = client.post(f"/api/transfers/{transfer['id']}/approve", headers=headers["manager"])
        assert response.status_code == 200
        assert response.json()["status"] == "APPROVED"

        response = client.post(f"/api/transfers/{transfer['id']}/complete", headers=headers["manager"])
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"

        view = client.get(f"/api/inventory?branch_id={branches['A'].id}", headers=headers["owner"]).json()
        assert view["items"][0]["quantity"] == 15
        view = client.get(f"/api/inventory?branch_id={branches['B'].id}", headers=headers["owner"]).json()
        assert view["items"][0]["quantity"] == 5

        response = client.post(f"/api/transfers/{transfer['id']}/complete", headers=headers["manager"])
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    def test_insufficient_stock_is_conflict(self, client, product, branches, headers, stock):
        stock(product, branches["A"], 3)
        response = client.post(
            "/api/transfers", json=transfer_payload(branches["A"], branches["B"], product, 10), headers=headers["owner"]
        )
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["available"] == 3
        assert body["requested"] == 10

    def test_same_branch_is_bad_request(self, client, product, branches, headers, stock):
        stock(product, branches["A"], 3)
        response = client.post(
            "/api/transfers", json=transfer_payload(branches["A"], branches["A"], product, 1), headers=headers["owner"]
        )
        assert response.status_code == 400

    def test_missing_field_is_bad_request(self, client, branches, headers):
        response = client.post(
            "/api/transfers",
            json={"source_branch_id": str(branches["A"].id), "quantity": 1},
            headers=headers["owner"]
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_staff_other_branch_forbidden(self, client, product, branches, headers, stock):
        stock(product, branches["A"], 20)
        response = client.post(
            "/api/transfers", json=transfer_payload(branches["A"], branches["B"], product, 1), headers=headers["staff"]
        )
        assert response.status_code == 403

    def test_unknown_transfer(self, client, headers, branches):
        response = client.get("/api/transfers/7c0d6a4e-65c1-4f39-8a53-3f8a2f35b9a1", headers=headers["owner"])
        assert response.status_code == 404

    def test_status_endpoint_and_listing(self, client, product, branches, headers, stock):
        stock(product, branches["A"], 20)
        created = client.post(
            "/api/transfers", json=transfer_payload(branches["A"], branches["C"], product, 2), headers=headers["owner"]
        ).json()

        response = client.post(f"/api/transfers/{created['id']}/status", json={"status": "REJECTED"}, headers=headers["owner"])
        assert response.status_code == 200
        assert response.json()["status"] == "REJECTED"

        listing = client.get("/api/transfers?status=REJECTED", headers=headers["staff"]).json()
        assert listing["total"] == 1
        assert listing["transfers"][0]["destination_branch"]["name"] == "Branch C"

        listing = client.get("/api/transfers?status=PENDING", headers=headers["owner"]).json()
        assert listing["total"] == 0

    def test_requester_cancels(self, client, product, branches, headers, stock):
        stock(product, branches["C"], 4)
        created = client.post(
            "/api/transfers", json=transfer_payload(branches["C"], branches["A"], product, 4), headers=headers["staff"]
        ).json()
        response = client.post(f"/api/transfers/{created['id']}/cancel", headers=headers["staff"])
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"


class TestInventoryEndpoints:

    def test_adjust_and_min_quantity(self, client, product, branches, headers):
        response = client.post("/api/inventory/adjust", json={
            "product_id": str(product.id),
            "branch_id": str(branches["B"].id),
            "quantity": 12,
            "adjustment_type": "add",
        }, headers=headers["manager"])
        assert response.status_code == 200
        assert response.json()["quantity"] == 12

        response = client.put("/api/inventory/min-quantity", json={
            "product_id": str(product.id),
            "branch_id": str(branches["B"].id),
            "min_quantity": 20,
        }, headers=headers["manager"])
        assert response.status_code == 200

        view = client.get(
            f"/api/inventory?branch_id={branches['B'].id}&low_stock=true", headers=headers["manager"]
        ).json()
        assert view["items"][0]["stock_level"] == "low"

    def test_staff_adjust_forbidden(self, client, product, branches, headers):
        response = client.post("/api/inventory/adjust", json={
            "product_id": str(product.id),
            "branch_id": str(branches["C"].id),
            "quantity": 1,
            "adjustment_type": "add",
        }, headers=headers["staff"])
        assert response.status_code == 403

    def test_sale_over_stock_is_conflict(self, client, product, branches, headers, stock):
        stock(product, branches["C"], 1)
        response = client.post("/api/inventory/sale", json={
            "product_id": str(product.id),
            "branch_id": str(branches["C"].id),
            "quantity": 2,
        }, headers=headers["staff"])
        assert response.status_code == 409

    def test_transferable_products(self, client, product, branches, headers, stock):
        stock(product, branches["C"], 3)
        response = client.get(f"/api/inventory/transferable?source_branch_id={branches['C'].id}", headers=headers["staff"])
        assert response.status_code == 200
        assert response.json()["products"][0]["current_stock"] == 3

    def test_malformed_branch_id(self, client, headers, branches):
        response = client.get("/api/inventory?branch_id=nope", headers=headers["owner"])
        assert response.status_code == 400


class TestBranchAndProductEndpoints:

    def test_branch_listing_marks_main_and_sources(self, client, branches, headers):
        body = client.get("/api/branches", headers=headers["staff"]).json()
        assert body["main_branch_id"] == str(branches["A"].id)
        assert body["transfer_source_ids"] == [str(branches["C"].id)]

    def test_set_main_branch(self, client, branches, headers):
        response = client.post(f"/api/branches/{branches['B'].id}/main", headers=headers["owner"])
        assert response.status_code == 200
        body = client.get("/api/branches", headers=headers["owner"]).json()
        assert body["main_branch_id"] == str(branches["B"].id)
        assert [b["name"] for b in body["branches"] if b["is_main"]] == ["Branch B"]

    def test_create_product_duplicate_sku(self, client, product, headers):
        response = client.post("/api/products", json={"name": "Tea again", "sku": "SKU-001"}, headers=headers["owner"])
        assert response.status_code == 400

        response = client.post("/api/products", json={"name": "Oolong", "sku": "SKU-003"}, headers=headers["owner"])
        assert response.status_code == 201
        listing = client.get("/api/products?search=oolong", headers=headers["staff"]).json()
        assert listing["total"] == 1


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
