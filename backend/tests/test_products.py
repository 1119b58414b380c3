"""
Product API tests.

Verifies:
- Creation writes the initial restock row (and only when quantity > 0)
- Quantity edits go through the stock history, other edits do not
- Soft delete hides products and blocks sales
"""

import pytest

from stockroom.extensions import db
from stockroom.models import Category, Product, StockHistory, Supplier


def _history(product_id):
    return (
        db.session.query(StockHistory)
        .filter_by(product_id=product_id)
        .order_by(StockHistory.id.asc())
        .all()
    )


def _new_product(client, headers, **overrides):
    body = {
        "sku": "SKU-NEW",
        "name": "Gadget",
        "quantity": 12,
        "minimumStock": 3,
        "costPrice": 400,
        "sellingPrice": 750,
    }
    body.update(overrides)
    return client.post("/api/products", json=body, headers=headers)


# =============================================================================
# CREATE
# =============================================================================


class TestCreateProduct:

    def test_create_writes_initial_restock(self, client, admin_user, admin_headers):
        resp = _new_product(client, admin_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["quantity"] == 12
        assert body["initial_quantity"] == 12
        assert body["selling_price_cents"] == 750
        assert body["minimum_stock"] == 3

        rows = _history(body["id"])
        assert len(rows) == 1
        assert (rows[0].previous_quantity, rows[0].new_quantity) == (0, 12)
        assert rows[0].action == "restock"
        assert rows[0].note == "Initial stock on product creation"
        assert rows[0].changed_by_user_id == admin_user.id

    def test_zero_quantity_writes_no_history(self, client, admin_headers):
        resp = _new_product(client, admin_headers, quantity=0)
        assert resp.status_code == 201
        assert _history(resp.get_json()["id"]) == []

    def test_missing_required_fields(self, client, db_session, admin_headers):
        resp = client.post("/api/products", json={"name": "No SKU"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "sku" in resp.get_json()["message"]

    def test_negative_values_rejected(self, client, db_session, admin_headers):
        assert _new_product(client, admin_headers, quantity=-1).status_code == 400
        assert _new_product(client, admin_headers, sellingPrice=-5).status_code == 400
        assert _new_product(client, admin_headers, minimumStock=-2).status_code == 400
        assert db.session.query(Product).count() == 0

    def test_decimal_price_rejected(self, client, db_session, admin_headers):
        resp = _new_product(client, admin_headers, sellingPrice=7.5)
        assert resp.status_code == 400

    def test_duplicate_sku(self, client, db_session, admin_headers):
        assert _new_product(client, admin_headers).status_code == 201
        resp = _new_product(client, admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["message"] == "SKU already exists"

    def test_barcode_unique_but_optional(self, client, db_session, admin_headers):
        assert _new_product(client, admin_headers, sku="A", barcode="").status_code == 201
        assert _new_product(client, admin_headers, sku="B", barcode="  ").status_code == 201
        assert _new_product(client, admin_headers, sku="C", barcode="4006381333931").status_code == 201

        resp = _new_product(client, admin_headers, sku="D", barcode="4006381333931")
        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Barcode already exists"

    def test_category_and_supplier_names(self, client, db_session, admin_headers):
        category = Category(name="Hardware")
        supplier = Supplier(name="Acme Supply")
        db.session.add_all([category, supplier])
        db.session.commit()

        resp = _new_product(client, admin_headers, category=category.id, supplier=supplier.id)
        body = resp.get_json()
        assert body["category_name"] == "Hardware"
        assert body["supplier_name"] == "Acme Supply"

    def test_unknown_category(self, client, db_session, admin_headers):
        resp = _new_product(client, admin_headers, category=999)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Category not found"

    def test_staff_cannot_create(self, client, db_session, staff_headers):
        assert _new_product(client, staff_headers).status_code == 403


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateProduct:

    def test_quantity_up_is_restock(self, client, product, admin_headers):
        resp = client.put(f"/api/products/{product.id}", json={"quantity": 14}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["quantity"] == 14

        last = _history(product.id)[-1]
        assert (last.previous_quantity, last.new_quantity, last.action) == (10, 14, "restock")
        assert last.note == "Quantity updated via product edit"

    def test_quantity_down_is_adjustment(self, client, product, admin_headers):
        client.put(f"/api/products/{product.id}", json={"quantity": 4}, headers=admin_headers)
        last = _history(product.id)[-1]
        assert (last.previous_quantity, last.new_quantity, last.action) == (10, 4, "adjustment")

    def test_other_fields_write_no_history(self, client, product, admin_headers):
        before = len(_history(product.id))
        resp = client.put(
            f"/api/products/{product.id}",
            json={"name": "Widget Pro", "sellingPrice": 120, "quantity": 10},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["name"] == "Widget Pro"
        assert resp.get_json()["selling_price_cents"] == 120
        assert len(_history(product.id)) == before

    def test_initial_quantity_not_writable(self, client, product, admin_headers):
        resp = client.put(f"/api/products/{product.id}", json={"initial_quantity": 0}, headers=admin_headers)
        assert resp.status_code == 400

    def test_missing_product(self, client, db_session, admin_headers):
        resp = client.put("/api/products/9999", json={"name": "Ghost"}, headers=admin_headers)
        assert resp.status_code == 404


# =============================================================================
# READ / SOFT DELETE
# =============================================================================


class TestProductListing:

    def test_soft_delete_hides_product(self, client, product, admin_headers, staff_headers):
        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 200

        assert client.get("/api/products", headers=staff_headers).get_json()["count"] == 0
        # Admins can still see it
        resp = client.get("/api/products?include_inactive=1", headers=admin_headers)
        assert resp.get_json()["count"] == 1
        # Staff cannot widen the listing
        resp = client.get("/api/products?include_inactive=1", headers=staff_headers)
        assert resp.get_json()["count"] == 0

        resp = client.post("/api/sales", json={"product": product.id, "quantity": 1}, headers=staff_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Product not found"

        # History is untouched
        assert len(_history(product.id)) == 1

    def test_pagination(self, client, make_product, staff_headers):
        for _ in range(5):
            make_product()
        resp = client.get("/api/products?page=2&per_page=2", headers=staff_headers)
        body = resp.get_json()
        assert body["count"] == 2
        assert body["pagination"]["total"] == 5
        assert body["pagination"]["total_pages"] == 3
        assert body["pagination"]["has_prev"] is True

    def test_get_single(self, client, product, staff_headers):
        resp = client.get(f"/api/products/{product.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sku"] == "SKU-001"
        assert client.get("/api/products/424242", headers=staff_headers).status_code == 404


# =============================================================================
# STOCK CORRECTIONS
# =============================================================================


class TestStockCorrections:

    def test_restock(self, client, product, admin_headers):
        resp = client.post(
            f"/api/products/{product.id}/restock",
            json={"quantity": 6, "note": "Delivery #42"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["product"]["quantity"] == 16
        assert body["history"]["note"] == "Delivery #42"
        assert body["history"]["changed_by"] == "admin"

    @pytest.mark.parametrize("quantity", [0, -1, "x", None])
    def test_restock_invalid(self, client, product, admin_headers, quantity):
        resp = client.post(f"/api/products/{product.id}/restock", json={"quantity": quantity}, headers=admin_headers)
        assert resp.status_code == 400

    def test_adjust_below_zero(self, client, product, admin_headers):
        resp = client.post(f"/api/products/{product.id}/adjust", json={"delta": -11}, headers=admin_headers)
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["message"] == "Insufficient stock"
        assert body["details"]["available"] == 10

    def test_adjust_unknown_product(self, client, db_session, admin_headers):
        resp = client.post("/api/products/5555/adjust", json={"delta": 1}, headers=admin_headers)
        assert resp.status_code == 404

    def test_staff_cannot_adjust(self, client, product, staff_headers):
        resp = client.post(f"/api/products/{product.id}/adjust", json={"delta": -1}, headers=staff_headers)
        assert resp.status_code == 403

    def test_low_stock(self, client, product, make_product, admin_headers):
        make_product(quantity=1, minimum_stock=5)
        make_product(quantity=50, minimum_stock=5)
        client.post(f"/api/products/{product.id}/adjust", json={"delta": -8}, headers=admin_headers)

        resp = client.get("/api/products/low-stock", headers=admin_headers)
        assert resp.status_code == 200
        quantities = [p["quantity"] for p in resp.get_json()["items"]]
        assert quantities == [1, 2]
