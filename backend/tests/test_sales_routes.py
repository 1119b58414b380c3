"""
Sales API tests.

Verifies the query-parameter contract of /api/sales, role checks, and that
HTTP failures leave stock untouched.
"""

import pytest

from stockroom.extensions import db
from stockroom.models import Product, Sale, StockHistory


def _quantity(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id).quantity


def _create(client, headers, product_id, quantity=1, **extra):
    body = {"product": product_id, "quantity": quantity}
    body.update(extra)
    return client.post("/api/sales", json=body, headers=headers)


# =============================================================================
# AUTHENTICATION / ROLES
# =============================================================================


class TestSalesAccess:

    @pytest.mark.parametrize("method", ["get", "post", "put", "delete"])
    def test_requires_auth(self, client, db_session, method):
        resp = getattr(client, method)("/api/sales")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Authentication required"

    def test_bad_token(self, client, db_session):
        resp = client.get("/api/sales", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_staff_cannot_amend_or_cancel(self, client, product, staff_headers):
        sale_id = _create(client, staff_headers, product.id, 2).get_json()["id"]

        resp = client.put(f"/api/sales?id={sale_id}", json={"quantity": 1}, headers=staff_headers)
        assert resp.status_code == 403

        resp = client.delete(f"/api/sales?id={sale_id}", headers=staff_headers)
        assert resp.status_code == 403
        assert _quantity(product.id) == 8

    def test_staff_cannot_read_stats(self, client, db_session, staff_headers):
        resp = client.get("/api/sales?action=stats", headers=staff_headers)
        assert resp.status_code == 403


# =============================================================================
# CREATE
# =============================================================================


class TestCreateSaleRoute:

    def test_create(self, client, product, staff_user, staff_headers):
        resp = _create(
            client, staff_headers, product.id, 3,
            paymentMethod="card", customerName="Ada", discount=20,
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["quantity"] == 3
        assert body["unit_price_cents"] == 100
        assert body["discount_cents"] == 20
        assert body["total_price_cents"] == 280
        assert body["payment_method"] == "card"
        assert body["customer_name"] == "Ada"
        assert body["sold_by_user_id"] == staff_user.id
        assert body["status"] == "completed"
        assert _quantity(product.id) == 7

    def test_sold_by_cannot_be_spoofed(self, client, product, admin_user, staff_user, staff_headers):
        resp = _create(client, staff_headers, product.id, 1, soldBy=admin_user.id)
        assert resp.status_code == 201
        assert resp.get_json()["sold_by_user_id"] == staff_user.id

    def test_string_product_id_accepted(self, client, product, staff_headers):
        resp = _create(client, staff_headers, str(product.id), 1)
        assert resp.status_code == 201

    @pytest.mark.parametrize("product_ref", [None, "abc", 0, -3, True])
    def test_invalid_product_id(self, client, product, staff_headers, product_ref):
        resp = _create(client, staff_headers, product_ref, 1)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid Product ID"

    @pytest.mark.parametrize("quantity", [0, -1, None])
    def test_invalid_quantity(self, client, product, staff_headers, quantity):
        resp = _create(client, staff_headers, product.id, quantity)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid quantity"

    def test_unknown_product(self, client, db_session, staff_headers):
        resp = _create(client, staff_headers, 987654, 1)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Product not found"

    def test_insufficient_stock(self, client, product, staff_headers):
        resp = _create(client, staff_headers, product.id, 11)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Insufficient stock"
        assert _quantity(product.id) == 10
        assert db.session.query(Sale).count() == 0

    def test_unknown_field_rejected(self, client, product, staff_headers):
        resp = _create(client, staff_headers, product.id, 1, totalPrice=1)
        assert resp.status_code == 400


# =============================================================================
# READ
# =============================================================================


class TestReadSalesRoute:

    def test_list_and_get(self, client, product, staff_headers):
        first = _create(client, staff_headers, product.id, 1).get_json()
        second = _create(client, staff_headers, product.id, 2).get_json()

        resp = client.get("/api/sales", headers=staff_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"] == 2
        assert [s["id"] for s in body["items"]] == [second["id"], first["id"]]

        resp = client.get(f"/api/sales?id={first['id']}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["reference"] == first["reference"]

    def test_get_missing(self, client, db_session, staff_headers):
        resp = client.get("/api/sales?id=4040", headers=staff_headers)
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Sale not found"

    def test_get_malformed_id(self, client, db_session, staff_headers):
        resp = client.get("/api/sales?id=abc", headers=staff_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid sale ID format"

    def test_filters(self, client, product, make_product, staff_headers):
        other = make_product(quantity=3)
        _create(client, staff_headers, product.id, 1)
        _create(client, staff_headers, other.id, 1, paymentMethod="transfer")

        resp = client.get(f"/api/sales?product={other.id}", headers=staff_headers)
        assert resp.get_json()["count"] == 1

        resp = client.get("/api/sales?paymentMethod=transfer", headers=staff_headers)
        assert resp.get_json()["items"][0]["product_id"] == other.id

        resp = client.get("/api/sales?from=2000-01-01&to=2999-12-31", headers=staff_headers)
        assert resp.get_json()["count"] == 2

        resp = client.get("/api/sales?from=2999-01-01", headers=staff_headers)
        assert resp.get_json()["count"] == 0

    def test_bad_date_filter(self, client, db_session, staff_headers):
        resp = client.get("/api/sales?from=yesterday", headers=staff_headers)
        assert resp.status_code == 400


# =============================================================================
# AMEND / CANCEL
# =============================================================================


class TestAmendCancelRoute:

    def test_amend_quantity(self, client, product, staff_headers, admin_headers):
        sale_id = _create(client, staff_headers, product.id, 2).get_json()["id"]

        resp = client.put(
            f"/api/sales?id={sale_id}",
            json={"quantity": 4, "customerName": "Grace"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["quantity"] == 4
        assert body["total_price_cents"] == 400
        assert body["customer_name"] == "Grace"
        assert _quantity(product.id) == 6

    def test_amend_missing_id(self, client, db_session, admin_headers):
        resp = client.put("/api/sales", json={"quantity": 1}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Missing sale ID"

    def test_amend_beyond_stock(self, client, product, staff_headers, admin_headers):
        sale_id = _create(client, staff_headers, product.id, 5).get_json()["id"]
        resp = client.put(f"/api/sales?id={sale_id}", json={"quantity": 11}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Insufficient stock"
        assert _quantity(product.id) == 5

    def test_cancel(self, client, product, staff_headers, admin_headers):
        sale_id = _create(client, staff_headers, product.id, 3).get_json()["id"]

        resp = client.delete(f"/api/sales?id={sale_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Sale cancelled successfully"
        assert _quantity(product.id) == 10

        resp = client.delete(f"/api/sales?id={sale_id}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Sale already cancelled or refunded"
        assert _quantity(product.id) == 10

        resp = client.put(f"/api/sales?id={sale_id}", json={"quantity": 1}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Only completed sales can be updated"

    def test_cancel_missing(self, client, db_session, admin_headers):
        resp = client.delete("/api/sales?id=777", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Sale not found"

        resp = client.delete("/api/sales", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Missing sale ID"

    def test_history_trail_for_full_lifecycle(self, client, product, staff_headers, admin_headers):
        sale_id = _create(client, staff_headers, product.id, 2).get_json()["id"]
        client.put(f"/api/sales?id={sale_id}", json={"quantity": 3}, headers=admin_headers)
        client.delete(f"/api/sales?id={sale_id}", headers=admin_headers)

        rows = (
            db.session.query(StockHistory)
            .filter_by(sale_id=sale_id)
            .order_by(StockHistory.id.asc())
            .all()
        )
        assert [(r.action, r.previous_quantity, r.new_quantity) for r in rows] == [
            ("sale", 10, 8),
            ("adjustment", 8, 7),
            ("reversal", 7, 10),
        ]
