"""
CLI command tests (flask system / users / stock / catalog).
"""

from sqlalchemy import text

from stockroom.extensions import db
from stockroom.models import Category, Supplier, User


class TestSystemInit:

    def test_init_creates_admin_once(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0, result.output
        admin = db.session.query(User).filter_by(username="admin").one()
        assert admin.role == "admin"

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0
        assert "already exists" in result.output
        assert db.session.query(User).count() == 1


class TestUserCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--username", "manager",
            "--email", "manager@stockroom.test",
            "--password", "Password123!",
            "--role", "admin",
        ])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=["users", "list"])
        assert "manager" in result.output
        assert "admin" in result.output

    def test_weak_password_fails(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--username", "weak",
            "--email", "weak@stockroom.test",
            "--password", "short",
        ])
        assert result.exit_code != 0
        assert db.session.query(User).count() == 0

    def test_unknown_role_rejected(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--username", "boss",
            "--email", "boss@stockroom.test",
            "--password", "Password123!",
            "--role", "owner",
        ])
        assert result.exit_code == 2


class TestStockVerify:

    def test_consistent(self, app, product):
        result = app.test_cli_runner().invoke(args=["stock", "verify"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_inconsistent_exits_nonzero(self, app, product):
        db.session.execute(text("UPDATE products SET quantity = 3 WHERE id = :id"), {"id": product.id})
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["stock", "verify", "--product-id", str(product.id)])
        assert result.exit_code == 1
        assert "FAIL" in result.output


class TestCatalogCommands:

    def test_seeded_category_can_be_referenced(self, app, client, admin_headers):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["catalog", "add-category", "Hardware", "--description", "Tools"])
        assert result.exit_code == 0, result.output
        result = runner.invoke(args=["catalog", "add-supplier", "Acme Supply", "--email", "sales@acme.test"])
        assert result.exit_code == 0, result.output

        category = db.session.query(Category).filter_by(name="Hardware").one()
        supplier = db.session.query(Supplier).filter_by(name="Acme Supply").one()

        resp = client.post("/api/products", json={
            "sku": "HW-1",
            "name": "Hammer",
            "sellingPrice": 1500,
            "category": category.id,
            "supplier": supplier.id,
        }, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.get_json()["category_name"] == "Hardware"
        assert resp.get_json()["supplier_name"] == "Acme Supply"

        result = runner.invoke(args=["catalog", "list"])
        assert "Hardware" in result.output
        assert "Acme Supply" in result.output

    def test_duplicate_category_fails(self, app, db_session):
        runner = app.test_cli_runner()
        assert runner.invoke(args=["catalog", "add-category", "Hardware"]).exit_code == 0

        result = runner.invoke(args=["catalog", "add-category", "Hardware"])
        assert result.exit_code == 1
        assert "Category already exists" in result.output
        assert db.session.query(Category).count() == 1

    def test_blank_supplier_name_fails(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["catalog", "add-supplier", "  "])
        assert result.exit_code == 1
        assert db.session.query(Supplier).count() == 0
