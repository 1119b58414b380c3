from __future__ import annotations

import enum

from sqlalchemy import event
from sqlalchemy.orm import validates

from ..extensions import db
from stockroom.time_utils import to_utc_z, utcnow


class StockAction(str, enum.Enum):
    """Cause of a single quantity transition recorded in stock history."""
    SALE = "sale"
    RESTOCK = "restock"
    ADJUSTMENT = "adjustment"
    REVERSAL = "reversal"


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to UPDATE an append-only row."""


class Category(db.Model):
    """Product grouping. Display-only: nothing in the stock protocol depends on it."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    """Where a product is bought from. Display-only, like Category."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    contact_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    One stock-keeping unit.

    QUANTITY OWNERSHIP:
    Product.quantity is the single source of truth for units on hand.
    It is written ONLY by services/stock_service.py, which pairs every
    change with a StockHistory row in the same transaction.

    CONCURRENCY:
    version_id is the optimistic lock. Every UPDATE is issued as
    "... WHERE id = ? AND version_id = ?"; losing a race raises
    StaleDataError and the whole unit of work is retried.

    BARCODE:
    Optional and unique when present. Blank barcodes are stored as NULL so
    any number of products can have none.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_nonneg"),
        db.CheckConstraint("minimum_stock >= 0", name="ck_products_minimum_stock_nonneg"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_products_cost_nonneg"),
        db.CheckConstraint("selling_price_cents >= 0", name="ck_products_price_nonneg"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    # Quantity at creation; the audit trail replays forward from here
    initial_quantity = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=0)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @validates("barcode")
    def _normalize_barcode(self, key, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.minimum_stock

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "initial_quantity": self.initial_quantity,
            "minimum_stock": self.minimum_stock,
            "is_low_stock": self.is_low_stock,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockHistory(db.Model):
    """
    Append-only record of one quantity transition.

    INVARIANT: new_quantity - previous_quantity equals the delta that was
    applied to the product when the row was written. Rows are never updated;
    replay order is (created_at, id).

    changed_by_user_id is NULL for system-initiated changes.
    sale_id links the row to the sale that caused it, when there is one.
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.CheckConstraint("previous_quantity >= 0", name="ck_stock_history_prev_nonneg"),
        db.CheckConstraint("new_quantity >= 0", name="ck_stock_history_new_nonneg"),
        db.Index("ix_stock_history_product_created", "product_id", "created_at"),
        db.Index("ix_stock_history_user_created", "changed_by_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(16), nullable=False, index=True)

    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    note = db.Column(db.Text, nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("stock_history", lazy="dynamic"))
    changed_by = db.relationship("User", foreign_keys=[changed_by_user_id])

    @validates("action")
    def _validate_action(self, key, value):
        return StockAction(value).value

    @property
    def delta(self) -> int:
        return self.new_quantity - self.previous_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "delta": self.delta,
            "action": self.action,
            "changed_by_user_id": self.changed_by_user_id,
            "changed_by": self.changed_by.username if self.changed_by else "System",
            "sale_id": self.sale_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockHistory, "before_update")
def _block_stock_history_update(mapper, connection, target):
    raise ImmutableRecordError(f"Stock history entry {target.id} is immutable")
