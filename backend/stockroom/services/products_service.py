# backend/stockroom/services/products_service.py
"""
Products Service

Product master data lives here; product QUANTITY does not. Any quantity the
caller supplies (initial stock on create, a new level on update) is turned
into a stock change through stock_service so it gets its audit row.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Category, Supplier, StockAction
from ..validation import ConflictError, ValidationError
from .concurrency import atomic, run_atomic
from .stock_service import load_product, stage_stock_change

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "barcode",
    "name",
    "description",
    "minimum_stock",
    "cost_price_cents",
    "selling_price_cents",
    "category_id",
    "supplier_id",
    "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_unique(patch: dict, *, exclude_id: int | None = None) -> None:
    if patch.get("sku"):
        query = db.session.query(Product.id).filter(Product.sku == patch["sku"])
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError("SKU already exists")

    barcode = (patch.get("barcode") or "").strip()
    if barcode:
        query = db.session.query(Product.id).filter(Product.barcode == barcode)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError("Barcode already exists")


def _check_references(patch: dict) -> None:
    if patch.get("category_id") is not None and db.session.get(Category, patch["category_id"]) is None:
        raise ValidationError("Category not found")
    if patch.get("supplier_id") is not None and db.session.get(Supplier, patch["supplier_id"]) is None:
        raise ValidationError("Supplier not found")


def list_products(
    *,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional pagination. Inactive products are hidden
    unless include_inactive is set.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def create_product(*, patch: dict, actor_id: int | None = None) -> Product:
    """
    Create a product from a validated patch dict.

    The product row starts at quantity 0; a positive initial quantity is
    then applied as a "restock" stock change in the same unit of work, which
    writes the 0 -> initial audit row.
    """
    initial_quantity = patch.get("quantity") or 0
    if initial_quantity < 0:
        raise ValidationError("quantity must be >= 0")

    _check_unique(patch)
    _check_references(patch)

    def _op() -> Product:
        product = Product(quantity=0, initial_quantity=initial_quantity, is_active=True)
        apply_product_patch(product, patch)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError("SKU or barcode already exists")

        if initial_quantity > 0:
            stage_stock_change(
                product_id=product.id,
                product=product,
                delta=initial_quantity,
                action=StockAction.RESTOCK,
                actor_id=actor_id,
                note="Initial stock on product creation",
            )
        return product

    return run_atomic(_op)


def update_product(*, product_id: int, patch: dict, actor_id: int | None = None) -> Product | None:
    """
    Update product master data.

    A "quantity" key is not written directly: the difference from the
    current level becomes a stock change ("restock" when it goes up,
    "adjustment" when it goes down). Returns None when the product
    does not exist.
    """
    target_quantity = patch.get("quantity")
    if target_quantity is not None and target_quantity < 0:
        raise ValidationError("quantity must be >= 0")

    if db.session.get(Product, product_id) is None:
        return None

    _check_unique(patch, exclude_id=product_id)
    _check_references(patch)

    def _op() -> Product:
        product = load_product(product_id, lock=True)
        apply_product_patch(product, patch)

        if target_quantity is not None and target_quantity != product.quantity:
            delta = target_quantity - product.quantity
            stage_stock_change(
                product_id=product.id,
                product=product,
                delta=delta,
                action=StockAction.RESTOCK if delta > 0 else StockAction.ADJUSTMENT,
                actor_id=actor_id,
                note="Quantity updated via product edit",
            )
        else:
            try:
                db.session.flush()
            except IntegrityError:
                raise ConflictError("SKU or barcode already exists")
        return product

    return run_atomic(_op)


def deactivate_product(product_id: int) -> Product | None:
    """Soft delete. Products are never removed; stock history keeps pointing at them."""
    def _op() -> Product | None:
        product = db.session.get(Product, product_id)
        if product is None:
            return None
        product.is_active = False
        return product

    return run_atomic(_op)



# Categories and suppliers are reference data; there is no HTTP surface for
# them. They are seeded through `flask catalog ...`.

def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.name.asc()).all()


def create_category(name: str, description: str | None = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    if db.session.query(Category.id).filter(Category.name == name).first():
        raise ConflictError("Category already exists")

    with atomic():
        category = Category(name=name, description=description)
        db.session.add(category)
    return category


def create_supplier(
    name: str,
    contact_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> Supplier:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Supplier name is required")
    if db.session.query(Supplier.id).filter(Supplier.name == name).first():
        raise ConflictError("Supplier already exists")

    with atomic():
        supplier = Supplier(name=name, contact_name=contact_name, email=email, phone=phone)
        db.session.add(supplier)
    return supplier
