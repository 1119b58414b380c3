# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockroom/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Reads are open to any authenticated user
- Writes, stock corrections and the low-stock view require the admin role

Quantity is never written directly: create/update route it through the
stock service so every change gets an audit row.
"""
from flask import Blueprint, request, g, current_app

from ..models import Product, ROLE_ADMIN
from ..services import products_service, reporting_service, stock_service
from ..services.concurrency import ConcurrencyConflictError
from ..services.stock_service import StockError, ProductNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "quantity", "minimum_stock",
        "cost_price_cents", "selling_price_cents", "category_id", "supplier_id",
        "is_active",
    },
    required_on_create={"sku", "name", "selling_price_cents"},
    aliases={
        "minimumStock": "minimum_stock",
        "costPrice": "cost_price_cents",
        "sellingPrice": "selling_price_cents",
        "category": "category_id",
        "supplier": "supplier_id",
    },
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _note_from(payload: dict):
    note = payload.get("note")
    if note is None:
        return None
    return str(note).strip() or None


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional pagination.

    Query params:
    - include_inactive: 1 to include soft-deleted products (admin only)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    include_inactive = request.args.get("include_inactive") in {"1", "true", "yes"}
    if include_inactive and g.current_user.role != ROLE_ADMIN:
        include_inactive = False

    return products_service.list_products(
        include_inactive=include_inactive,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/low-stock")
@require_auth
@require_role(ROLE_ADMIN)
def low_stock_products():
    products = reporting_service.list_low_stock_products()
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    product = products_service.get_product(product_id)
    if product is None:
        return {"message": "Product not found"}, 404
    return product.to_dict()


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    """
    Create a new product. A positive "quantity" becomes the initial stock
    and is recorded as a restock in the stock history.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"message": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch, actor_id=g.current_user.id)
    except ConflictError as e:
        return {"message": str(e)}, 409
    except ValidationError as e:
        return {"message": str(e)}, 400
    except ConcurrencyConflictError as e:
        return {"message": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"message": "Internal server error"}, 500

    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    """
    Update product fields. A "quantity" field is applied as a stock change
    (restock when it goes up, adjustment when it goes down).
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"message": str(e)}, 400

    try:
        updated = products_service.update_product(
            product_id=product_id,
            patch=patch,
            actor_id=g.current_user.id,
        )
    except ConflictError as e:
        return {"message": str(e)}, 409
    except ConcurrencyConflictError as e:
        return {"message": str(e)}, 409
    except (ValidationError, StockError) as e:
        return {"message": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return {"message": "Internal server error"}, 500

    if updated is None:
        return {"message": "Product not found"}, 404

    return updated.to_dict()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    """Soft delete: the product is deactivated, its history is kept."""
    deactivated = products_service.deactivate_product(product_id)
    if deactivated is None:
        return {"message": "Product not found"}, 404
    return {"ok": True, "product": deactivated.to_dict()}


@products_bp.post("/<int:product_id>/restock")
@require_auth
@require_role(ROLE_ADMIN)
def restock_product_route(product_id: int):
    """Body: {"quantity": <int >= 1>, "note": "..."}"""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"message": "Invalid JSON payload"}, 400

    try:
        change = stock_service.restock_product(
            product_id,
            payload.get("quantity"),
            actor_id=g.current_user.id,
            note=_note_from(payload),
        )
    except ProductNotFoundError as e:
        return {"message": str(e)}, 404
    except ConcurrencyConflictError as e:
        return {"message": str(e)}, 409
    except StockError as e:
        return {"message": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to restock product %s", product_id)
        return {"message": "Internal server error"}, 500

    return change.to_dict(), 201


@products_bp.post("/<int:product_id>/adjust")
@require_auth
@require_role(ROLE_ADMIN)
def adjust_product_route(product_id: int):
    """Body: {"delta": <non-zero int>, "note": "..."}"""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"message": "Invalid JSON payload"}, 400

    try:
        change = stock_service.adjust_product_stock(
            product_id,
            payload.get("delta"),
            actor_id=g.current_user.id,
            note=_note_from(payload),
        )
    except ProductNotFoundError as e:
        return {"message": str(e)}, 404
    except ConcurrencyConflictError as e:
        return {"message": str(e)}, 409
    except StockError as e:
        body = {"message": str(e)}
        details = getattr(e, "details", None)
        if details:
            body["details"] = details
        return body, 400
    except Exception:
        current_app.logger.exception("Failed to adjust product %s", product_id)
        return {"message": "Internal server error"}, 500

    return change.to_dict(), 201
