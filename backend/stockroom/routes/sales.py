# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/stockroom/routes/sales.py
"""
Sales API

Single resource endpoint; the sale id and the stats view are selected with
query parameters, which keeps the existing frontend contract:

- POST   /api/sales                 create (any authenticated user)
- GET    /api/sales                 list, filters: from, to, product, soldBy,
                                    paymentMethod, status
- GET    /api/sales?id=<id>         one sale
- GET    /api/sales?action=stats    revenue stats (admin)
- PUT    /api/sales?id=<id>         amend (admin)
- DELETE /api/sales?id=<id>         cancel and restore stock (admin)
"""

from flask import Blueprint, request, g, current_app

from ..models import Sale, ROLE_ADMIN
from ..decorators import require_auth
from ..services import sales_service, reporting_service
from ..services.concurrency import ConcurrencyConflictError
from ..services.stock_service import StockError
from ..services.sales_service import SaleError
from ..time_utils import parse_iso_datetime
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_sale_create,
    enforce_rules_sale_update,
    parse_positive_int,
    ValidationError,
)

SALE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id", "quantity", "payment_method", "customer_name",
        "customer_contact", "discount_cents", "notes",
    },
    aliases={
        "product": "product_id",
        "paymentMethod": "payment_method",
        "customerName": "customer_name",
        "customerContact": "customer_contact",
        "discount": "discount_cents",
    },
)

SALE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "payment_method", "customer_name", "customer_contact"},
    aliases={
        "paymentMethod": "payment_method",
        "customerName": "customer_name",
        "customerContact": "customer_contact",
    },
)

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _forbidden():
    return {"message": "Access denied"}, 403


def _sale_id_from_query():
    raw = request.args.get("id")
    if raw is None or raw == "":
        return None
    try:
        return parse_positive_int(raw, field="id")
    except ValidationError:
        raise ValidationError("Invalid sale ID format")


def _check_sale_basics(payload: dict) -> None:
    try:
        parse_positive_int(payload.get("product"), field="product")
    except ValidationError:
        raise ValidationError("Invalid Product ID")

    if payload.get("quantity") in (None, ""):
        raise ValidationError("Invalid quantity")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale. The seller is always the authenticated user; a
    "soldBy" in the body is ignored.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"message": "Invalid JSON payload"}, 400
    payload = {k: v for k, v in payload.items() if k != "soldBy"}

    try:
        _check_sale_basics(payload)
        patch = validate_payload(model=Sale, payload=payload, policy=SALE_CREATE_POLICY, partial=False)
        enforce_rules_sale_create(patch)
    except ValidationError as e:
        return {"message": str(e)}, 400

    try:
        sale = sales_service.create_sale(
            product_id=patch["product_id"],
            quantity=patch["quantity"],
            sold_by_user_id=g.current_user.id,
            payment_method=patch.get("payment_method") or "cash",
            discount_cents=patch.get("discount_cents") or 0,
            customer_name=patch.get("customer_name"),
            customer_contact=patch.get("customer_contact"),
            notes=patch.get("notes"),
        )
        return sale.to_dict(), 201
    except ConcurrencyConflictError as e:
        return {"message": str(e)}, 409
    except (StockError, SaleError) as e:
        return {"message": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return {"message": "Internal server error"}, 500


@sales_bp.get("")
@require_auth
def get_sales_route():
    """List sales, fetch one (?id=) or, for admins, the stats view (?action=stats)."""
    if request.args.get("action") == "stats":
        if g.current_user.role != ROLE_ADMIN:
            return _forbidden()
        try:
            return reporting_service.get_sales_stats()
        except Exception:
            current_app.logger.exception("Failed to compute sales stats")
            return {"message": "Internal server error"}, 500

    try:
        sale_id = _sale_id_from_query()
    except ValidationError as e:
        return {"message": str(e)}, 400

    if sale_id is not None:
        sale = sales_service.get_sale(sale_id)
        if sale is None:
            return {"message": "Sale not found"}, 404
        return sale.to_dict()

    try:
        date_from = parse_iso_datetime(request.args.get("from"))
        date_to = parse_iso_datetime(request.args.get("to"))
    except ValueError:
        return {"message": "from/to must be ISO-8601 dates"}, 400

    sales = sales_service.list_sales(
        date_from=date_from,
        date_to=date_to,
        product_id=request.args.get("product", type=int),
        sold_by_user_id=request.args.get("soldBy", type=int),
        payment_method=request.args.get("paymentMethod") or None,
        status=request.args.get("status") or None,
    )
    return {"items": [s.to_dict() for s in sales], "count": len(sales)}


@sales_bp.put("")
@require_auth
def update_sale_route():
    """Amend quantity, payment method or customer fields of a completed sale (admin)."""
    if g.current_user.role != ROLE_ADMIN:
        return _forbidden()

    try:
        sale_id = _sale_id_from_query()
        if sale_id is None:
            return {"message": "Missing sale ID"}, 400
        payload = request.get_json(silent=True) or {}
        patch = validate_payload(model=Sale, payload=payload, policy=SALE_UPDATE_POLICY, partial=True)
        enforce_rules_sale_update(patch)
    except ValidationError as e:
        return {"message": str(e)}, 400

    try:
        sale = sales_service.update_sale(
            sale_id,
            actor_id=g.current_user.id,
            quantity=patch.get("quantity"),
            payment_method=patch.get("payment_method"),
            customer_name=patch.get("customer_name"),
            customer_contact=patch.get("customer_contact"),
        )
        return sale.to_dict()
    except ConcurrencyConflictError as e:
        return {"message": str(e)}, 409
    except (StockError, SaleError) as e:
        return {"message": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update sale %s", sale_id)
        return {"message": "Internal server error"}, 500


@sales_bp.delete("")
@require_auth
def cancel_sale_route():
    """Cancel a completed sale and put its units back in stock (admin)."""
    if g.current_user.role != ROLE_ADMIN:
        return _forbidden()

    try:
        sale_id = _sale_id_from_query()
    except ValidationError as e:
        return {"message": str(e)}, 400
    if sale_id is None:
        return {"message": "Missing sale ID"}, 400

    try:
        sales_service.cancel_sale(sale_id, actor_id=g.current_user.id)
        return {"message": "Sale cancelled successfully"}
    except ConcurrencyConflictError as e:
        return {"message": str(e)}, 409
    except (StockError, SaleError) as e:
        return {"message": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to cancel sale %s", sale_id)
        return {"message": "Internal server error"}, 500
