# Overview: Flask API routes for the stock history audit log; read-only apart from the admin delete.

from flask import Blueprint, request, g, current_app

from ..models import ROLE_ADMIN
from ..decorators import require_auth, require_role
from ..services import stock_history_service
from ..services.stock_history_service import HistoryDeletionDisabledError
from ..validation import ValidationError

stock_history_bp = Blueprint("stock_history", __name__, url_prefix="/api/stock-history")


@stock_history_bp.get("")
@require_auth
def list_history():
    """
    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 50, max 200)
    """
    return stock_history_service.list_history(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@stock_history_bp.get("/search")
@require_auth
def search_history():
    try:
        entries = stock_history_service.search_history(request.args.get("q"))
    except ValidationError as e:
        return {"message": str(e)}, 400
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}


@stock_history_bp.get("/product/<int:product_id>")
@require_auth
def history_for_product(product_id: int):
    return stock_history_service.list_history_for_product(product_id)


@stock_history_bp.get("/user/<int:user_id>")
@require_auth
def history_for_user(user_id: int):
    return stock_history_service.list_history_for_user(user_id)


@stock_history_bp.get("/<int:entry_id>")
@require_auth
def get_history_entry(entry_id: int):
    entry = stock_history_service.get_history_entry(entry_id)
    if entry is None:
        return {"message": "Stock history entry not found"}, 404
    return entry.to_dict()


@stock_history_bp.delete("/<int:entry_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_history_entry(entry_id: int):
    """
    Administrative correction. The product quantity is NOT adjusted, so the
    product will show up in the stock-integrity report afterwards.
    """
    try:
        deleted = stock_history_service.delete_history_entry(entry_id, actor_id=g.current_user.id)
    except HistoryDeletionDisabledError as e:
        return {"message": str(e)}, 403
    except Exception:
        current_app.logger.exception("Failed to delete stock history entry %s", entry_id)
        return {"message": "Internal server error"}, 500

    if not deleted:
        return {"message": "Stock history entry not found"}, 404
    return {"message": "Stock history entry deleted"}
