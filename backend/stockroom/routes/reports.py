# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import ROLE_ADMIN
from ..decorators import require_auth, require_role
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stock-integrity")
@require_auth
@require_role(ROLE_ADMIN)
def stock_integrity_report():
    """
    Replay the stock history of every product (or ?product_id=) and report
    products whose counter disagrees with their audit trail.
    """
    product_id = request.args.get("product_id", type=int)
    return reporting_service.verify_stock_integrity(product_id=product_id)
