# Overview: Read-only projections over products, sales and stock history.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Product, Sale, SaleStatus, StockHistory


def _day_expr(column):
    """YYYY-MM-DD bucket for a timestamp column on the active dialect."""
    if db.engine.dialect.name == "sqlite":
        return func.strftime("%Y-%m-%d", column)
    return func.to_char(column, "YYYY-MM-DD")


def get_sales_stats() -> dict:
    """
    Revenue per day and per payment method.

    Only completed sales count; cancelled and refunded sales are excluded.
    Keys keep the public API shape: {daily: [{_id, total, count}],
    paymentBreakdown: [{_id, total}]}.
    """
    completed = Sale.status == SaleStatus.COMPLETED.value
    day = _day_expr(Sale.created_at).label("day")

    daily_rows = (
        db.session.query(
            day,
            func.coalesce(func.sum(Sale.total_price_cents), 0).label("total"),
            func.count(Sale.id).label("count"),
        )
        .filter(completed)
        .group_by(day)
        .order_by(day)
        .all()
    )

    payment_rows = (
        db.session.query(
            Sale.payment_method,
            func.coalesce(func.sum(Sale.total_price_cents), 0).label("total"),
        )
        .filter(completed)
        .group_by(Sale.payment_method)
        .order_by(Sale.payment_method)
        .all()
    )

    return {
        "daily": [
            {"_id": row.day, "total": int(row.total or 0), "count": int(row.count or 0)}
            for row in daily_rows
        ],
        "paymentBreakdown": [
            {"_id": row.payment_method, "total": int(row.total or 0)}
            for row in payment_rows
        ],
    }


def list_low_stock_products() -> list[Product]:
    """Active products at or below their minimum stock level."""
    return (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.quantity <= Product.minimum_stock,
        )
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )


def _check_product(product: Product, entries: list[StockHistory]) -> dict:
    audited_delta = sum(e.new_quantity - e.previous_quantity for e in entries)

    chain_breaks = []
    expected_previous = 0
    for entry in entries:
        if entry.previous_quantity != expected_previous:
            chain_breaks.append({
                "entry_id": entry.id,
                "expected_previous_quantity": expected_previous,
                "previous_quantity": entry.previous_quantity,
            })
        expected_previous = entry.new_quantity

    # The creation row (0 -> initial) is part of the trail, so the full
    # delta sum must land exactly on the current quantity.
    delta_matches = audited_delta == product.quantity
    return {
        "product_id": product.id,
        "sku": product.sku,
        "quantity": product.quantity,
        "initial_quantity": product.initial_quantity,
        "audited_quantity": audited_delta,
        "entries": len(entries),
        "chain_breaks": chain_breaks,
        "consistent": delta_matches and not chain_breaks,
    }


def verify_stock_integrity(product_id: int | None = None) -> dict:
    """
    Replay the audit trail of each product and compare it with the counter.

    A product is consistent when its history deltas sum to its current
    quantity and each row starts where the previous one ended.
    """
    query = db.session.query(Product).order_by(Product.id.asc())
    if product_id is not None:
        query = query.filter(Product.id == product_id)
    products = query.all()

    results = []
    for product in products:
        entries = (
            db.session.query(StockHistory)
            .filter(StockHistory.product_id == product.id)
            .order_by(StockHistory.created_at.asc(), StockHistory.id.asc())
            .all()
        )
        results.append(_check_product(product, entries))

    inconsistent = [r for r in results if not r["consistent"]]
    return {
        "checked": len(results),
        "inconsistent": len(inconsistent),
        "products": results,
    }
