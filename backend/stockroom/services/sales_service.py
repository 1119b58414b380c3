"""
Sale Transaction Manager

WHY: A sale is a stock movement plus a document. Create, amend and cancel
each touch the product counter, the stock history and the sale row, and
each runs as one unit of work: either all three writes land or none do.

Stock is only ever changed through stock_service.stage_stock_change().
"""

from __future__ import annotations

import secrets
from datetime import datetime

from ..extensions import db
from ..models import Sale, SaleStatus, PaymentMethod, StockAction
from stockroom.time_utils import utcnow
from .concurrency import lock_for_update, run_atomic
from .stock_service import InsufficientStockError, load_product, stage_stock_change


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InvalidQuantityError(SaleError):
    def __init__(self, message: str = "Invalid quantity"):
        super().__init__(message)


class SaleNotFoundError(SaleError):
    def __init__(self):
        super().__init__("Sale not found")


class SaleNotEditableError(SaleError):
    def __init__(self, status: str):
        super().__init__("Only completed sales can be updated", details={"status": status})


class SaleAlreadyFinalizedError(SaleError):
    def __init__(self, status: str):
        super().__init__("Sale already cancelled or refunded", details={"status": status})


def generate_reference() -> str:
    """Human-readable, collision-resistant sale reference."""
    return f"SALE-{utcnow():%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError()
    return quantity


def _require_payment_method(payment_method) -> str:
    try:
        return PaymentMethod(payment_method).value
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise SaleError(f"paymentMethod must be one of: {allowed}")


def _compute_total(unit_price_cents: int, quantity: int, discount_cents: int) -> int:
    total = unit_price_cents * quantity - discount_cents
    if total < 0:
        raise SaleError(
            "Discount exceeds sale total",
            details={"gross_cents": unit_price_cents * quantity, "discount_cents": discount_cents},
        )
    return total


def _load_sale(sale_id) -> Sale:
    if isinstance(sale_id, bool) or not isinstance(sale_id, int):
        raise SaleNotFoundError()
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise SaleNotFoundError()
    return sale


def create_sale(
    *,
    product_id: int,
    quantity: int,
    sold_by_user_id: int,
    payment_method: str = PaymentMethod.CASH.value,
    discount_cents: int = 0,
    customer_name: str | None = None,
    customer_contact: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Sell quantity units of a product.

    The unit price is snapshotted from the product before stock is
    decremented. Raises InvalidQuantityError, ProductNotFoundError,
    InsufficientStockError or SaleError; nothing is persisted on failure.
    """
    quantity = _require_quantity(quantity)
    if not sold_by_user_id:
        raise SaleError("Authenticated user not found")
    payment_method = _require_payment_method(payment_method)
    if isinstance(discount_cents, bool) or not isinstance(discount_cents, int) or discount_cents < 0:
        raise SaleError("discount must be a non-negative integer")

    def _op() -> Sale:
        product = load_product(product_id, lock=True, require_active=True)
        if product.quantity < quantity:
            raise InsufficientStockError(product.id, available=product.quantity, requested=quantity)

        unit_price_cents = product.selling_price_cents
        total_price_cents = _compute_total(unit_price_cents, quantity, discount_cents)

        sale = Sale(
            reference=generate_reference(),
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            discount_cents=discount_cents,
            total_price_cents=total_price_cents,
            sold_by_user_id=sold_by_user_id,
            payment_method=payment_method,
            status=SaleStatus.COMPLETED.value,
            customer_name=customer_name,
            customer_contact=customer_contact,
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()

        stage_stock_change(
            product_id=product.id,
            product=product,
            delta=-quantity,
            action=StockAction.SALE,
            actor_id=sold_by_user_id,
            note="Sale completed",
            sale_id=sale.id,
        )
        return sale

    return run_atomic(_op)


def update_sale(
    sale_id: int,
    *,
    actor_id: int | None,
    quantity: int | None = None,
    payment_method: str | None = None,
    customer_name: str | None = None,
    customer_contact: str | None = None,
) -> Sale:
    """
    Amend a completed sale.

    A quantity change moves stock by the difference (action "adjustment")
    and recomputes the total from the original unit price. Other fields are
    updated in the same unit of work.
    """
    if quantity is not None:
        quantity = _require_quantity(quantity)
    if payment_method is not None:
        payment_method = _require_payment_method(payment_method)

    def _op() -> Sale:
        sale = _load_sale(sale_id)
        if sale.sale_status != SaleStatus.COMPLETED:
            raise SaleNotEditableError(sale.status)

        new_quantity = sale.quantity if quantity is None else quantity
        diff = new_quantity - sale.quantity

        if diff != 0:
            total_price_cents = _compute_total(sale.unit_price_cents, new_quantity, sale.discount_cents)
            stage_stock_change(
                product_id=sale.product_id,
                delta=-diff,
                action=StockAction.ADJUSTMENT,
                actor_id=actor_id,
                note="Sale quantity updated",
                sale_id=sale.id,
            )
            sale.quantity = new_quantity
            sale.total_price_cents = total_price_cents

        if payment_method is not None:
            sale.payment_method = payment_method
        if customer_name is not None:
            sale.customer_name = customer_name
        if customer_contact is not None:
            sale.customer_contact = customer_contact

        db.session.flush()
        return sale

    return run_atomic(_op)


def amend_sale_quantity(sale_id: int, new_quantity: int, actor_id: int | None = None) -> Sale:
    """Quantity-only amendment; see update_sale()."""
    return update_sale(sale_id, actor_id=actor_id, quantity=new_quantity)


def cancel_sale(sale_id: int, actor_id: int | None = None) -> Sale:
    """
    Cancel a completed sale and return its units to stock (action "reversal").

    A sale can be reversed exactly once; a second attempt raises
    SaleAlreadyFinalizedError without touching stock.
    """
    def _op() -> Sale:
        sale = _load_sale(sale_id)
        if sale.sale_status != SaleStatus.COMPLETED:
            raise SaleAlreadyFinalizedError(sale.status)

        stage_stock_change(
            product_id=sale.product_id,
            delta=sale.quantity,
            action=StockAction.REVERSAL,
            actor_id=actor_id,
            note="Sale cancelled",
            sale_id=sale.id,
        )

        sale.status = SaleStatus.CANCELLED.value
        sale.cancelled_by_user_id = actor_id
        sale.cancelled_at = utcnow()
        db.session.flush()
        return sale

    return run_atomic(_op)


def get_sale(sale_id: int) -> Sale | None:
    return db.session.get(Sale, sale_id)


def list_sales(
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    product_id: int | None = None,
    sold_by_user_id: int | None = None,
    payment_method: str | None = None,
    status: str | None = None,
) -> list[Sale]:
    """Sales newest first, optionally filtered. Date bounds are inclusive."""
    query = db.session.query(Sale)
    if date_from is not None:
        query = query.filter(Sale.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Sale.created_at <= date_to)
    if product_id is not None:
        query = query.filter(Sale.product_id == product_id)
    if sold_by_user_id is not None:
        query = query.filter(Sale.sold_by_user_id == sold_by_user_id)
    if payment_method:
        query = query.filter(Sale.payment_method == payment_method)
    if status:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()
