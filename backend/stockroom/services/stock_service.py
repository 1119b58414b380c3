# Overview: Stock mutation engine; the only code path that writes Product.quantity.

# backend/stockroom/services/stock_service.py
"""
Stockroom Stock Invariants (authoritative)

Quantity model:
- Product.quantity is a stored counter and the single source of truth.
- Nothing outside this module assigns Product.quantity.

Business invariants:
- Quantity may never go negative. The check runs against the quantity read
  inside the unit of work, before anything is written.
- Every quantity change writes exactly one StockHistory row with
  previous_quantity = quantity read, new_quantity = quantity written.
- Product row and StockHistory row commit together or not at all.

Concurrency:
- The product row is read with SELECT ... FOR UPDATE where supported.
- Product carries a version_id optimistic lock. If another unit of work
  changed the row after our read, the flush raises StaleDataError and the
  whole unit is re-executed from the read step (see concurrency.run_atomic).
- Business-rule failures are raised immediately and are never retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import Product, StockHistory, StockAction
from .concurrency import lock_for_update, run_atomic

logger = logging.getLogger(__name__)


class StockError(Exception):
    """Base class for stock mutation failures."""


class ProductNotFoundError(StockError):
    def __init__(self, product_id=None):
        super().__init__("Product not found")
        self.product_id = product_id


class InsufficientStockError(StockError):
    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__("Insufficient stock")
        self.product_id = product_id
        self.available = available
        self.requested = requested

    @property
    def details(self) -> dict:
        return {
            "product_id": self.product_id,
            "available": self.available,
            "requested": self.requested,
        }


class InvalidStockChangeError(StockError):
    """Malformed request to the engine (zero delta, unknown action)."""


@dataclass(frozen=True)
class StockChange:
    product: Product
    history: StockHistory

    def to_dict(self) -> dict:
        return {
            "product": self.product.to_dict(),
            "history": self.history.to_dict(),
        }


def _coerce_action(action) -> StockAction:
    try:
        return StockAction(action)
    except ValueError:
        raise InvalidStockChangeError(f"Unknown stock action: {action}")


def load_product(product_id, *, lock: bool = False, require_active: bool = False) -> Product:
    """Resolve a product id inside the current unit of work."""
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ProductNotFoundError(product_id)
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(product_id)
    if require_active and not product.is_active:
        raise ProductNotFoundError(product_id)
    return product


def stage_stock_change(
    *,
    product_id: int,
    delta: int,
    action,
    actor_id: int | None = None,
    note: str | None = None,
    sale_id: int | None = None,
    product: Product | None = None,
) -> StockChange:
    """
    Core mutation without commit or retry.

    Flushes the product update and the history row into the caller's open
    unit of work. Callers compose this with their own writes and commit once.
    Pass product= when the caller already loaded (and locked) the row in the
    same unit of work.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InvalidStockChangeError("delta must be a non-zero integer")
    stock_action = _coerce_action(action)

    if product is None:
        product = load_product(product_id, lock=True)

    previous_quantity = product.quantity
    new_quantity = previous_quantity + delta
    if new_quantity < 0:
        raise InsufficientStockError(product.id, available=previous_quantity, requested=-delta)

    product.quantity = new_quantity

    history = StockHistory(
        product_id=product.id,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        action=stock_action.value,
        changed_by_user_id=actor_id,
        sale_id=sale_id,
        note=note or "",
    )
    db.session.add(history)
    # Surfaces StaleDataError here if another writer bumped version_id
    db.session.flush()

    logger.info(
        "Stock change %s | product=%s | %d -> %d | by user=%s",
        stock_action.value, product.id, previous_quantity, new_quantity,
        actor_id if actor_id is not None else "system",
    )
    return StockChange(product=product, history=history)


def apply_stock_change(
    product_id: int,
    delta: int,
    action,
    actor_id: int | None = None,
    note: str | None = None,
) -> StockChange:
    """
    Change a product's quantity by delta and record it, atomically.

    Raises ProductNotFoundError, InsufficientStockError,
    InvalidStockChangeError or ConcurrencyConflictError. Nothing is persisted
    when any of them is raised.
    """
    def _op():
        return stage_stock_change(
            product_id=product_id,
            delta=delta,
            action=action,
            actor_id=actor_id,
            note=note,
        )

    return run_atomic(_op)


def restock_product(
    product_id: int,
    quantity: int,
    actor_id: int | None = None,
    note: str | None = None,
) -> StockChange:
    """Receive units into stock."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidStockChangeError("quantity must be a positive integer")
    return apply_stock_change(
        product_id,
        quantity,
        StockAction.RESTOCK,
        actor_id=actor_id,
        note=note or "Restock",
    )


def adjust_product_stock(
    product_id: int,
    delta: int,
    actor_id: int | None = None,
    note: str | None = None,
) -> StockChange:
    """Manual correction (shrinkage, count mismatch, damage)."""
    return apply_stock_change(
        product_id,
        delta,
        StockAction.ADJUSTMENT,
        actor_id=actor_id,
        note=note or "Manual adjustment",
    )
