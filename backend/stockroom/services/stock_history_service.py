# Overview: Read side of the stock audit log, plus the administrative delete.

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import StockHistory
from ..validation import ValidationError
from .concurrency import atomic

logger = logging.getLogger(__name__)


class HistoryDeletionDisabledError(Exception):
    """Raised when STOCK_HISTORY_DELETE_ENABLED is off."""


def _newest_first(query):
    return query.order_by(StockHistory.created_at.desc(), StockHistory.id.desc())


def list_history(page: int | None = None, per_page: int | None = None) -> dict:
    """
    All history entries, newest first, with optional pagination.

    Args:
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 50, max 200)
    """
    base_query = _newest_first(db.session.query(StockHistory))

    if page is None:
        entries = base_query.all()
        return {
            "items": [e.to_dict() for e in entries],
            "count": len(entries),
        }

    per_page = min(per_page or 50, 200)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    entries = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [e.to_dict() for e in entries],
        "count": len(entries),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_history_entry(entry_id: int) -> StockHistory | None:
    return db.session.get(StockHistory, entry_id)


def list_history_for_product(product_id: int) -> dict:
    entries = _newest_first(
        db.session.query(StockHistory).filter(StockHistory.product_id == product_id)
    ).all()
    return {
        "product_id": product_id,
        "total": len(entries),
        "history": [e.to_dict() for e in entries],
    }


def list_history_for_user(user_id: int) -> dict:
    entries = _newest_first(
        db.session.query(StockHistory).filter(StockHistory.changed_by_user_id == user_id)
    ).all()
    return {
        "user_id": user_id,
        "total": len(entries),
        "history": [e.to_dict() for e in entries],
    }


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_history(query_text: str | None) -> list[StockHistory]:
    """
    Case-insensitive substring match on the note field.

    % and _ in the query match themselves, not any text.
    """
    if query_text is None or not query_text.strip():
        raise ValidationError("Search query missing")
    pattern = f"%{_escape_like(query_text.strip())}%"
    return _newest_first(
        db.session.query(StockHistory).filter(StockHistory.note.ilike(pattern, escape="\\"))
    ).all()


def delete_history_entry(entry_id: int, actor_id: int | None = None) -> bool:
    """
    Hard-delete one history row.

    Administrative correction only. The product quantity is left as it is,
    so verify_stock_integrity() will report the product afterwards.
    Returns False when the entry does not exist.
    """
    if not current_app.config.get("STOCK_HISTORY_DELETE_ENABLED", True):
        raise HistoryDeletionDisabledError("Stock history deletion is disabled")

    entry = db.session.get(StockHistory, entry_id)
    if entry is None:
        return False

    logger.warning(
        "Deleting stock history entry %s (product=%s, %d -> %d, action=%s) by user=%s",
        entry.id, entry.product_id, entry.previous_quantity, entry.new_quantity,
        entry.action, actor_id,
    )
    with atomic():
        db.session.delete(entry)
    return True
