from __future__ import annotations

import enum

from sqlalchemy.orm import validates

from ..extensions import db
from stockroom.time_utils import to_utc_z, utcnow


class SaleStatus(str, enum.Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    # Reserved: no operation produces it yet
    REFUNDED = "refunded"

    def can_transition_to(self, target: "SaleStatus") -> bool:
        return target in _SALE_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not _SALE_TRANSITIONS[self]


_SALE_TRANSITIONS: dict[SaleStatus, frozenset[SaleStatus]] = {
    SaleStatus.COMPLETED: frozenset({SaleStatus.CANCELLED}),
    SaleStatus.CANCELLED: frozenset(),
    SaleStatus.REFUNDED: frozenset(),
}


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    OTHER = "other"


class SaleStateError(ValueError):
    """Raised when a status assignment is not a legal transition."""


class Sale(db.Model):
    """
    One sale of a single product.

    PRICE SNAPSHOT:
    unit_price_cents is copied from Product.selling_price_cents when the sale
    is created and never re-read. Amending the quantity recomputes
    total_price_cents from this snapshot.

    STATE MACHINE:
    completed -> cancelled is the only transition. cancelled and refunded
    are terminal; assigning any other status raises SaleStateError.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sales_quantity_positive"),
        db.CheckConstraint("discount_cents >= 0", name="ck_sales_discount_nonneg"),
        db.CheckConstraint("total_price_cents >= 0", name="ck_sales_total_nonneg"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(64), nullable=False, unique=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)

    sold_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default=PaymentMethod.CASH.value, index=True)
    status = db.Column(db.String(16), nullable=False, default=SaleStatus.COMPLETED.value, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_contact = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("sales", lazy="dynamic"))
    sold_by = db.relationship("User", foreign_keys=[sold_by_user_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @validates("status")
    def _validate_status(self, key, value):
        target = SaleStatus(value)
        if self.status is not None:
            current = SaleStatus(self.status)
            if current != target and not current.can_transition_to(target):
                raise SaleStateError(f"Cannot move sale from {current.value} to {target.value}")
        return target.value

    @validates("payment_method")
    def _validate_payment_method(self, key, value):
        return PaymentMethod(value).value

    @property
    def sale_status(self) -> SaleStatus:
        return SaleStatus(self.status)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} reference={self.reference!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_price_cents": self.total_price_cents,
            "sold_by_user_id": self.sold_by_user_id,
            "sold_by": self.sold_by.username if self.sold_by else None,
            "payment_method": self.payment_method,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_contact": self.customer_contact,
            "notes": self.notes,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
